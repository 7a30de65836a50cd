import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .errors import InvalidRepoUrl
from .settings import MAX_FILE_CHARS, get_github_api_base, get_github_token, log


REPO_URL_PATTERN = re.compile(r"^https?://(www\.)?github\.com/[\w-]+/[\w.-]+/?$")

SUPPORTED_EXTENSIONS = {
    ".py", ".js", ".ts", ".tsx", ".jsx", ".go", ".rs", ".java", ".cpp", ".c",
    ".php", ".rb", ".html", ".css", ".json",
}

# Probed in order; the first directory holding an acceptable file wins
CANDIDATE_PATHS = ("", "src", "lib", "app", "api", "server", "utils", "components", "pages")

EMPTY_URL_MESSAGE = "Please enter a repository URL"
INVALID_URL_MESSAGE = "Invalid GitHub URL. Format: https://github.com/username/repository"


@dataclass
class SourceFile:
    path: str
    content: str


def validate_repo_url(url: str) -> str:
    """Return the trimmed URL or raise InvalidRepoUrl with the message to show."""
    trimmed = (url or "").strip()
    if not trimmed:
        raise InvalidRepoUrl(EMPTY_URL_MESSAGE)
    if not REPO_URL_PATTERN.match(trimmed):
        raise InvalidRepoUrl(INVALID_URL_MESSAGE)
    return trimmed


def parse_repo_url(url: str) -> Tuple[str, str]:
    """Parse "https://github.com/owner/repo(.git)" into (owner, repo)."""
    path = url.strip().split("github.com/", 1)[-1].strip("/")
    owner, repo = path.split("/", 1)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return owner, repo


def is_source_entry(entry: Dict[str, Any]) -> bool:
    if not isinstance(entry, dict):
        return False
    if entry.get("type") != "file" or not entry.get("download_url"):
        return False
    name = (entry.get("name") or "").lower()
    return any(name.endswith(ext) for ext in SUPPORTED_EXTENSIONS)


def _headers() -> Dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    token = get_github_token()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def list_directory(client: httpx.Client, owner: str, repo: str, path: str) -> Optional[List[Dict[str, Any]]]:
    url = f"{get_github_api_base()}/repos/{owner}/{repo}/contents/{path}"
    r = client.get(url, headers=_headers())
    r.raise_for_status()
    data = r.json()
    return data if isinstance(data, list) else None


def locate_source_file(repo_url: str, client: Optional[httpx.Client] = None) -> Optional[SourceFile]:
    """Find the first source-like file under the candidate directories.

    Each path is probed only after the previous one came up empty. Transport
    and HTTP errors for a path just move on to the next one; None means every
    candidate was exhausted.
    """
    owner, repo = parse_repo_url(repo_url)
    own_client = client is None
    if own_client:
        client = httpx.Client(timeout=30, follow_redirects=True)
    try:
        for path in CANDIDATE_PATHS:
            try:
                entries = list_directory(client, owner, repo, path)
                if not entries:
                    continue
                entry = next((e for e in entries if is_source_entry(e)), None)
                if entry is None:
                    continue
                r = client.get(entry["download_url"])
                r.raise_for_status()
                content = r.text
            except httpx.HTTPStatusError as e:
                code = getattr(e.response, "status_code", "?")
                log("locator", f"GitHub API error {code} for {owner}/{repo}/{path or '.'}; trying next path")
                continue
            except (httpx.HTTPError, ValueError) as e:
                log("locator", f"Failed to list {owner}/{repo}/{path or '.'}: {e}")
                continue
            if len(content) >= MAX_FILE_CHARS:
                log("locator", f"Skipping {entry.get('path')}: {len(content)} chars is over the limit")
                continue
            log("locator", f"Selected {entry.get('path')} in {owner}/{repo}")
            return SourceFile(path=entry.get("path") or entry.get("name"), content=content)
        return None
    finally:
        if own_client:
            client.close()
