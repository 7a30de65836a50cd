import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import pytest


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep a developer's .env and shell credentials out of the tests."""
    monkeypatch.setattr("gitscan.settings.load_dotenv", lambda *a, **k: None)
    for name in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "GITHUB_TOKEN", "GH_TOKEN", "GITHUB_API_BASE",
                 "CODEGUARD_SCAN_MODEL", "CODEGUARD_PR_MODEL", "CODEGUARD_CHAT_MODEL", "CODEGUARD_VERBOSE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return "sk-test"


class FakeCompletions:
    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None, chunks: Optional[List[Any]] = None):
        self.content = content
        self.error = error
        self.chunks = chunks or []
        self.calls: List[Dict[str, Any]] = []

    def create(self, **params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        if params.get("stream"):
            return self._stream()
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])

    def _stream(self):
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=chunk))])


class FakeOpenAI:
    """Stands in for openai.OpenAI; records every completions call."""

    def __init__(self, **kwargs):
        self.completions = FakeCompletions(**kwargs)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def fake_openai():
    return FakeOpenAI


def json_body(obj: Any) -> str:
    return json.dumps(obj)


def raw_url(owner: str, repo: str, path: str) -> str:
    return f"https://raw.githubusercontent.com/{owner}/{repo}/main/{path}"


def entry(owner: str, repo: str, path: str, kind: str = "file") -> Dict[str, Any]:
    name = path.rsplit("/", 1)[-1]
    return {
        "type": kind,
        "name": name,
        "path": path,
        "download_url": raw_url(owner, repo, path) if kind == "file" else None,
    }


class FakeGitHub:
    """MockTransport-backed GitHub: contents listings plus raw downloads.

    ``listings`` maps a repo-relative directory ("" for the root) to a list of
    entries or an HTTP status code; unknown directories answer 404.
    """

    def __init__(self, listings: Dict[str, Any], files: Dict[str, str]):
        self.listings = listings
        self.files = files
        self.probes: List[str] = []
        self.downloads: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.github.com":
            directory = request.url.path.split("/contents/", 1)[1].strip("/")
            self.probes.append(directory)
            listing = self.listings.get(directory, 404)
            if isinstance(listing, int):
                return httpx.Response(listing, json={"message": "Not Found"})
            return httpx.Response(200, json=listing)
        url = str(request.url)
        self.downloads.append(url)
        if url in self.files:
            return httpx.Response(200, text=self.files[url])
        return httpx.Response(404, text="404: Not Found")

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))
