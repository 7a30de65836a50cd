import os
import sys
from typing import Optional

from dotenv import load_dotenv


DEFAULT_SCAN_MODEL = "gpt-4o-mini"
DEFAULT_CHAT_MODEL = "gpt-5-mini"

# Files at or above this many characters are skipped by the locator
MAX_FILE_CHARS = 100_000


def get_api_key() -> Optional[str]:
    load_dotenv()
    key = os.getenv("OPENAI_API_KEY", "").strip()
    return key or None


def get_base_url() -> Optional[str]:
    load_dotenv()
    return os.getenv("OPENAI_BASE_URL") or None


def get_scan_model() -> str:
    load_dotenv()
    return os.getenv("CODEGUARD_SCAN_MODEL", DEFAULT_SCAN_MODEL)


def get_pr_model() -> str:
    load_dotenv()
    return os.getenv("CODEGUARD_PR_MODEL", get_scan_model())


def get_chat_model() -> str:
    load_dotenv()
    return os.getenv("CODEGUARD_CHAT_MODEL", DEFAULT_CHAT_MODEL)


def get_github_api_base() -> str:
    load_dotenv()
    return os.getenv("GITHUB_API_BASE", "https://api.github.com").rstrip("/")


def get_github_token() -> Optional[str]:
    load_dotenv()
    return os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")


def is_verbose() -> bool:
    load_dotenv()
    return os.getenv("CODEGUARD_VERBOSE", "").lower() in ("1", "true", "yes")


def log(tag: str, message: str, always: bool = False) -> None:
    """Write a tagged progress line to stderr.

    Progress chatter only shows up with CODEGUARD_VERBOSE set; failures pass
    ``always=True``.
    """
    if always or is_verbose():
        sys.stderr.write(f"[{tag}] {message}\n")
        sys.stderr.flush()
