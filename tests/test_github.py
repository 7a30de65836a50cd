import httpx
import pytest

from conftest import FakeGitHub, entry, raw_url
from gitscan.errors import InvalidRepoUrl
from gitscan.github import (
    CANDIDATE_PATHS,
    EMPTY_URL_MESSAGE,
    INVALID_URL_MESSAGE,
    is_source_entry,
    locate_source_file,
    parse_repo_url,
    validate_repo_url,
)
from gitscan.settings import MAX_FILE_CHARS


REPO = "https://github.com/octocat/Hello-World"


class TestValidateRepoUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/octocat/Hello-World",
            "http://www.github.com/octocat/Hello-World/",
            "https://github.com/some-org/repo.name",
            "  https://github.com/octocat/Hello-World  ",
        ],
    )
    def test_accepts_owner_repo_shape(self, url):
        assert validate_repo_url(url) == url.strip()

    @pytest.mark.parametrize(
        "url",
        [
            "https://gitlab.com/octocat/Hello-World",
            "https://github.com/octocat",
            "https://github.com/octocat/Hello-World/tree/main",
            "github.com/octocat/Hello-World",
            "ftp://github.com/octocat/Hello-World",
        ],
    )
    def test_rejects_other_shapes(self, url):
        with pytest.raises(InvalidRepoUrl) as exc:
            validate_repo_url(url)
        assert str(exc.value) == INVALID_URL_MESSAGE

    def test_empty_input_has_its_own_message(self):
        with pytest.raises(InvalidRepoUrl) as exc:
            validate_repo_url("   ")
        assert str(exc.value) == EMPTY_URL_MESSAGE


def test_parse_repo_url_strips_slash_and_git_suffix():
    assert parse_repo_url("https://github.com/octocat/Hello-World/") == ("octocat", "Hello-World")
    assert parse_repo_url("https://github.com/octocat/Hello-World.git") == ("octocat", "Hello-World")


def test_source_entry_requires_file_extension_and_download_url():
    assert is_source_entry(entry("o", "r", "main.py"))
    assert not is_source_entry(entry("o", "r", "README.md"))
    assert not is_source_entry(entry("o", "r", "src", kind="dir"))
    assert not is_source_entry({"type": "file", "name": "x.py", "download_url": None})


class TestLocateSourceFile:
    def test_stops_at_first_candidate_with_a_source_file(self):
        """Given only the third candidate holds code, exactly three directories are probed."""
        third = CANDIDATE_PATHS[2]
        github = FakeGitHub(
            listings={
                "": [entry("octocat", "Hello-World", "README")],
                third: [entry("octocat", "Hello-World", f"{third}/notes.txt"), entry("octocat", "Hello-World", f"{third}/util.js")],
            },
            files={raw_url("octocat", "Hello-World", f"{third}/util.js"): "module.exports = 1;\n"},
        )

        found = locate_source_file(REPO, client=github.client())

        assert found is not None
        assert found.path == f"{third}/util.js"
        assert found.content == "module.exports = 1;\n"
        assert github.probes == list(CANDIDATE_PATHS[:3])

    def test_first_matching_entry_in_listing_order_wins(self):
        github = FakeGitHub(
            listings={"": [entry("o", "r", "b.py"), entry("o", "r", "a.py")]},
            files={raw_url("o", "r", "b.py"): "b = 1\n", raw_url("o", "r", "a.py"): "a = 1\n"},
        )

        found = locate_source_file("https://github.com/o/r", client=github.client())

        assert found.path == "b.py"

    def test_file_at_size_limit_is_rejected(self):
        github = FakeGitHub(
            listings={"": [entry("o", "r", "big.py")]},
            files={raw_url("o", "r", "big.py"): "x" * MAX_FILE_CHARS},
        )

        assert locate_source_file("https://github.com/o/r", client=github.client()) is None
        assert github.probes == list(CANDIDATE_PATHS)

    def test_file_just_under_size_limit_is_accepted(self):
        github = FakeGitHub(
            listings={"": [entry("o", "r", "big.py")]},
            files={raw_url("o", "r", "big.py"): "x" * (MAX_FILE_CHARS - 1)},
        )

        found = locate_source_file("https://github.com/o/r", client=github.client())

        assert found is not None
        assert len(found.content) == MAX_FILE_CHARS - 1

    def test_oversized_file_moves_on_to_next_candidate(self):
        github = FakeGitHub(
            listings={"": [entry("o", "r", "big.py")], "src": [entry("o", "r", "src/main.go")]},
            files={raw_url("o", "r", "big.py"): "x" * MAX_FILE_CHARS, raw_url("o", "r", "src/main.go"): "package main\n"},
        )

        found = locate_source_file("https://github.com/o/r", client=github.client())

        assert found.path == "src/main.go"

    def test_readme_only_repository_is_not_found(self):
        github = FakeGitHub(listings={"": [entry("octocat", "Hello-World", "README")]}, files={})

        assert locate_source_file(REPO, client=github.client()) is None
        assert github.probes == list(CANDIDATE_PATHS)
        assert github.downloads == []

    def test_malformed_listing_entries_move_on_to_next_candidate(self):
        github = FakeGitHub(
            listings={"": ["not-a-dict", 7], "src": [entry("o", "r", "src/main.py")]},
            files={raw_url("o", "r", "src/main.py"): "print(1)\n"},
        )

        found = locate_source_file("https://github.com/o/r", client=github.client())

        assert found is not None
        assert found.path == "src/main.py"
        assert github.probes == ["", "src"]

    def test_transport_errors_are_skipped(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if request.url.path.endswith("/contents/"):
                raise httpx.ConnectError("boom", request=request)
            if request.url.path.endswith("/contents/src"):
                return httpx.Response(200, text="not json")
            if request.url.path.endswith("/contents/lib"):
                return httpx.Response(200, json={"type": "file", "name": "lib"})
            if request.url.path.endswith("/contents/app"):
                return httpx.Response(200, json=[entry("o", "r", "app/server.rb")])
            return httpx.Response(200, text="puts 1\n")

        client = httpx.Client(transport=httpx.MockTransport(handler))

        found = locate_source_file("https://github.com/o/r", client=client)

        assert found.path == "app/server.rb"

    def test_sends_token_when_configured(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(404)

        locate_source_file("https://github.com/o/r", client=httpx.Client(transport=httpx.MockTransport(handler)))

        assert seen and all(h == "Bearer ghp_test" for h in seen)
