import difflib
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from gitscan.models import Issue, ScanResult, Severity, severity_counts
from gitscan.prs import PullRequestDraft, generate_pr_details


ALL = "ALL"

PR_LOADING_STEPS = [
    "Analyzing codebase context...",
    "Synthesizing security fixes...",
    "Drafting professional summary...",
    "Formatting technical details...",
    "Polishing markdown output...",
]
PR_STEP_SECONDS = 1.2


class ResultView:
    """Client-side state kept over one immutable ScanResult.

    Marking an issue fixed is pure bookkeeping: nothing is changed in the
    repository.
    """

    def __init__(self, result: ScanResult):
        self.result = result
        self.fixed: set[str] = set()
        self.filter: str = ALL
        self.pending_fix: Optional[str] = None
        self._lock = threading.Lock()

    def counts(self) -> Dict[str, int]:
        return severity_counts(self.result.issues)

    def set_filter(self, value: str) -> None:
        if value == ALL:
            self.filter = ALL
            return
        self.filter = Severity(value).value

    def visible_issues(self) -> List[Issue]:
        if self.filter == ALL:
            return list(self.result.issues)
        return [i for i in self.result.issues if i.severity.value == self.filter]

    def is_fixed(self, issue_id: str) -> bool:
        return issue_id in self.fixed

    def request_fix(self, issue_id: str) -> bool:
        with self._lock:
            if self.result.get_issue(issue_id) is None or issue_id in self.fixed:
                return False
            self.pending_fix = issue_id
            return True

    def confirm_fix(self, issue_id: str) -> bool:
        with self._lock:
            if self.pending_fix != issue_id:
                return False
            self.fixed.add(issue_id)
            self.pending_fix = None
            return True

    def cancel_fix(self, issue_id: str) -> None:
        with self._lock:
            if self.pending_fix == issue_id:
                self.pending_fix = None

    def issues_for_pr(self) -> List[Issue]:
        if self.fixed:
            return [i for i in self.result.issues if i.id in self.fixed]
        return list(self.result.issues)


class PrJob:
    """Generates a PR draft in a worker thread and reports progress phrases."""

    def __init__(
        self,
        issues: Sequence[Issue],
        generate: Callable[[Sequence[Issue]], PullRequestDraft] = generate_pr_details,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.issues = list(issues)
        self.generate = generate
        self.clock = clock
        self.started_at = clock()
        self.draft: Optional[PullRequestDraft] = None
        self._done = threading.Event()

    def start(self) -> "PrJob":
        threading.Thread(target=self.run, daemon=True).start()
        return self

    def run(self) -> None:
        try:
            self.draft = self.generate(self.issues)
        finally:
            self._done.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def loading_message(self) -> str:
        elapsed = max(0.0, self.clock() - self.started_at)
        return PR_LOADING_STEPS[int(elapsed / PR_STEP_SECONDS) % len(PR_LOADING_STEPS)]

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "done": self.done,
            "issues": [{"id": i.id, "title": i.title, "file": i.file, "diff": diff_lines(i)} for i in self.issues],
        }
        if self.done and self.draft is not None:
            data["pull_request"] = self.draft.to_dict()
            data["markdown"] = self.draft.to_markdown()
        elif not self.done:
            data["message"] = self.loading_message()
        return data


def clamp_line(line: Optional[int], total: int) -> Optional[int]:
    if line is None or total == 0:
        return None
    return max(1, min(line, total))


def code_lines(content: str, line: Optional[int]) -> List[Dict[str, Any]]:
    """Number every line of the scanned file and mark the reported one.

    The reported line comes from the model and may be past the end of the
    file; it is clamped for display only.
    """
    lines = content.splitlines()
    target = clamp_line(line, len(lines))
    return [{"number": n, "text": text, "highlight": n == target} for n, text in enumerate(lines, start=1)]


def diff_lines(issue: Issue) -> List[str]:
    before = issue.original_code.splitlines()
    after = issue.suggested_fix.splitlines()
    diff = difflib.unified_diff(before, after, fromfile=f"a/{issue.file}", tofile=f"b/{issue.file}", lineterm="")
    return list(diff)
