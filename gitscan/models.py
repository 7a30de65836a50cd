import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return {"Critical": 4, "High": 3, "Medium": 2, "Low": 1}[self.value]


SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]

ISSUE_TYPES = ("Security", "Bug", "Code Smell", "Performance")


def normalize_severity(text: Optional[str]) -> Severity:
    if not text:
        return Severity.LOW
    s = text.lower()
    if "critical" in s:
        return Severity.CRITICAL
    if "high" in s:
        return Severity.HIGH
    if "medium" in s:
        return Severity.MEDIUM
    return Severity.LOW


def normalize_issue_type(text: Optional[str]) -> str:
    for t in ISSUE_TYPES:
        if (text or "").strip().lower() == t.lower():
            return t
    return "Bug"


def new_issue_id(index: int) -> str:
    return f"gen-{index}-{int(time.time() * 1000)}"


@dataclass(frozen=True)
class Issue:
    id: str
    file: str
    line: Optional[int]
    severity: Severity
    type: str
    title: str
    description: str
    original_code: str = ""
    suggested_fix: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["severity"] = self.severity.value
        return d


@dataclass
class ScanResult:
    repo_url: str
    issues: List[Issue]
    scanned_file: str
    scanned_file_content: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    files_scanned: int = 1
    duration_ms: int = 0
    status: str = "completed"  # completed | failed | scanning

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_url": self.repo_url,
            "timestamp": self.timestamp,
            "files_scanned": self.files_scanned,
            "duration_ms": self.duration_ms,
            "status": self.status,
            "scanned_file": self.scanned_file,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class ChatMessage:
    id: str
    role: str  # user | assistant
    content: str = ""
    done: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def severity_counts(issues: List[Issue]) -> Dict[str, int]:
    counts = {sev.value: 0 for sev in SEVERITY_ORDER}
    for issue in issues:
        counts[issue.severity.value] += 1
    counts["total"] = len(issues)
    return counts
