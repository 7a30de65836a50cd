import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from openai import OpenAI

from .errors import AnalysisFailedError, MissingCredentialError, RepositoryInaccessibleError
from .github import SourceFile, locate_source_file
from .llm import completion_params, json_schema_format, make_client
from .models import Issue, new_issue_id, normalize_issue_type, normalize_severity
from .settings import get_api_key, get_scan_model, log


def _nullable(kind: str) -> Dict[str, Any]:
    return {"type": [kind, "null"]}


# Strict structured outputs need every key listed as required; the optional
# fields are the nullable ones.
ISSUE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "file": _nullable("string"),
                    "line": _nullable("integer"),
                    "severity": {"type": "string"},
                    "type": _nullable("string"),
                    "description": {"type": "string"},
                    "suggestedFix": {"type": "string"},
                    "originalCode": _nullable("string"),
                },
                "required": ["title", "file", "line", "severity", "type", "description", "suggestedFix", "originalCode"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["issues"],
    "additionalProperties": False,
}


@dataclass
class AnalysisOutcome:
    issues: List[Issue]
    file_path: str
    content: str
    duration_ms: int = 0


def build_prompt(filename: str, content: str) -> str:
    return f"""
Analyze the following code for security vulnerabilities, logic bugs, and code smells.
The file is named '{filename}'.

Return a JSON object containing an array of issues.
If no issues are found, return an empty array.

For each issue, include:
- title (short summary)
- file (must be '{filename}')
- line (approximate line number)
- severity (Critical, High, Medium, Low)
- type (Security, Bug, Code Smell, Performance)
- description (detailed technical explanation)
- suggestedFix (corrected code snippet)
- originalCode (the specific lines causing the issue)

CODE TO ANALYZE:
{content}
"""


def _coerce_line(value: Any) -> Optional[int]:
    try:
        line = int(value)
    except (TypeError, ValueError):
        return None
    return line if line > 0 else None


def parse_issues(text: Optional[str], file_path: str) -> List[Issue]:
    """Turn the model's JSON body into Issues.

    Severity is normalized and ``file`` is pinned to the scanned file; the
    model's own value for it is not trusted.
    """
    if not text:
        raise AnalysisFailedError("empty response from model")
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise AnalysisFailedError(f"unparsable response: {e}") from e
    if not isinstance(obj, dict):
        raise AnalysisFailedError("response is not a JSON object")
    raw_issues = obj.get("issues") or []
    if not isinstance(raw_issues, list):
        raise AnalysisFailedError("issues is not a list")
    issues: List[Issue] = []
    for index, raw in enumerate(raw_issues):
        if not isinstance(raw, dict):
            continue
        issues.append(
            Issue(
                id=new_issue_id(index),
                file=file_path,
                line=_coerce_line(raw.get("line")),
                severity=normalize_severity(raw.get("severity")),
                type=normalize_issue_type(raw.get("type")),
                title=raw.get("title") or "Untitled issue",
                description=raw.get("description") or "",
                original_code=raw.get("originalCode") or "",
                suggested_fix=raw.get("suggestedFix") or "",
            )
        )
    return issues


def analyze_source(client: OpenAI, model: str, source: SourceFile) -> List[Issue]:
    params = completion_params(
        model,
        [{"role": "user", "content": build_prompt(source.path, source.content)}],
        response_format=json_schema_format("scan_issues", ISSUE_SCHEMA),
    )
    try:
        resp = client.chat.completions.create(**params)
        text = resp.choices[0].message.content
    except Exception as e:
        log("analysis", f"Model call failed: {e}", always=True)
        raise AnalysisFailedError(str(e)) from e
    return parse_issues(text, source.path)


def analyze_repository(
    repo_url: str,
    client: Optional[OpenAI] = None,
    http: Optional[httpx.Client] = None,
    model: Optional[str] = None,
    locate: Callable[..., Optional[SourceFile]] = locate_source_file,
) -> AnalysisOutcome:
    api_key = get_api_key()
    if client is None and not api_key:
        raise MissingCredentialError()

    started = time.monotonic()
    source = locate(repo_url, client=http)
    if source is None:
        raise RepositoryInaccessibleError()

    log("analysis", f"Analyzing real file: {source.path}")
    if client is None:
        client = make_client(api_key)
    issues = analyze_source(client, model or get_scan_model(), source)
    duration_ms = int((time.monotonic() - started) * 1000)
    log("analysis", f"Completed analysis of {source.path}: {len(issues)} issues in {duration_ms} ms")
    return AnalysisOutcome(issues=issues, file_path=source.path, content=source.content, duration_ms=duration_ms)
