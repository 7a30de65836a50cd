import json
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Sequence

from openai import OpenAI

from .llm import completion_params, json_schema_format, make_client
from .models import Issue
from .settings import get_api_key, get_pr_model, log


PR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
    },
    "required": ["title", "description"],
    "additionalProperties": False,
}

TEMPLATE_TITLE = "refactor: apply security patches and code improvements"
FALLBACK_TITLE = "fix: resolve detected security vulnerabilities"
FALLBACK_DESCRIPTION = "An error occurred generating the detailed PR description."


@dataclass(frozen=True)
class PullRequestDraft:
    title: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    def to_markdown(self) -> str:
        return f"# {self.title}\n\n{self.description}"


def template_draft(issues: Sequence[Issue]) -> PullRequestDraft:
    changes = "\n".join(f"- {i.title}" for i in issues)
    return PullRequestDraft(
        title=TEMPLATE_TITLE,
        description=(
            f"## Summary\nThis Pull Request applies automated fixes for {len(issues)} detected issues."
            f"\n\n## Changes\n{changes}"
        ),
    )


def build_pr_prompt(issues: Sequence[Issue]) -> str:
    fixed = "\n".join(f"- File: {i.file} | Issue: {i.title} ({i.severity.value})" for i in issues)
    return f"""
You are a senior software engineer.
Create a Pull Request title and description for the following code fixes.

Issues Fixed:
{fixed}

The PR description must be written in Markdown.
"""


def generate_pr_details(issues: Sequence[Issue], client: Optional[OpenAI] = None, model: Optional[str] = None) -> PullRequestDraft:
    """Draft a PR title and Markdown body for the given issues.

    Never raises: without a credential (or with nothing to summarize) the
    local template is returned, and any model failure yields a fixed
    placeholder.
    """
    issues = list(issues)
    api_key = get_api_key()
    if (client is None and not api_key) or not issues:
        return template_draft(issues)

    try:
        if client is None:
            client = make_client(api_key)
        params = completion_params(
            model or get_pr_model(),
            [{"role": "user", "content": build_pr_prompt(issues)}],
            temperature=0.2,
            response_format=json_schema_format("pull_request", PR_SCHEMA),
        )
        resp = client.chat.completions.create(**params)
        text = resp.choices[0].message.content
        if not text:
            raise ValueError("Empty response")
        obj = json.loads(text)
        return PullRequestDraft(title=str(obj["title"]), description=str(obj["description"]))
    except Exception as e:
        log("pr", f"PR generation failed: {e}", always=True)
        return PullRequestDraft(title=FALLBACK_TITLE, description=FALLBACK_DESCRIPTION)
