import argparse
import json
import os
from typing import List, Optional

from .analysis import analyze_repository
from .errors import ScanError
from .github import validate_repo_url
from .models import ScanResult, severity_counts
from .prs import generate_pr_details


def run_scan(repo_url: str, model: Optional[str] = None) -> ScanResult:
    outcome = analyze_repository(repo_url, model=model)
    return ScanResult(
        repo_url=repo_url,
        issues=outcome.issues,
        scanned_file=outcome.file_path,
        scanned_file_content=outcome.content,
        duration_ms=outcome.duration_ms,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="codeguard-scan", description="Scan one file of a GitHub repository with an LLM")
    sub = parser.add_subparsers(dest="command", required=True)

    p_scan = sub.add_parser("scan", help="Scan a repository and print the issues as JSON")
    p_scan.add_argument("--repo", required=True, help="Repository URL, e.g. https://github.com/owner/repo")
    p_scan.add_argument("--model", help="Model override (defaults to CODEGUARD_SCAN_MODEL)")
    p_scan.add_argument("--verbose", action="store_true", help="Log progress to stderr")

    p_pr = sub.add_parser("pr", help="Scan a repository and draft a pull request for every issue")
    p_pr.add_argument("--repo", required=True, help="Repository URL")
    p_pr.add_argument("--model", help="Model override for the scan")
    p_pr.add_argument("--verbose", action="store_true", help="Log progress to stderr")

    args = parser.parse_args(argv)
    if args.verbose:
        os.environ["CODEGUARD_VERBOSE"] = "1"

    try:
        repo_url = validate_repo_url(args.repo)
        result = run_scan(repo_url, args.model)
    except ScanError as e:
        print(json.dumps({"error": str(e), "kind": type(e).__name__}))
        return 2

    output = result.to_dict()
    output["counts"] = severity_counts(result.issues)
    if args.command == "pr":
        output["pull_request"] = generate_pr_details(result.issues).to_dict()

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
