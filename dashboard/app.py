import json
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from gitscan.analysis import AnalysisOutcome, analyze_repository
from gitscan.chat import Conversation
from gitscan.errors import InvalidRepoUrl, MissingCredentialError, RepositoryInaccessibleError
from gitscan.github import validate_repo_url
from gitscan.models import SEVERITY_ORDER, ScanResult
from gitscan.prs import generate_pr_details
from gitscan.settings import log

from .lifecycle import LifecycleTimings, ResultSlot, ScanLifecycle
from .results import ALL, PrJob, ResultView, code_lines


load_dotenv()
app = FastAPI(title="codeguard dashboard")

base_dir = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(base_dir / "templates"))

static_dir = base_dir / "static"
app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

SCAN_POOL = ThreadPoolExecutor(max_workers=2)
SCAN_TIMINGS = LifecycleTimings()

CONFIG_ERROR_MESSAGE = "System Error: API Key is missing or invalid."
ACCESS_ERROR_MESSAGE = "Unable to access repository. Please check the URL, ensure it is public, and try again."

# One scan result, one lifecycle and one chat transcript per process
STATE_LOCK = threading.Lock()
STATE: dict[str, Any] = {}


def reset_state() -> None:
    with STATE_LOCK:
        lifecycle = STATE.get("lifecycle")
        if lifecycle is not None:
            lifecycle.close()
        STATE.clear()
        STATE.update(
            {
                "view": "home",  # home | scanning | results
                "repo_url": "",
                "error": None,
                "lifecycle": None,
                "result_view": None,
                "pr_job": None,
                "conversation": Conversation(),
            }
        )


reset_state()


def describe_scan_error(exc: BaseException) -> str:
    if isinstance(exc, MissingCredentialError):
        return CONFIG_ERROR_MESSAGE
    if isinstance(exc, RepositoryInaccessibleError):
        return ACCESS_ERROR_MESSAGE
    detail = str(exc) or "Unknown error"
    return f"Scan failed: {detail}. Please check the URL and retry."


def _scan_succeeded(lifecycle: ScanLifecycle, repo_url: str, outcome: AnalysisOutcome) -> None:
    with STATE_LOCK:
        if STATE.get("lifecycle") is not lifecycle:
            return
        result = ScanResult(
            repo_url=repo_url,
            issues=outcome.issues,
            scanned_file=outcome.file_path,
            scanned_file_content=outcome.content,
            duration_ms=outcome.duration_ms,
        )
        STATE["result_view"] = ResultView(result)
        STATE["view"] = "results"
        STATE["lifecycle"] = None


def _scan_failed(lifecycle: ScanLifecycle, exc: BaseException) -> None:
    log("dashboard", f"Scan error: {exc!r}", always=True)
    with STATE_LOCK:
        if STATE.get("lifecycle") is not lifecycle:
            return
        STATE["error"] = describe_scan_error(exc)
        STATE["view"] = "home"
        STATE["lifecycle"] = None


def start_scan(repo_url: str) -> ScanLifecycle:
    slot = ResultSlot()
    lifecycle = ScanLifecycle(
        slot,
        on_complete=lambda outcome: _scan_succeeded(lifecycle, repo_url, outcome),
        on_error=lambda exc: _scan_failed(lifecycle, exc),
        timings=SCAN_TIMINGS,
    )
    with STATE_LOCK:
        previous = STATE.get("lifecycle")
        if previous is not None:
            previous.close()
        STATE.update(
            {
                "view": "scanning",
                "repo_url": repo_url,
                "error": None,
                "lifecycle": lifecycle,
                "result_view": None,
                "pr_job": None,
            }
        )
    slot.attach(SCAN_POOL.submit(analyze_repository, repo_url))
    return lifecycle.start()


def _render_home(request: Request, status_code: int = 200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "repo_url": STATE["repo_url"],
            "error": STATE["error"],
            "has_results": STATE["result_view"] is not None,
        },
        status_code=status_code,
    )


@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    if STATE["view"] == "scanning" and STATE["lifecycle"] is not None:
        return RedirectResponse(url="/scan", status_code=303)
    return _render_home(request)


@app.post("/scans")
def trigger_scan(request: Request, repo_url: str = Form("")):
    try:
        trimmed = validate_repo_url(repo_url)
    except InvalidRepoUrl as e:
        with STATE_LOCK:
            STATE["repo_url"] = repo_url
            STATE["error"] = str(e)
        return _render_home(request, status_code=400)
    start_scan(trimmed)
    return RedirectResponse(url="/scan", status_code=303)


@app.post("/scans/clear")
def clear_input():
    with STATE_LOCK:
        STATE["repo_url"] = ""
        STATE["error"] = None
    return RedirectResponse(url="/", status_code=303)


@app.get("/scan", response_class=HTMLResponse)
def scan_progress(request: Request):
    lifecycle: Optional[ScanLifecycle] = STATE["lifecycle"]
    if lifecycle is None:
        return RedirectResponse(url="/results" if STATE["view"] == "results" else "/", status_code=303)
    return templates.TemplateResponse(
        request,
        "scanning.html",
        {"repo_url": STATE["repo_url"], "progress": lifecycle.snapshot()},
    )


@app.get("/scan/progress.json")
def scan_progress_json():
    lifecycle: Optional[ScanLifecycle] = STATE["lifecycle"]
    if lifecycle is None:
        view = STATE["view"]
        return {"view": view, "redirect": "/results" if view == "results" else "/", "error": STATE["error"]}
    return {"view": "scanning", **lifecycle.snapshot()}


@app.get("/results", response_class=HTMLResponse)
def results_page(request: Request):
    view: Optional[ResultView] = STATE["result_view"]
    if view is None:
        return RedirectResponse(url="/", status_code=303)
    content = view.result.scanned_file_content
    issues = [
        {
            "issue": issue,
            "fixed": view.is_fixed(issue.id),
            "confirming": view.pending_fix == issue.id,
            "code": code_lines(content, issue.line),
        }
        for issue in view.visible_issues()
    ]
    return templates.TemplateResponse(
        request,
        "results.html",
        {
            "result": view.result,
            "counts": view.counts(),
            "severities": [s.value for s in SEVERITY_ORDER],
            "filter": view.filter,
            "all_filter": ALL,
            "issues": issues,
            "fixed_count": len(view.fixed),
        },
    )


@app.post("/results/filter")
def set_filter(severity: str = Form(ALL)):
    view: Optional[ResultView] = STATE["result_view"]
    if view is not None:
        try:
            view.set_filter(severity)
        except ValueError:
            view.set_filter(ALL)
    return RedirectResponse(url="/results", status_code=303)


@app.post("/issues/{issue_id}/fix")
def request_fix(issue_id: str):
    view: Optional[ResultView] = STATE["result_view"]
    if view is not None:
        view.request_fix(issue_id)
    return RedirectResponse(url=f"/results#{issue_id}", status_code=303)


@app.post("/issues/{issue_id}/fix/confirm")
def confirm_fix(issue_id: str):
    view: Optional[ResultView] = STATE["result_view"]
    if view is not None:
        view.confirm_fix(issue_id)
    return RedirectResponse(url=f"/results#{issue_id}", status_code=303)


@app.post("/issues/{issue_id}/fix/cancel")
def cancel_fix(issue_id: str):
    view: Optional[ResultView] = STATE["result_view"]
    if view is not None:
        view.cancel_fix(issue_id)
    return RedirectResponse(url=f"/results#{issue_id}", status_code=303)


@app.post("/pr")
def create_pr():
    view: Optional[ResultView] = STATE["result_view"]
    if view is None:
        return JSONResponse(status_code=404, content={"error": "no_results"})
    job = PrJob(view.issues_for_pr(), generate=generate_pr_details)
    with STATE_LOCK:
        STATE["pr_job"] = job
    job.start()
    return job.snapshot()


@app.get("/pr.json")
def pr_status():
    job: Optional[PrJob] = STATE["pr_job"]
    if job is None:
        return JSONResponse(status_code=404, content={"error": "not_found"})
    return job.snapshot()


class ChatRequest(BaseModel):
    message: str
    deep: bool = False


@app.post("/chat/open")
def chat_open():
    conversation: Conversation = STATE["conversation"]
    conversation.open()
    return {"messages": conversation.snapshot()}


@app.get("/chat/messages.json")
def chat_messages():
    conversation: Conversation = STATE["conversation"]
    return {"messages": conversation.snapshot(), "busy": conversation.busy}


@app.post("/chat/messages")
def chat_send(req: ChatRequest):
    conversation: Conversation = STATE["conversation"]

    def _events():
        for event in conversation.send(req.message, deep=req.deep):
            yield json.dumps(event) + "\n"

    return StreamingResponse(_events(), media_type="application/x-ndjson")
