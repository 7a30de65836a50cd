"""Staged progress for a running scan.

The stages before the AI scan are fixed-length pacing; the AI scan stage is
held until the real analysis settles, and the report stage counts up to 100
before the result is handed over. The transitions live in ``advance`` so
they can be exercised without threads or timers; ``ScanLifecycle`` drives
them from a background thread.
"""

import threading
from concurrent.futures import Future
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from gitscan.settings import log


class Stage(str, Enum):
    CLONING = "cloning"
    STATIC_ANALYSIS = "static_analysis"
    AI_SCAN = "ai_scan"
    REPORT = "report"
    DONE = "done"
    ERROR = "error"


STEPS = [
    {"id": Stage.CLONING.value, "label": "Cloning Repository", "description": "Fetching files from GitHub..."},
    {"id": Stage.STATIC_ANALYSIS.value, "label": "Running Static Analysis (ESLint/Bandit)", "description": "Checking syntax and known patterns..."},
    {"id": Stage.AI_SCAN.value, "label": "AI Deep Scan", "description": "Analyzing code for vulnerabilities..."},
    {"id": Stage.REPORT.value, "label": "Generating Report", "description": "Compiling findings and fixes..."},
]
STEP_ORDER = [Stage.CLONING, Stage.STATIC_ANALYSIS, Stage.AI_SCAN, Stage.REPORT, Stage.DONE]

REPORT_STEP = 5


@dataclass(frozen=True)
class LifecycleTimings:
    cloning: float = 1.2
    static_analysis: float = 1.5
    settle: float = 0.8
    tick: float = 0.03
    finish: float = 0.5
    poll: float = 0.05


@dataclass(frozen=True)
class LifecycleState:
    stage: Stage = Stage.CLONING
    progress: int = 0
    settled: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class DwellElapsed:
    pass


@dataclass(frozen=True)
class ResultSettled:
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ReportTick:
    pass


def advance(state: LifecycleState, event: Any) -> LifecycleState:
    """Apply one event; events that do not fit the current stage are ignored."""
    stage = state.stage
    if stage in (Stage.DONE, Stage.ERROR):
        return state
    if isinstance(event, DwellElapsed):
        if stage == Stage.CLONING:
            return replace(state, stage=Stage.STATIC_ANALYSIS)
        if stage == Stage.STATIC_ANALYSIS:
            return replace(state, stage=Stage.AI_SCAN)
        if stage == Stage.AI_SCAN and state.settled:
            return replace(state, stage=Stage.REPORT, progress=0)
        if stage == Stage.REPORT and state.progress >= 100:
            return replace(state, stage=Stage.DONE)
        return state
    if isinstance(event, ResultSettled):
        if stage != Stage.AI_SCAN or state.settled:
            return state
        if event.error is not None:
            return replace(state, stage=Stage.ERROR, settled=True, error=str(event.error))
        return replace(state, settled=True)
    if isinstance(event, ReportTick):
        if stage == Stage.REPORT:
            return replace(state, progress=min(100, state.progress + REPORT_STEP))
        return state
    return state


class ResultSlot:
    """Holds nothing, a value or an error; filled at most once."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.value: Any = None
        self.error: Optional[BaseException] = None

    def _fill(self, value: Any, error: Optional[BaseException]) -> None:
        with self._lock:
            if self._event.is_set():
                raise RuntimeError("result slot already filled")
            self.value = value
            self.error = error
            self._event.set()

    def set_result(self, value: Any) -> None:
        self._fill(value, None)

    def set_error(self, error: BaseException) -> None:
        self._fill(None, error)

    def attach(self, future: Future) -> None:
        def _done(f: Future) -> None:
            exc = f.exception()
            if exc is not None:
                self.set_error(exc)
            else:
                self.set_result(f.result())

        future.add_done_callback(_done)

    @property
    def filled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class ScanLifecycle:
    def __init__(
        self,
        slot: ResultSlot,
        on_complete: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
        timings: LifecycleTimings = LifecycleTimings(),
    ):
        self.slot = slot
        self.on_complete = on_complete
        self.on_error = on_error
        self.timings = timings
        self.state = LifecycleState()
        self.history: List[Stage] = [self.state.stage]
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ScanLifecycle":
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        return self

    def close(self) -> None:
        """Clear pending waits and stop dispatching events.

        A callback that already passed its stop check may still be running
        when this returns, so callbacks must check that their lifecycle is
        still the current one.
        """
        self._stop.set()

    @property
    def closed(self) -> bool:
        return self._stop.is_set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _dwell(self, seconds: float) -> bool:
        return not self._stop.wait(seconds)

    def _dispatch(self, event: Any) -> LifecycleState:
        with self._lock:
            before = self.state
            self.state = advance(before, event)
            if self.state.stage != before.stage:
                self.history.append(self.state.stage)
                log("lifecycle", f"{before.stage.value} -> {self.state.stage.value}")
            return self.state

    def run(self) -> None:
        t = self.timings
        if not self._dwell(t.cloning):
            return
        self._dispatch(DwellElapsed())
        if not self._dwell(t.static_analysis):
            return
        self._dispatch(DwellElapsed())

        while not self.slot.wait(t.poll):
            if self._stop.is_set():
                return
        state = self._dispatch(ResultSettled(self.slot.error))
        if state.stage == Stage.ERROR:
            if not self._stop.is_set():
                self.on_error(self.slot.error)
            return

        if not self._dwell(t.settle):
            return
        state = self._dispatch(DwellElapsed())
        while state.progress < 100:
            if not self._dwell(t.tick):
                return
            state = self._dispatch(ReportTick())
        if not self._dwell(t.finish):
            return
        self._dispatch(DwellElapsed())
        if not self._stop.is_set():
            self.on_complete(self.slot.value)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            state = self.state
        current = STEP_ORDER.index(state.stage) if state.stage in STEP_ORDER else None
        steps = []
        for index, step in enumerate(STEPS):
            if state.stage == Stage.ERROR:
                status = "waiting"
            elif index < current:
                status = "completed"
            elif index == current:
                status = "active"
            else:
                status = "waiting"
            steps.append({**step, "status": status})
        return {
            "stage": state.stage.value,
            "progress": state.progress,
            "error": state.error,
            "steps": steps,
        }
