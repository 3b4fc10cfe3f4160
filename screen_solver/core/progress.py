from typing import Callable, List, Optional

from .types import RunResult, RunState, SolutionCandidate, Stage

Observer = Callable[[RunState], None]


class ProgressReporter:
    """
    Pushes RunState snapshots for one run to an observer.

    Every state carries the run id. Progress never moves backwards, and
    exactly one terminal state (completed or error) is emitted; anything
    reported after it is dropped.
    """

    def __init__(self, run_id: str, observer: Optional[Observer] = None):
        self.run_id = run_id
        self._observer = observer
        self._progress = 0
        self._stage = Stage.IDLE
        self._step = ""
        self._closed = False

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def closed(self) -> bool:
        return self._closed

    def update(
        self,
        stage: Stage,
        step: str,
        progress: int,
        details: str = "",
        candidates: Optional[List[SolutionCandidate]] = None,
    ) -> None:
        if self._closed:
            return
        self._stage = stage
        self._step = step
        self._progress = max(self._progress, min(int(progress), 99))
        self._emit(RunState(
            run_id=self.run_id,
            stage=stage,
            current_step=step,
            progress=self._progress,
            step_details=details,
            candidates=candidates,
        ))

    def complete(self, details: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        self._progress = 100
        self._emit(RunState(
            run_id=self.run_id,
            stage=Stage.DONE,
            current_step="Done",
            progress=100,
            step_details=details,
            completed=True,
        ))

    def fail(self, error: str) -> None:
        if self._closed:
            return
        self._closed = True
        self._emit(RunState(
            run_id=self.run_id,
            stage=Stage.DONE,
            current_step=self._step or "Failed",
            progress=self._progress,
            step_details=error,
            error=error,
        ))

    def _emit(self, state: RunState) -> None:
        if self._observer is None:
            return
        try:
            self._observer(state)
        except Exception as e:
            print(f"[Progress] Observer raised on run {self.run_id}: {e}")


class RunFilter:
    """Observer-side guard: forwards only events of the current run."""

    def __init__(self, observer: Observer):
        self._observer = observer
        self._current: Optional[str] = None

    @property
    def current(self) -> Optional[str]:
        return self._current

    def begin(self, run_id: str) -> None:
        self._current = run_id

    def reset(self) -> None:
        self._current = None

    def on_progress(self, state: RunState) -> None:
        if state.run_id != self._current:
            print(f"[Progress] Dropping stale update from run {state.run_id}")
            return
        self._observer(state)

    def accepts(self, result: RunResult) -> bool:
        return result.run_id == self._current
