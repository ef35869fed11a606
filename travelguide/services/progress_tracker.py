import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from travelguide.models.progress_models import (
    PipelineStage,
    PipelineState,
    StageDefinition,
    StageStatus,
)

ProgressListener = Callable[[PipelineState], None]

DEFAULT_COMPLETE_MESSAGE = "完成"


class UnknownStageError(KeyError):
    """Raised for a stage id that was not declared at construction."""


class StageTransitionError(RuntimeError):
    """Raised when a stage is asked to move out of a terminal state."""


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProgressTracker:
    """Per-stage status bookkeeping with an overall percent.

    Each mutation replaces the affected stage with a new frozen
    ``PipelineStage`` and hands a frozen ``PipelineState`` to the listener.
    Stage ids are fixed at construction; stages are never added or removed.
    """

    def __init__(
        self,
        stages: Sequence[StageDefinition],
        listener: Optional[ProgressListener] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        if not stages:
            raise ValueError("at least one stage is required")
        ids = [stage.id for stage in stages]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate stage ids: {ids}")

        self._definitions = list(stages)
        self._index: Dict[str, int] = {stage_id: i for i, stage_id in enumerate(ids)}
        self._listener = listener
        self._clock = clock or _now_ms
        self.logger = logging.getLogger(__name__)
        self._init_state()

    def _init_state(self) -> None:
        self._stages: List[PipelineStage] = [
            PipelineStage(id=d.id, display_name=d.display_name) for d in self._definitions
        ]
        self._current_stage_id: Optional[str] = None
        self._completed = 0
        self._has_error = False

    # Listener ---------------------------------------------------------------

    def set_listener(self, listener: Optional[ProgressListener]) -> None:
        """Replace the single listener."""
        self._listener = listener

    def _notify(self) -> None:
        if self._listener is None:
            return
        state = self.snapshot()
        try:
            self._listener(state)
        except Exception as e:
            self.logger.error(f"[progress] Listener failed: {e}", exc_info=True)

    # Queries --------------------------------------------------------------

    def snapshot(self) -> PipelineState:
        total = len(self._stages)
        overall = round(sum(s.progress_percent for s in self._stages) / total)
        return PipelineState(
            stages=tuple(self._stages),
            current_stage_id=self._current_stage_id,
            overall_progress_percent=overall,
            is_complete=self._completed == total,
            has_error=self._has_error,
            total_stages=total,
            completed_stages=self._completed,
        )

    def get_stage(self, stage_id: str) -> PipelineStage:
        return self._stages[self._lookup(stage_id)]

    def _lookup(self, stage_id: str) -> int:
        try:
            return self._index[stage_id]
        except KeyError:
            raise UnknownStageError(stage_id) from None

    def _replace(self, index: int, **changes: Any) -> PipelineStage:
        stage = self._stages[index].model_copy(update=changes)
        self._stages[index] = stage
        return stage

    def _require_not_terminal(self, index: int, action: str) -> PipelineStage:
        stage = self._stages[index]
        if stage.status.is_terminal:
            raise StageTransitionError(
                f"cannot {action} stage '{stage.id}' in terminal status {stage.status.value}"
            )
        return stage

    # Transitions ----------------------------------------------------------

    def start_stage(self, stage_id: str, message: Optional[str] = None) -> None:
        index = self._lookup(stage_id)
        self._require_not_terminal(index, "start")
        self._replace(
            index,
            status=StageStatus.IN_PROGRESS,
            progress_percent=0,
            message=message,
            started_at=self._clock(),
        )
        self._current_stage_id = stage_id
        self._notify()

    def update_stage_progress(self, stage_id: str, percent: float, message: Optional[str] = None) -> None:
        index = self._lookup(stage_id)
        stage = self._stages[index]
        if stage.status != StageStatus.IN_PROGRESS:
            self.logger.debug(f"[progress] Ignoring update for '{stage_id}' in status {stage.status.value}")
            return

        clamped = int(round(min(100.0, max(0.0, float(percent)))))
        changes: Dict[str, Any] = {"progress_percent": max(stage.progress_percent, clamped)}
        if message is not None:
            changes["message"] = message
        self._replace(index, **changes)
        self._notify()

    def complete_stage(self, stage_id: str, result: Any = None, message: Optional[str] = None) -> None:
        index = self._lookup(stage_id)
        stage = self._require_not_terminal(index, "complete")
        if stage.status != StageStatus.IN_PROGRESS:
            raise StageTransitionError(f"cannot complete stage '{stage_id}' before it starts")

        self._replace(
            index,
            status=StageStatus.COMPLETED,
            progress_percent=100,
            result=result,
            message=message or DEFAULT_COMPLETE_MESSAGE,
            ended_at=self._clock(),
        )
        self._completed += 1
        if self._completed == len(self._stages):
            self._current_stage_id = None
        self._notify()

    def error_stage(self, stage_id: str, error_message: str) -> None:
        index = self._lookup(stage_id)
        self._require_not_terminal(index, "error")
        self._replace(
            index,
            status=StageStatus.ERROR,
            error=error_message,
            ended_at=self._clock(),
        )
        self._has_error = True
        self._current_stage_id = None
        self._notify()

    def reset(self) -> None:
        """Return every stage to pending and clear all derived flags."""
        self._init_state()
        self._notify()
