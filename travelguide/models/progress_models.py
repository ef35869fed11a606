from pydantic import BaseModel, Field
from typing import Annotated, Any, Literal, Optional, Tuple, Union
from enum import Enum

class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.COMPLETED, StageStatus.ERROR)

class StageDefinition(BaseModel):
    """Static description of a pipeline stage, known at construction time."""
    id: str = Field(..., min_length=1)
    display_name: str

class PipelineStage(BaseModel):
    id: str
    display_name: str
    status: StageStatus = StageStatus.PENDING
    progress_percent: int = Field(0, ge=0, le=100)
    message: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    started_at: Optional[int] = None  # ms since epoch
    ended_at: Optional[int] = None

    model_config = {"frozen": True}

class PipelineState(BaseModel):
    stages: Tuple[PipelineStage, ...]
    current_stage_id: Optional[str] = None
    overall_progress_percent: int = Field(0, ge=0, le=100)
    is_complete: bool = False
    has_error: bool = False
    total_stages: int
    completed_stages: int = 0

    model_config = {"frozen": True}

    def stage(self, stage_id: str) -> Optional[PipelineStage]:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

# Streaming events ---------------------------------------------------------

class CompletePayload(BaseModel):
    progress: PipelineState
    result: Any = None

class ErrorPayload(BaseModel):
    progress: PipelineState
    error: str

class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    data: PipelineState

class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    data: CompletePayload

class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    data: ErrorPayload

StreamEvent = Annotated[Union[ProgressEvent, CompleteEvent, ErrorEvent], Field(discriminator="type")]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})
