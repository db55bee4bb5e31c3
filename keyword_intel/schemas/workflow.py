"""Workflow status schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StepProgress(BaseModel):
    """Retry and completion metadata of one workflow step."""

    retry_count: int = 0
    last_error_message: str | None = None
    completed_at: datetime | None = None


class WorkflowRecord(BaseModel):
    """Workflow status as read back from the store."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    locale: str = "en-US"
    status: str
    current_step: str
    retry_count: int = 0
    last_error_message: str | None = None
    step_progress: dict[str, Any] | None = Field(default=None)

    def progress_for(self, step: str) -> StepProgress:
        raw = (self.step_progress or {}).get(step) or {}
        return StepProgress.model_validate(raw)
