"""Intent workflow tracking model."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from keyword_intel.models.base import Base, StringUUID, TimestampMixin, UUIDMixin

STEP_SEEDS = "step_1_seeds"
STEP_LONGTAILS = "step_2_longtails"
STEP_FILTERING = "step_3_filtering"
STEP_CLUSTERING = "step_4_clustering"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

WORKFLOW_STEPS: tuple[str, ...] = (
    STEP_SEEDS,
    STEP_LONGTAILS,
    STEP_FILTERING,
    STEP_CLUSTERING,
)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})


def step_index(step: str) -> int:
    """1-based position of a step; ``completed`` sorts after the last step."""
    if step == STATUS_COMPLETED:
        return len(WORKFLOW_STEPS) + 1
    return WORKFLOW_STEPS.index(step) + 1


def next_status(step: str) -> str:
    """Status the workflow moves to once ``step`` has succeeded."""
    position = WORKFLOW_STEPS.index(step)
    if position + 1 < len(WORKFLOW_STEPS):
        return WORKFLOW_STEPS[position + 1]
    return STATUS_COMPLETED


class IntentWorkflow(Base, UUIDMixin, TimestampMixin):
    """Workflow status record; ``current_step`` names the step in progress."""

    __tablename__ = "intent_workflows"

    organization_id: Mapped[str] = mapped_column(StringUUID(), nullable=False, index=True)
    locale: Mapped[str] = mapped_column(String(10), default="en-US", nullable=False)

    status: Mapped[str] = mapped_column(String(30), default=STEP_SEEDS, nullable=False)
    current_step: Mapped[str] = mapped_column(String(30), default=STEP_SEEDS, nullable=False)

    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # step -> {"retry_count": int, "last_error_message": str | None, "completed_at": iso str | None}
    step_progress: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<IntentWorkflow {self.id} ({self.status})>"
