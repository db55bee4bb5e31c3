"""Workflow status tracking with validated step transitions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from keyword_intel.config import settings
from keyword_intel.core.exceptions import InvalidWorkflowTransitionError, WorkflowNotFoundError
from keyword_intel.models.workflow import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    TERMINAL_STATUSES,
    WORKFLOW_STEPS,
    next_status,
)
from keyword_intel.repositories.contracts import WorkflowStore
from keyword_intel.schemas.workflow import WorkflowRecord

logger = logging.getLogger(__name__)


class WorkflowStatusTracker:
    """Moves a workflow through its steps and records retry progress.

    ``status`` names the step the workflow is waiting on. Allowed moves:

    - a step to the step after it (or ``completed`` after the last one);
    - any non-terminal status to ``failed``;
    - ``failed`` back into the step that failed, when a run resumes;
    - a step to itself, which is a no-op.
    """

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    async def start_workflow(
        self,
        workflow_id: str,
        organization_id: str,
        locale: str | None = None,
    ) -> WorkflowRecord:
        existing = await self.store.get(workflow_id, organization_id)
        if existing is not None:
            return existing

        workflow = await self.store.create(
            workflow_id=workflow_id,
            organization_id=organization_id,
            locale=locale or settings.default_locale,
        )
        logger.info(
            "Workflow created",
            extra={"workflow_id": workflow_id, "organization_id": organization_id},
        )
        return workflow

    async def get_workflow(
        self,
        workflow_id: str,
        organization_id: str | None = None,
    ) -> WorkflowRecord:
        workflow = await self.store.get(workflow_id, organization_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def update_workflow_status(
        self,
        workflow_id: str,
        organization_id: str,
        status: str,
        error_message: str | None = None,
        retry_count: int | None = None,
    ) -> WorkflowRecord:
        workflow = await self.get_workflow(workflow_id, organization_id)
        current = workflow.status
        step = workflow.current_step
        progress = dict(workflow.step_progress or {})

        if status == STATUS_FAILED:
            if current in TERMINAL_STATUSES:
                raise InvalidWorkflowTransitionError(current, status)
            final_retries = retry_count if retry_count is not None else workflow.retry_count
            progress[step] = {
                **progress.get(step, {}),
                "retry_count": final_retries,
                "last_error_message": error_message,
            }
            updates: dict[str, Any] = {
                "status": STATUS_FAILED,
                "retry_count": final_retries,
                "last_error_message": error_message,
                "step_progress": progress,
            }
        elif current == STATUS_FAILED and status == step:
            updates = {"status": step, "last_error_message": None}
        elif current == status and current not in TERMINAL_STATUSES:
            return workflow
        elif current in WORKFLOW_STEPS and status == next_status(current):
            step_entry = progress.get(current, {})
            final_retries = (
                retry_count if retry_count is not None else int(step_entry.get("retry_count") or 0)
            )
            progress[current] = {
                "retry_count": final_retries,
                "last_error_message": None if final_retries == 0 else step_entry.get("last_error_message"),
                "completed_at": datetime.now(timezone.utc).isoformat(),
            }
            updates = {
                "status": status,
                "current_step": status,
                "retry_count": 0,
                "last_error_message": None,
                "step_progress": progress,
            }
        else:
            raise InvalidWorkflowTransitionError(current, status)

        updated = await self.store.update(workflow_id, organization_id, updates)
        logger.info(
            "Workflow status updated",
            extra={
                "workflow_id": workflow_id,
                "from_status": current,
                "to_status": updated.status,
                "retry_count": updated.retry_count,
            },
        )
        if updated.status == STATUS_COMPLETED:
            logger.info("Workflow completed", extra={"workflow_id": workflow_id})
        return updated

    async def update_workflow_retry_metadata(
        self,
        workflow_id: str,
        organization_id: str,
        step: str,
        retry_count: int,
        last_error_message: str | None,
    ) -> WorkflowRecord:
        workflow = await self.get_workflow(workflow_id, organization_id)
        progress = dict(workflow.step_progress or {})
        progress[step] = {
            **progress.get(step, {}),
            "retry_count": retry_count,
            "last_error_message": last_error_message,
        }
        return await self.store.update(
            workflow_id,
            organization_id,
            {
                "retry_count": retry_count,
                "last_error_message": last_error_message,
                "step_progress": progress,
            },
        )
