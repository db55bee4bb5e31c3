"""Repository for IntentWorkflow status records."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select

from keyword_intel.core.database import get_session_context
from keyword_intel.core.exceptions import WorkflowNotFoundError
from keyword_intel.models.workflow import STEP_SEEDS, IntentWorkflow
from keyword_intel.schemas.workflow import WorkflowRecord

WORKFLOW_UPDATE_ALLOWLIST = frozenset(
    {
        "status",
        "current_step",
        "retry_count",
        "last_error_message",
        "step_progress",
        "locale",
    }
)


class WorkflowRepository:
    """Handles IntentWorkflow reads and updates via short-lived sessions."""

    async def get(self, workflow_id: str, organization_id: str | None = None) -> WorkflowRecord | None:
        stmt = select(IntentWorkflow).where(IntentWorkflow.id == workflow_id)
        if organization_id is not None:
            stmt = stmt.where(IntentWorkflow.organization_id == organization_id)
        async with get_session_context(commit_on_exit=False) as session:
            result = await session.execute(stmt)
            workflow = result.scalar_one_or_none()
            return WorkflowRecord.model_validate(workflow) if workflow else None

    async def create(self, *, workflow_id: str, organization_id: str, locale: str) -> WorkflowRecord:
        async with get_session_context() as session:
            workflow = IntentWorkflow(
                id=workflow_id,
                organization_id=organization_id,
                locale=locale,
                status=STEP_SEEDS,
                current_step=STEP_SEEDS,
                retry_count=0,
                step_progress={},
            )
            session.add(workflow)
            await session.flush()
            return WorkflowRecord.model_validate(workflow)

    async def update(
        self,
        workflow_id: str,
        organization_id: str,
        updates: Mapping[str, Any],
    ) -> WorkflowRecord:
        invalid = sorted(set(updates) - WORKFLOW_UPDATE_ALLOWLIST)
        if invalid:
            raise ValueError(f"Invalid workflow update fields: {', '.join(invalid)}")

        async with get_session_context() as session:
            result = await session.execute(
                select(IntentWorkflow).where(
                    IntentWorkflow.id == workflow_id,
                    IntentWorkflow.organization_id == organization_id,
                )
            )
            workflow = result.scalar_one_or_none()
            if workflow is None:
                raise WorkflowNotFoundError(workflow_id)
            for key, value in updates.items():
                setattr(workflow, key, value)
            await session.flush()
            return WorkflowRecord.model_validate(workflow)
