"""Base class for pipeline step services."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from keyword_intel.core.error_classifier import classify_error
from keyword_intel.core.exceptions import (
    InvalidWorkflowTransitionError,
    StepExecutionError,
    WorkflowNotFoundError,
)
from keyword_intel.core.retry import (
    STAGE_RETRY_POLICY,
    RetryAttempt,
    RetryPolicy,
    SleepFn,
    execute_with_retry,
    sleep_ms,
)
from keyword_intel.models.workflow import STATUS_FAILED, next_status
from keyword_intel.services.analytics import (
    EVENT_STEP_FAILED,
    EVENT_STEP_RETRIED,
    EventPublisher,
    InMemoryEventPublisher,
)
from keyword_intel.services.workflow_status import WorkflowStatusTracker

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
ResultT = TypeVar("ResultT")


class StepResult(Generic[OutputT]):
    """Result of a step execution."""

    def __init__(
        self,
        success: bool,
        data: OutputT | None = None,
        error: StepExecutionError | None = None,
    ) -> None:
        self.success = success
        self.data = data
        self.error = error


class BaseStepService(ABC, Generic[InputT, OutputT]):
    """Abstract base class for all pipeline step services.

    Each step service should:
    1. Define workflow_step and step_name
    2. Implement _validate_preconditions to check prerequisites
    3. Implement _execute with the main step logic
    4. Implement _persist_results to save anything not written while executing

    Provider calls go through ``_with_retry`` so every retry is recorded on the
    workflow and published before the backoff sleep.
    """

    workflow_step: str
    step_name: str

    def __init__(
        self,
        *,
        tracker: WorkflowStatusTracker | None = None,
        publisher: EventPublisher | None = None,
        retry_policy: RetryPolicy = STAGE_RETRY_POLICY,
        sleep: SleepFn = sleep_ms,
    ) -> None:
        self.tracker = tracker
        self.publisher = publisher or InMemoryEventPublisher()
        self.retry_policy = retry_policy
        self.sleep = sleep
        self.workflow_id: str | None = None
        self.organization_id: str | None = None
        self.retry_count = 0
        self._retry_lock = asyncio.Lock()

    def _bind(self, workflow_id: str, organization_id: str | None) -> None:
        self.workflow_id = workflow_id
        self.organization_id = organization_id
        self.retry_count = 0

    @property
    def _step_info(self) -> dict[str, str | None]:
        return {
            "step": self.workflow_step,
            "step_name": self.step_name,
            "workflow_id": self.workflow_id,
            "organization_id": self.organization_id,
        }

    async def run(self, workflow_id: str, organization_id: str, input_data: InputT) -> StepResult[OutputT]:
        """Run the step and advance (or fail) the workflow accordingly."""
        self._bind(workflow_id, organization_id)
        step_info = self._step_info
        logger.info("Step started", extra=step_info)

        try:
            await self._validate_preconditions(input_data)
            logger.info("Preconditions validated", extra=step_info)

            result = await self._execute(input_data)
            logger.info("Step execution finished, persisting results", extra=step_info)

            await self._persist_results(result)
        except Exception as e:
            error = self._wrap_error(e)
            logger.warning(
                "Step failed",
                extra={**step_info, "error": str(e), "error_type": error.error_type},
            )
            await self._handle_error(error)
            return StepResult(success=False, error=error)

        if self.tracker is not None:
            await self.tracker.update_workflow_status(
                workflow_id,
                organization_id,
                next_status(self.workflow_step),
                retry_count=self.retry_count,
            )
        logger.info(
            "Step completed successfully",
            extra={**step_info, "retry_count": self.retry_count},
        )
        return StepResult(success=True, data=result)

    @abstractmethod
    async def _execute(self, input_data: InputT) -> OutputT:
        """Override with step-specific logic."""
        pass

    @abstractmethod
    async def _validate_preconditions(self, input_data: InputT) -> None:
        """Validate that prerequisites are met.

        Raises:
            StepPreconditionError: If preconditions are not met.
        """
        pass

    async def _persist_results(self, result: OutputT) -> None:
        """Save results not already written by ``_execute``."""
        return None

    async def _with_retry(
        self,
        action: Callable[[], Awaitable[ResultT]],
        operation_name: str,
    ) -> ResultT:
        return await execute_with_retry(
            action,
            self.retry_policy,
            operation_name,
            on_retry=self._record_retry,
            sleep=self.sleep,
        )

    async def _record_retry(self, attempt: RetryAttempt) -> None:
        """Persist live retry progress, then publish the retry event.

        Concurrent calls from a fan-out are serialized so the stored count
        only ever grows.
        """
        async with self._retry_lock:
            self.retry_count += 1
            if self.tracker is not None and self.workflow_id and self.organization_id:
                await self.tracker.update_workflow_retry_metadata(
                    self.workflow_id,
                    self.organization_id,
                    self.workflow_step,
                    self.retry_count,
                    attempt.error_message,
                )
        await self.publisher.publish(
            EVENT_STEP_RETRIED,
            {
                "workflow_id": self.workflow_id,
                "organization_id": self.organization_id,
                "step": self.workflow_step,
                "operation": attempt.operation_name,
                "attempt_number": attempt.attempt_number,
                "error_type": attempt.error_type,
                "delay_before_retry_ms": attempt.delay_ms,
            },
        )

    def _wrap_error(self, error: Exception) -> StepExecutionError:
        if isinstance(error, StepExecutionError):
            return error
        return StepExecutionError(
            self.workflow_step,
            str(error) or type(error).__name__,
            retry_count=self.retry_count,
            error_type=classify_error(error),
        )

    async def _handle_error(self, error: StepExecutionError) -> None:
        """Mark the workflow failed and publish the failure event."""
        if self.tracker is not None and self.workflow_id and self.organization_id:
            try:
                await self.tracker.update_workflow_status(
                    self.workflow_id,
                    self.organization_id,
                    STATUS_FAILED,
                    error_message=error.message,
                    retry_count=error.retry_count,
                )
            except (WorkflowNotFoundError, InvalidWorkflowTransitionError) as e:
                logger.warning(
                    "Failed to mark workflow failed",
                    extra={**self._step_info, "error": str(e)},
                )
        await self.publisher.publish(
            EVENT_STEP_FAILED,
            {
                "workflow_id": self.workflow_id,
                "organization_id": self.organization_id,
                "step": self.workflow_step,
                "total_attempts": error.retry_count + 1,
                "final_error_message": error.message,
            },
        )
