"""Keyword pipeline orchestrator: seeds -> longtails -> filtering -> clustering."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from keyword_intel.core.exceptions import StepExecutionError
from keyword_intel.core.retry import STAGE_RETRY_POLICY, RetryPolicy, SleepFn, sleep_ms
from keyword_intel.integrations.dataforseo import (
    KeywordDataProvider,
    get_language_code,
    get_location_code,
)
from keyword_intel.models.workflow import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STEP_CLUSTERING,
    STEP_FILTERING,
    STEP_LONGTAILS,
    STEP_SEEDS,
    WORKFLOW_STEPS,
)
from keyword_intel.repositories.contracts import KeywordStore, TopicClusterStore, WorkflowStore
from keyword_intel.schemas.keyword import Competitor, FilterOptions
from keyword_intel.schemas.topic_cluster import ClusterOptions
from keyword_intel.schemas.workflow import WorkflowRecord
from keyword_intel.services.analytics import EventPublisher, InMemoryEventPublisher
from keyword_intel.services.steps.base_step import BaseStepService
from keyword_intel.services.steps.step_01_seeds import SeedExtractionInput, SeedKeywordExtractor
from keyword_intel.services.steps.step_02_longtails import LongtailExpander, LongtailExpansionInput
from keyword_intel.services.steps.step_03_filtering import KeywordFilter
from keyword_intel.services.steps.step_04_clustering import ClusteringInput, KeywordClusterer
from keyword_intel.services.workflow_status import WorkflowStatusTracker

logger = logging.getLogger(__name__)


@dataclass
class PipelineRunSummary:
    """What a single orchestrator run did."""

    workflow_id: str
    status: str
    steps_run: list[str] = field(default_factory=list)
    step_results: dict[str, Any] = field(default_factory=dict)


class KeywordPipelineOrchestrator:
    """Runs the remaining steps of a workflow in order.

    A new workflow starts at the seed step. A failed workflow re-enters the
    step that failed; steps completed earlier are not re-run.
    """

    def __init__(
        self,
        provider: KeywordDataProvider,
        *,
        keyword_store: KeywordStore,
        cluster_store: TopicClusterStore,
        workflow_store: WorkflowStore,
        publisher: EventPublisher | None = None,
        retry_policy: RetryPolicy = STAGE_RETRY_POLICY,
        sleep: SleepFn = sleep_ms,
    ) -> None:
        self.provider = provider
        self.keyword_store = keyword_store
        self.cluster_store = cluster_store
        self.tracker = WorkflowStatusTracker(workflow_store)
        self.publisher = publisher or InMemoryEventPublisher()
        self.retry_policy = retry_policy
        self.sleep = sleep

    def _step_kwargs(self) -> dict[str, Any]:
        return {
            "tracker": self.tracker,
            "publisher": self.publisher,
            "retry_policy": self.retry_policy,
            "sleep": self.sleep,
        }

    def _build_step(
        self,
        step: str,
        workflow: WorkflowRecord,
        competitors: Sequence[Competitor],
        filter_options: FilterOptions,
        cluster_options: ClusterOptions,
    ) -> tuple[BaseStepService[Any, Any], Any]:
        if step == STEP_SEEDS:
            return (
                SeedKeywordExtractor(self.provider, self.keyword_store, **self._step_kwargs()),
                SeedExtractionInput(
                    competitors=list(competitors),
                    location_code=get_location_code(workflow.locale),
                    language_code=get_language_code(workflow.locale),
                ),
            )
        if step == STEP_LONGTAILS:
            return (
                LongtailExpander(self.provider, self.keyword_store, **self._step_kwargs()),
                LongtailExpansionInput(),
            )
        if step == STEP_FILTERING:
            return KeywordFilter(self.keyword_store, **self._step_kwargs()), filter_options
        if step == STEP_CLUSTERING:
            return (
                KeywordClusterer(self.keyword_store, self.cluster_store, **self._step_kwargs()),
                ClusteringInput(options=cluster_options),
            )
        raise ValueError(f"Unknown workflow step: {step}")

    async def run(
        self,
        workflow_id: str,
        organization_id: str,
        competitors: Sequence[Competitor],
        *,
        locale: str | None = None,
        filter_options: FilterOptions | None = None,
        cluster_options: ClusterOptions | None = None,
    ) -> PipelineRunSummary:
        """Start or resume the workflow and run every remaining step.

        Raises:
            StepExecutionError: A step failed; the workflow is marked failed.
        """
        workflow = await self.tracker.start_workflow(workflow_id, organization_id, locale)
        summary = PipelineRunSummary(workflow_id=workflow_id, status=workflow.status)

        if workflow.status == STATUS_COMPLETED:
            logger.info("Workflow already completed", extra={"workflow_id": workflow_id})
            return summary

        if workflow.status == STATUS_FAILED:
            logger.info(
                "Resuming failed workflow",
                extra={"workflow_id": workflow_id, "step": workflow.current_step},
            )
            workflow = await self.tracker.update_workflow_status(
                workflow_id, organization_id, workflow.current_step
            )

        filter_options = filter_options or FilterOptions()
        cluster_options = cluster_options or ClusterOptions()

        for step in WORKFLOW_STEPS[WORKFLOW_STEPS.index(workflow.current_step) :]:
            service, input_data = self._build_step(
                step, workflow, competitors, filter_options, cluster_options
            )
            result = await service.run(workflow_id, organization_id, input_data)
            summary.steps_run.append(step)
            if not result.success:
                summary.status = STATUS_FAILED
                logger.warning(
                    "Keyword pipeline stopped",
                    extra={"workflow_id": workflow_id, "step": step},
                )
                raise result.error or StepExecutionError(step, "step reported failure without an error")
            summary.step_results[step] = result.data

        workflow = await self.tracker.get_workflow(workflow_id, organization_id)
        summary.status = workflow.status
        logger.info(
            "Keyword pipeline finished",
            extra={"workflow_id": workflow_id, "steps_run": summary.steps_run, "status": summary.status},
        )
        return summary
