"""End-to-end tests for the keyword pipeline orchestrator over in-memory stores."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from keyword_intel.core.exceptions import StepExecutionError
from keyword_intel.models.workflow import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STEP_CLUSTERING,
    STEP_FILTERING,
    STEP_LONGTAILS,
    STEP_SEEDS,
    WORKFLOW_STEPS,
)
from keyword_intel.schemas.keyword import Competitor, KeywordFilterUpdate
from keyword_intel.services.analytics import (
    EVENT_CLUSTERING_COMPLETED,
    EVENT_LONGTAILS_EXPANDED,
    EVENT_STEP_FAILED,
    InMemoryEventPublisher,
)
from keyword_intel.services.pipeline_orchestrator import KeywordPipelineOrchestrator
from tests.fakes import (
    TEST_RETRY_POLICY,
    FakeKeywordProvider,
    FakeKeywordStore,
    FakeTopicClusterStore,
    FakeWorkflowStore,
    no_sleep,
    provider_keyword,
)

ORG = "org-1"
WORKFLOW = "wf-1"

COMPETITORS = [
    Competitor(id="comp-acme", url="https://acme.io"),
    Competitor(id="comp-globex", url="https://globex.com"),
    Competitor(id="comp-initech", url="https://initech.dev"),
]

SITE_SEEDS = {
    "https://acme.io": [("crm software", 9000), ("sales pipeline", 4000), ("lead scoring", 2500)],
    "https://globex.com": [("email marketing", 8000), ("newsletter templates", 3000), ("drip campaigns", 1500)],
    "https://initech.dev": [("help desk", 7000), ("ticketing system", 3500), ("customer support", 2000)],
}


def _sources() -> dict:
    """Per seed: 3 strong longtails, 3 near-duplicates, 6 low-volume ones."""
    return {
        "related": lambda kw: [
            provider_keyword(f"{kw} guide", 500, 0.4, "related"),
            provider_keyword(f"{kw} pricing", 500, 0.6, "related"),
            provider_keyword(f"{kw} tutorial", 500, 0.2, "related"),
        ],
        "suggestions": lambda kw: [
            provider_keyword(f"{kw} guides", 200, 0.4, "suggestions"),
            provider_keyword(f"{kw} pricings", 200, 0.6, "suggestions"),
            provider_keyword(f"{kw} tutorials", 200, 0.2, "suggestions"),
        ],
        "ideas": lambda kw: [
            provider_keyword(f"{kw} for beginners", 50, 0.1, "ideas"),
            provider_keyword(f"{kw} examples", 50, 0.1, "ideas"),
            provider_keyword(f"{kw} checklist", 50, 0.1, "ideas"),
        ],
        "autocomplete": lambda kw: [
            provider_keyword(f"{kw} near me", source="autocomplete"),
            provider_keyword(f"{kw} free", source="autocomplete"),
            provider_keyword(f"{kw} reddit", source="autocomplete"),
        ],
    }


def _provider() -> FakeKeywordProvider:
    return FakeKeywordProvider(
        sites={
            url: [provider_keyword(keyword, volume, 0.5) for keyword, volume in seeds]
            for url, seeds in SITE_SEEDS.items()
        },
        sources=_sources(),
    )


class _FailOnceFilterStore(FakeKeywordStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_next_filter = True

    async def mark_filtered(self, updates: Sequence[KeywordFilterUpdate]) -> int:
        if self.fail_next_filter:
            self.fail_next_filter = False
            raise ValueError("Invalid keyword format in filter batch")
        return await super().mark_filtered(updates)


def _orchestrator(
    provider: FakeKeywordProvider,
    keyword_store: FakeKeywordStore,
    cluster_store: FakeTopicClusterStore,
    workflow_store: FakeWorkflowStore,
    publisher: InMemoryEventPublisher,
) -> KeywordPipelineOrchestrator:
    return KeywordPipelineOrchestrator(
        provider,
        keyword_store=keyword_store,
        cluster_store=cluster_store,
        workflow_store=workflow_store,
        publisher=publisher,
        retry_policy=TEST_RETRY_POLICY,
        sleep=no_sleep,
    )


@pytest.mark.asyncio
async def test_three_competitors_run_end_to_end(
    keyword_store: FakeKeywordStore,
    cluster_store: FakeTopicClusterStore,
    workflow_store: FakeWorkflowStore,
    publisher: InMemoryEventPublisher,
) -> None:
    orchestrator = _orchestrator(_provider(), keyword_store, cluster_store, workflow_store, publisher)

    summary = await orchestrator.run(WORKFLOW, ORG, COMPETITORS, locale="en-US")

    assert summary.status == STATUS_COMPLETED
    assert summary.steps_run == list(WORKFLOW_STEPS)

    seeds = [record for record in keyword_store.records() if record.is_seed]
    assert len(seeds) == 9
    for seed in seeds:
        longtails = keyword_store.records(parent_seed_keyword_id=seed.id)
        assert 0 < len(longtails) <= 12

    filtering = summary.step_results[STEP_FILTERING]
    assert filtering.total_keywords == 108
    assert filtering.removal_breakdown == {"duplicates": 27, "low_volume": 54}
    assert filtering.remaining_keywords == 27

    clustering = summary.step_results[STEP_CLUSTERING]
    assert clustering.cluster_count >= 1
    assert clustering.clusters[0].hub_keyword == "crm software"
    for edge in clustering.clusters:
        assert edge.hub_keyword_id != edge.spoke_keyword_id
    assert cluster_store.edges[WORKFLOW] == clustering.clusters

    workflow = workflow_store.rows[WORKFLOW]
    assert workflow["status"] == STATUS_COMPLETED
    assert set(workflow["step_progress"]) == set(WORKFLOW_STEPS)
    assert len(publisher.of_type(EVENT_LONGTAILS_EXPANDED)) == 1
    assert len(publisher.of_type(EVENT_CLUSTERING_COMPLETED)) == 1


@pytest.mark.asyncio
async def test_failed_workflow_resumes_at_failed_step(
    cluster_store: FakeTopicClusterStore,
    workflow_store: FakeWorkflowStore,
    publisher: InMemoryEventPublisher,
) -> None:
    keyword_store = _FailOnceFilterStore()
    provider = _provider()
    orchestrator = _orchestrator(provider, keyword_store, cluster_store, workflow_store, publisher)

    with pytest.raises(StepExecutionError) as exc_info:
        await orchestrator.run(WORKFLOW, ORG, COMPETITORS)

    assert exc_info.value.step == STEP_FILTERING
    assert exc_info.value.error_type == "validation_error"
    workflow = workflow_store.rows[WORKFLOW]
    assert workflow["status"] == STATUS_FAILED
    assert workflow["current_step"] == STEP_FILTERING
    assert publisher.of_type(EVENT_STEP_FAILED)[0]["step"] == STEP_FILTERING

    calls_before_resume = len(provider.calls)
    summary = await orchestrator.run(WORKFLOW, ORG, COMPETITORS)

    assert summary.status == STATUS_COMPLETED
    assert summary.steps_run == [STEP_FILTERING, STEP_CLUSTERING]
    assert len(provider.calls) == calls_before_resume
    assert STEP_SEEDS in workflow_store.rows[WORKFLOW]["step_progress"]
    assert STEP_LONGTAILS in workflow_store.rows[WORKFLOW]["step_progress"]


@pytest.mark.asyncio
async def test_completed_workflow_is_not_rerun(
    keyword_store: FakeKeywordStore,
    cluster_store: FakeTopicClusterStore,
    workflow_store: FakeWorkflowStore,
    publisher: InMemoryEventPublisher,
) -> None:
    workflow_store.put(WORKFLOW, ORG, status=STATUS_COMPLETED)
    provider = _provider()

    summary = await _orchestrator(provider, keyword_store, cluster_store, workflow_store, publisher).run(
        WORKFLOW, ORG, COMPETITORS
    )

    assert summary.status == STATUS_COMPLETED
    assert summary.steps_run == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_all_competitors_failing_stops_pipeline_at_seeds(
    keyword_store: FakeKeywordStore,
    cluster_store: FakeTopicClusterStore,
    workflow_store: FakeWorkflowStore,
    publisher: InMemoryEventPublisher,
) -> None:
    provider = FakeKeywordProvider(sites={competitor.url: ValueError("Invalid URL format") for competitor in COMPETITORS})

    with pytest.raises(StepExecutionError) as exc_info:
        await _orchestrator(provider, keyword_store, cluster_store, workflow_store, publisher).run(
            WORKFLOW, ORG, COMPETITORS
        )

    assert exc_info.value.step == STEP_SEEDS
    assert workflow_store.rows[WORKFLOW]["status"] == STATUS_FAILED
    assert keyword_store.rows == {}
