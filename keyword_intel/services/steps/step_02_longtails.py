"""Step 2: Longtail expansion of seed keywords.

Every unexpanded seed is sent to four discovery sources concurrently. A
failing source never blocks the others, and the seed is marked completed
even when every source failed so the pipeline keeps moving; the summary
records which sources answered.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from keyword_intel.config import settings
from keyword_intel.core.exceptions import StepPreconditionError
from keyword_intel.integrations.dataforseo import (
    KeywordDataProvider,
    ProviderKeyword,
    get_language_code,
    get_location_code,
)
from keyword_intel.models.workflow import STEP_LONGTAILS
from keyword_intel.repositories.contracts import KeywordStore
from keyword_intel.schemas.keyword import KeywordCreate, KeywordRecord
from keyword_intel.services.analytics import EVENT_LONGTAILS_EXPANDED
from keyword_intel.services.steps.base_step import BaseStepService
from keyword_intel.services.steps.step_03_filtering import normalize_keyword

logger = logging.getLogger(__name__)

LONGTAIL_SOURCES = ("related", "suggestions", "ideas", "autocomplete")


@dataclass
class LongtailExpansionInput:
    """Input for longtail expansion (the workflow carries everything else)."""

    max_per_seed: int = settings.longtail_max_per_seed
    results_per_source: int = settings.longtail_results_per_source


@dataclass
class SeedExpansionResult:
    seed_keyword_id: str
    seed_keyword: str
    longtails_created: int = 0
    sources_succeeded: list[str] = field(default_factory=list)
    sources_failed: dict[str, str] = field(default_factory=dict)

    @property
    def all_sources_failed(self) -> bool:
        return not self.sources_succeeded


@dataclass
class ExpansionSummary:
    """Output of longtail expansion."""

    seeds_processed: int = 0
    total_longtails_created: int = 0
    results: list[SeedExpansionResult] = field(default_factory=list)

    @property
    def seeds_without_sources(self) -> int:
        return sum(1 for result in self.results if result.all_sources_failed)


class LongtailExpander(BaseStepService[LongtailExpansionInput, ExpansionSummary]):
    """Expands seeds into at most ``max_per_seed`` longtails each."""

    workflow_step = STEP_LONGTAILS
    step_name = "longtail_expansion"

    def __init__(self, provider: KeywordDataProvider, keywords: KeywordStore, **kwargs) -> None:
        super().__init__(**kwargs)
        if self.tracker is None:
            raise ValueError("LongtailExpander requires a workflow status tracker")
        self.provider = provider
        self.keywords = keywords
        self.max_per_seed = settings.longtail_max_per_seed
        self.results_per_source = settings.longtail_results_per_source

    async def _validate_preconditions(self, input_data: LongtailExpansionInput) -> None:
        if input_data.max_per_seed < 1 or input_data.results_per_source < 1:
            raise StepPreconditionError(self.workflow_step, "longtail limits must be positive")

    async def _execute(self, input_data: LongtailExpansionInput) -> ExpansionSummary:
        self.max_per_seed = input_data.max_per_seed
        self.results_per_source = input_data.results_per_source
        return await self.expand_seed_keywords_to_longtails(self.workflow_id or "")

    async def expand_seed_keywords_to_longtails(self, workflow_id: str) -> ExpansionSummary:
        """Expand every seed of the workflow whose longtail status is ``not_started``.

        Raises:
            WorkflowNotFoundError: The workflow does not exist.
            StepPreconditionError: No seeds are waiting for expansion.
        """
        workflow = await self.tracker.get_workflow(workflow_id)
        if self.workflow_id != workflow_id:
            self._bind(workflow_id, workflow.organization_id)

        location_code = get_location_code(workflow.locale)
        language_code = get_language_code(workflow.locale)

        seeds = await self.keywords.list_seeds_pending_expansion(
            organization_id=workflow.organization_id,
            workflow_id=workflow_id,
        )
        if not seeds:
            raise StepPreconditionError(self.workflow_step, "No seed keywords found for longtail expansion")

        logger.info(
            "Starting longtail expansion",
            extra={"workflow_id": workflow_id, "seeds": len(seeds), "location": location_code},
        )

        summary = ExpansionSummary()
        for seed in seeds:
            result = await self._expand_seed(seed, location_code, language_code)
            summary.results.append(result)
            summary.seeds_processed += 1
            summary.total_longtails_created += result.longtails_created

        logger.info(
            "Longtail expansion completed",
            extra={
                "workflow_id": workflow_id,
                "seeds_processed": summary.seeds_processed,
                "total_longtails_created": summary.total_longtails_created,
                "seeds_without_sources": summary.seeds_without_sources,
            },
        )
        await self.publisher.publish(
            EVENT_LONGTAILS_EXPANDED,
            {
                "workflow_id": workflow_id,
                "organization_id": workflow.organization_id,
                "seeds_processed": summary.seeds_processed,
                "total_longtails_created": summary.total_longtails_created,
                "seeds_without_sources": summary.seeds_without_sources,
            },
        )
        return summary

    def _source_fetchers(self) -> dict[str, Callable[..., Awaitable[list[ProviderKeyword]]]]:
        return {
            "related": self.provider.get_related_keywords,
            "suggestions": self.provider.get_keyword_suggestions,
            "ideas": self.provider.get_keyword_ideas,
            "autocomplete": self.provider.get_autocomplete,
        }

    async def _fetch_source(
        self,
        source: str,
        seed: KeywordRecord,
        location_code: int,
        language_code: str,
    ) -> list[ProviderKeyword]:
        fetcher = self._source_fetchers()[source]

        async def _call() -> list[ProviderKeyword]:
            return await fetcher(
                seed.keyword,
                location_code=location_code,
                language_code=language_code,
                limit=self.results_per_source,
            )

        keywords = await self._with_retry(_call, f"{source}({seed.keyword})")
        return keywords[: self.results_per_source]

    async def _expand_seed(
        self,
        seed: KeywordRecord,
        location_code: int,
        language_code: str,
    ) -> SeedExpansionResult:
        result = SeedExpansionResult(seed_keyword_id=seed.id, seed_keyword=seed.keyword)

        outcomes = await asyncio.gather(
            *(self._fetch_source(source, seed, location_code, language_code) for source in LONGTAIL_SOURCES),
            return_exceptions=True,
        )

        merged: list[ProviderKeyword] = []
        for source, outcome in zip(LONGTAIL_SOURCES, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                result.sources_failed[source] = str(outcome) or type(outcome).__name__
                logger.warning(
                    "Longtail source failed",
                    extra={"seed_keyword": seed.keyword, "source": source, "error": result.sources_failed[source]},
                )
                continue
            result.sources_succeeded.append(source)
            merged.extend(outcome)

        longtails = self._deduplicate(seed, merged)[: self.max_per_seed]
        result.longtails_created = await self.keywords.replace_longtails(
            seed=seed,
            longtails=[self._to_keyword_create(seed, longtail) for longtail in longtails],
        )
        await self.keywords.set_longtail_status(keyword_id=seed.id, status="completed")

        logger.info(
            "Seed expanded",
            extra={
                "seed_keyword": seed.keyword,
                "longtails_created": result.longtails_created,
                "sources_failed": sorted(result.sources_failed),
            },
        )
        return result

    @staticmethod
    def _deduplicate(seed: KeywordRecord, keywords: list[ProviderKeyword]) -> list[ProviderKeyword]:
        seen = {normalize_keyword(seed.keyword)}
        unique: list[ProviderKeyword] = []
        for keyword in keywords:
            normalized = normalize_keyword(keyword.keyword)
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            unique.append(keyword)
        return unique

    @staticmethod
    def _to_keyword_create(seed: KeywordRecord, longtail: ProviderKeyword) -> KeywordCreate:
        return KeywordCreate(
            organization_id=seed.organization_id,
            workflow_id=seed.workflow_id,
            competitor_url_id=seed.competitor_url_id,
            seed_keyword=seed.keyword,
            parent_seed_keyword_id=seed.id,
            keyword=longtail.keyword,
            search_volume=longtail.search_volume,
            competition_level=longtail.competition.level,
            competition_index=longtail.competition.index,
            keyword_difficulty=longtail.keyword_difficulty,
            cpc=longtail.cpc,
            longtail_status="completed",
        )
