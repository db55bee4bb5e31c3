"""Step 1: Seed keyword extraction from competitor sites.

Each competitor contributes its top-N ranking keywords (by search volume) as
seed keywords. A global time budget is split evenly across competitors with
10% held back for persistence; a competitor whose budget runs out is recorded
as failed while seeds already written stay in place.
"""

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from keyword_intel.config import settings
from keyword_intel.core.exceptions import AllCompetitorsFailedError, ValidationError
from keyword_intel.integrations.dataforseo import KeywordDataProvider, ProviderKeyword
from keyword_intel.models.workflow import STEP_SEEDS
from keyword_intel.repositories.contracts import KeywordStore
from keyword_intel.schemas.keyword import Competitor, KeywordCreate
from keyword_intel.services.steps.base_step import BaseStepService

logger = logging.getLogger(__name__)

PERSISTENCE_RESERVE = 0.1


@dataclass
class SeedExtractionInput:
    """Input for seed extraction."""

    competitors: list[Competitor]
    max_seeds_per_competitor: int = settings.seed_max_per_competitor
    location_code: int = 2840
    language_code: str = "en"
    timeout_ms: int = settings.seed_extraction_timeout_ms


@dataclass
class CompetitorSeedResult:
    competitor_id: str
    competitor_url: str
    seed_keywords_created: int = 0
    keywords: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class SeedExtractionSummary:
    """Output of seed extraction."""

    total_keywords_created: int = 0
    competitors_processed: int = 0
    competitors_failed: int = 0
    results: list[CompetitorSeedResult] = field(default_factory=list)


class SeedKeywordExtractor(BaseStepService[SeedExtractionInput, SeedExtractionSummary]):
    """Turns competitor URLs into seed keywords."""

    workflow_step = STEP_SEEDS
    step_name = "seed_extraction"

    def __init__(self, provider: KeywordDataProvider, keywords: KeywordStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self.provider = provider
        self.keywords = keywords

    async def _validate_preconditions(self, input_data: SeedExtractionInput) -> None:
        self._validate_request(input_data.competitors, self.organization_id)

    async def _execute(self, input_data: SeedExtractionInput) -> SeedExtractionSummary:
        return await self.extract_seed_keywords(
            input_data.competitors,
            self.organization_id or "",
            self.workflow_id or "",
            max_seeds_per_competitor=input_data.max_seeds_per_competitor,
            location_code=input_data.location_code,
            language_code=input_data.language_code,
            timeout_ms=input_data.timeout_ms,
        )

    @staticmethod
    def _validate_request(competitors: Sequence[Competitor], organization_id: str | None) -> None:
        if not competitors:
            raise ValidationError("No competitors provided for seed keyword extraction")
        if not organization_id or not organization_id.strip():
            raise ValidationError("Organization ID is required for seed keyword extraction")

    async def extract_seed_keywords(
        self,
        competitors: Sequence[Competitor],
        organization_id: str,
        workflow_id: str,
        max_seeds_per_competitor: int = settings.seed_max_per_competitor,
        location_code: int = 2840,
        language_code: str = "en",
        timeout_ms: int = settings.seed_extraction_timeout_ms,
    ) -> SeedExtractionSummary:
        """Extract and persist up to ``max_seeds_per_competitor`` seeds per competitor.

        Raises:
            ValidationError: No competitors or no organization id.
            AllCompetitorsFailedError: Not a single competitor succeeded.
        """
        self._validate_request(competitors, organization_id)
        if self.workflow_id != workflow_id:
            self._bind(workflow_id, organization_id)

        loop = asyncio.get_running_loop()
        budget_ms = timeout_ms * (1 - PERSISTENCE_RESERVE)
        per_competitor_ms = math.floor(budget_ms / len(competitors))
        started = loop.time()
        summary = SeedExtractionSummary()

        logger.info(
            "Starting seed extraction",
            extra={
                "workflow_id": workflow_id,
                "competitors": len(competitors),
                "per_competitor_timeout_ms": per_competitor_ms,
            },
        )

        for competitor in competitors:
            result = CompetitorSeedResult(competitor_id=competitor.id, competitor_url=competitor.url)
            summary.results.append(result)
            try:
                remaining_ms = budget_ms - (loop.time() - started) * 1000
                if remaining_ms <= 0:
                    raise TimeoutError("Seed keyword extraction timed out")

                seeds = await self._fetch_competitor_seeds(
                    competitor,
                    max_seeds=max_seeds_per_competitor,
                    location_code=location_code,
                    language_code=language_code,
                    timeout_ms=min(per_competitor_ms, remaining_ms),
                )
                if seeds:
                    await self.keywords.replace_competitor_seeds(
                        organization_id=organization_id,
                        workflow_id=workflow_id,
                        competitor_url_id=competitor.id,
                        seeds=[
                            self._to_keyword_create(seed, organization_id, workflow_id, competitor.id)
                            for seed in seeds
                        ],
                    )
            except Exception as e:
                summary.competitors_failed += 1
                result.error = str(e) or type(e).__name__
                logger.warning(
                    "Failed to process competitor",
                    extra={
                        "workflow_id": workflow_id,
                        "competitor_url": competitor.url,
                        "error": result.error,
                    },
                )
                continue

            result.seed_keywords_created = len(seeds)
            result.keywords = [seed.keyword for seed in seeds]
            summary.total_keywords_created += len(seeds)
            summary.competitors_processed += 1
            logger.info(
                "Seed keywords created for competitor",
                extra={"competitor_url": competitor.url, "seed_keywords": len(seeds)},
            )

        if summary.competitors_processed == 0:
            raise AllCompetitorsFailedError(summary.competitors_failed)

        logger.info(
            "Seed extraction completed",
            extra={
                "workflow_id": workflow_id,
                "total_keywords_created": summary.total_keywords_created,
                "competitors_failed": summary.competitors_failed,
                "elapsed_ms": round((loop.time() - started) * 1000),
            },
        )
        return summary

    async def _fetch_competitor_seeds(
        self,
        competitor: Competitor,
        *,
        max_seeds: int,
        location_code: int,
        language_code: str,
        timeout_ms: float,
    ) -> list[ProviderKeyword]:
        async def _call() -> list[ProviderKeyword]:
            return await self.provider.get_keywords_for_site(
                competitor.url,
                location_code=location_code,
                language_code=language_code,
                limit=max_seeds,
            )

        try:
            keywords = await asyncio.wait_for(
                self._with_retry(_call, f"keywords_for_site({competitor.url})"),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Seed keyword extraction timed out for {competitor.url}") from e

        ranked = sorted(keywords, key=lambda kw: kw.search_volume, reverse=True)
        return ranked[:max_seeds]

    @staticmethod
    def _to_keyword_create(
        seed: ProviderKeyword,
        organization_id: str,
        workflow_id: str,
        competitor_id: str,
    ) -> KeywordCreate:
        return KeywordCreate(
            organization_id=organization_id,
            workflow_id=workflow_id,
            competitor_url_id=competitor_id,
            keyword=seed.keyword,
            seed_keyword=seed.keyword,
            search_volume=seed.search_volume,
            competition_level=seed.competition.level,
            competition_index=seed.competition.index,
            keyword_difficulty=seed.keyword_difficulty or seed.competition.index,
            cpc=seed.cpc,
        )
