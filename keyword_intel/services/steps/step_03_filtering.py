"""Step 3: Keyword filtering.

Removes near-duplicate longtails (edit-distance similarity on normalized text)
and longtails below a minimum search volume. Nothing is deleted: removed rows
are flagged with ``is_filtered_out`` and the reason they were dropped.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from keyword_intel.models.workflow import STEP_FILTERING
from keyword_intel.repositories.contracts import KeywordStore
from keyword_intel.schemas.keyword import FilterOptions, KeywordFilterUpdate, KeywordRecord
from keyword_intel.services.analytics import EVENT_KEYWORDS_FILTERED
from keyword_intel.services.steps.base_step import BaseStepService

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[_\-]+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_keyword(text: str) -> str:
    """Lowercase, turn ``_``/``-`` into spaces, drop punctuation, collapse whitespace.

    >>> normalize_keyword("SEO-Tips_2024!")
    'seo tips 2024'
    """
    normalized = _SEPARATORS.sub(" ", text.lower())
    normalized = _PUNCTUATION.sub("", normalized)
    # \w keeps underscores; they count as separators too.
    normalized = normalized.replace("_", " ")
    return _WHITESPACE.sub(" ", normalized).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit insert/delete/substitute costs."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def calculate_similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] of two keywords after normalization."""
    left = normalize_keyword(a)
    right = normalize_keyword(b)
    if left == right:
        return 1.0
    max_len = max(len(left), len(right))
    return (max_len - levenshtein_distance(left, right)) / max_len


def remove_duplicates(
    keywords: Sequence[KeywordRecord],
    threshold: float,
) -> tuple[list[KeywordRecord], list[KeywordRecord]]:
    """Split keywords into (survivors, duplicates).

    Keywords are visited by search volume, highest first, so the survivor of a
    near-duplicate pair is always the higher-volume one (ties keep the
    earlier keyword).
    """
    ordered = sorted(keywords, key=lambda kw: kw.search_volume, reverse=True)
    survivors: list[KeywordRecord] = []
    duplicates: list[KeywordRecord] = []
    for keyword in ordered:
        if any(calculate_similarity(keyword.keyword, kept.keyword) >= threshold for kept in survivors):
            duplicates.append(keyword)
        else:
            survivors.append(keyword)
    return survivors, duplicates


def filter_by_search_volume(
    keywords: Sequence[KeywordRecord],
    min_search_volume: int,
) -> tuple[list[KeywordRecord], list[KeywordRecord]]:
    """Split keywords into (kept, below minimum volume)."""
    kept = [kw for kw in keywords if kw.search_volume >= min_search_volume]
    dropped = [kw for kw in keywords if kw.search_volume < min_search_volume]
    return kept, dropped


@dataclass
class FilterResult:
    """Output of keyword filtering."""

    total_keywords: int = 0
    filtered_keywords_count: int = 0
    removal_breakdown: dict[str, int] = field(
        default_factory=lambda: {"duplicates": 0, "low_volume": 0}
    )
    remaining_keywords: int = 0


class KeywordFilter(BaseStepService[FilterOptions, FilterResult]):
    """Flags duplicate and low-volume longtails of a workflow."""

    workflow_step = STEP_FILTERING
    step_name = "keyword_filtering"

    def __init__(self, keywords: KeywordStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self.keywords = keywords

    async def _validate_preconditions(self, input_data: FilterOptions) -> None:
        return None

    async def _execute(self, input_data: FilterOptions) -> FilterResult:
        return await self.filter_keywords(self.workflow_id or "", self.organization_id or "", input_data)

    async def filter_keywords(
        self,
        workflow_id: str,
        organization_id: str,
        options: FilterOptions | None = None,
    ) -> FilterResult:
        options = options or FilterOptions()
        if self.workflow_id != workflow_id:
            self._bind(workflow_id, organization_id)

        keywords = await self.keywords.list_longtails_for_filtering(
            organization_id=organization_id,
            workflow_id=workflow_id,
        )
        if not keywords:
            logger.info("No keywords to filter", extra={"workflow_id": workflow_id})
            return FilterResult()

        survivors, duplicates = remove_duplicates(keywords, options.similarity_threshold)
        remaining, low_volume = filter_by_search_volume(survivors, options.min_search_volume)

        filtered_at = datetime.now(timezone.utc)
        updates = [
            KeywordFilterUpdate(id=kw.id, filtered_reason="duplicate", filtered_at=filtered_at)
            for kw in duplicates
        ] + [
            KeywordFilterUpdate(id=kw.id, filtered_reason="low_volume", filtered_at=filtered_at)
            for kw in low_volume
        ]
        if updates:
            await self._with_retry(
                lambda: self.keywords.mark_filtered(updates),
                f"mark_filtered({workflow_id})",
            )

        result = FilterResult(
            total_keywords=len(keywords),
            filtered_keywords_count=len(updates),
            removal_breakdown={"duplicates": len(duplicates), "low_volume": len(low_volume)},
            remaining_keywords=len(remaining),
        )
        logger.info(
            "Keywords filtered",
            extra={
                "workflow_id": workflow_id,
                "total_keywords": result.total_keywords,
                "duplicates": len(duplicates),
                "low_volume": len(low_volume),
                "remaining": result.remaining_keywords,
            },
        )
        await self.publisher.publish(
            EVENT_KEYWORDS_FILTERED,
            {
                "workflow_id": workflow_id,
                "organization_id": organization_id,
                "total_keywords": result.total_keywords,
                "filtered_keywords_count": result.filtered_keywords_count,
                "removal_breakdown": result.removal_breakdown,
                "remaining_keywords": result.remaining_keywords,
            },
        )
        return result
