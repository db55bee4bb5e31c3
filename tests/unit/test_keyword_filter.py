"""Unit tests for keyword normalization, dedupe and the filter step."""

from __future__ import annotations

from typing import Any

import pytest

from keyword_intel.models.workflow import STEP_FILTERING, STEP_SEEDS
from keyword_intel.schemas.keyword import FilterOptions, KeywordCreate, KeywordRecord
from keyword_intel.services.analytics import EVENT_KEYWORDS_FILTERED
from keyword_intel.services.steps.step_03_filtering import (
    KeywordFilter,
    calculate_similarity,
    filter_by_search_volume,
    levenshtein_distance,
    normalize_keyword,
    remove_duplicates,
)
from tests.fakes import FakeKeywordStore, FakeWorkflowStore

ORG = "org-1"
WORKFLOW = "wf-1"


def _record(keyword: str, search_volume: int, record_id: str | None = None) -> KeywordRecord:
    return KeywordRecord(
        id=record_id or keyword,
        organization_id=ORG,
        workflow_id=WORKFLOW,
        keyword=keyword,
        search_volume=search_volume,
        parent_seed_keyword_id="seed-1",
    )


def _seed_with_longtails(store: FakeKeywordStore, longtails: list[tuple[str, int]]) -> KeywordRecord:
    seed = store.add(KeywordCreate(organization_id=ORG, workflow_id=WORKFLOW, keyword="marketing", search_volume=50))
    for keyword, volume in longtails:
        store.add(
            KeywordCreate(
                organization_id=ORG,
                workflow_id=WORKFLOW,
                keyword=keyword,
                search_volume=volume,
                seed_keyword=seed.keyword,
                parent_seed_keyword_id=seed.id,
            )
        )
    return seed


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("SEO-Tips_2024!", "seo tips 2024"),
        ("  Content   Marketing!  ", "content marketing"),
        ("e-mail__marketing", "e mail marketing"),
        ("what's new?", "whats new"),
        ("", ""),
    ],
)
def test_normalize_keyword(raw: str, expected: str) -> None:
    assert normalize_keyword(raw) == expected


def test_normalize_keyword_is_idempotent() -> None:
    once = normalize_keyword("Best_CRM -- Tools!!")
    assert normalize_keyword(once) == once


def test_levenshtein_distance() -> None:
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


def test_calculate_similarity_on_normalized_text() -> None:
    assert calculate_similarity("content marketing", "content   marketing!") == 1.0
    assert calculate_similarity("", "") == 1.0
    assert calculate_similarity("abcd", "abcf") == pytest.approx(0.75)
    assert calculate_similarity("content marketing", "email marketing") < 0.85


def test_remove_duplicates_keeps_higher_volume_keyword() -> None:
    keywords = [
        _record("content marketing", 300),
        _record("content   marketing!", 900),
        _record("email marketing", 500),
    ]

    survivors, duplicates = remove_duplicates(keywords, 0.85)

    assert [kw.keyword for kw in survivors] == ["content   marketing!", "email marketing"]
    assert [kw.keyword for kw in duplicates] == ["content marketing"]


def test_remove_duplicates_tie_keeps_first_keyword() -> None:
    survivors, duplicates = remove_duplicates(
        [_record("crm tool", 100, "a"), _record("crm tools", 100, "b")],
        0.85,
    )

    assert [kw.id for kw in survivors] == ["a"]
    assert [kw.id for kw in duplicates] == ["b"]


def test_filter_by_search_volume_keeps_threshold_value() -> None:
    kept, dropped = filter_by_search_volume(
        [_record("a", 100), _record("b", 99), _record("c", 1000)],
        100,
    )

    assert [kw.keyword for kw in kept] == ["a", "c"]
    assert [kw.keyword for kw in dropped] == ["b"]


@pytest.mark.asyncio
async def test_filter_keywords_flags_duplicates_and_low_volume(
    keyword_store: FakeKeywordStore,
    step_kwargs: dict[str, Any],
) -> None:
    seed = _seed_with_longtails(
        keyword_store,
        [
            ("content marketing", 400),
            ("content   marketing!", 250),
            ("email marketing", 300),
            ("marketing podcast ideas", 20),
        ],
    )

    service = KeywordFilter(keyword_store, **step_kwargs)
    result = await service.filter_keywords(WORKFLOW, ORG, FilterOptions(min_search_volume=100))

    assert result.total_keywords == 4
    assert result.filtered_keywords_count == 2
    assert result.removal_breakdown == {"duplicates": 1, "low_volume": 1}
    assert result.remaining_keywords == 2

    reasons = {record.keyword: record.filtered_reason for record in keyword_store.records(is_filtered_out=True)}
    assert reasons == {"content   marketing!": "duplicate", "marketing podcast ideas": "low_volume"}
    # Seeds are never candidates for filtering.
    assert keyword_store.rows[seed.id]["is_filtered_out"] is False
    assert all(row["filtered_at"] is not None for row in keyword_store.rows.values() if row["is_filtered_out"])

    event = step_kwargs["publisher"].of_type(EVENT_KEYWORDS_FILTERED)[0]
    assert event["filtered_keywords_count"] == 2
    assert event["remaining_keywords"] == 2


@pytest.mark.asyncio
async def test_filter_keywords_without_longtails_returns_empty_result(
    keyword_store: FakeKeywordStore,
    step_kwargs: dict[str, Any],
) -> None:
    result = await KeywordFilter(keyword_store, **step_kwargs).filter_keywords(WORKFLOW, ORG)

    assert result.total_keywords == 0
    assert result.filtered_keywords_count == 0
    assert keyword_store.mark_filtered_calls == []


@pytest.mark.asyncio
async def test_filter_rerun_skips_already_filtered_rows(
    keyword_store: FakeKeywordStore,
    step_kwargs: dict[str, Any],
) -> None:
    _seed_with_longtails(keyword_store, [("crm tools", 500), ("crm tool", 200), ("crm api", 10)])
    service = KeywordFilter(keyword_store, **step_kwargs)

    first = await service.filter_keywords(WORKFLOW, ORG)
    second = await service.filter_keywords(WORKFLOW, ORG)

    assert first.filtered_keywords_count == 2
    assert second.total_keywords == 1
    assert second.filtered_keywords_count == 0


@pytest.mark.asyncio
async def test_filter_step_run_advances_workflow(
    keyword_store: FakeKeywordStore,
    workflow_store: FakeWorkflowStore,
    step_kwargs: dict[str, Any],
) -> None:
    workflow_store.put(WORKFLOW, ORG, status=STEP_FILTERING)
    _seed_with_longtails(keyword_store, [("crm tools", 500)])

    result = await KeywordFilter(keyword_store, **step_kwargs).run(WORKFLOW, ORG, FilterOptions())

    assert result.success is True
    assert workflow_store.rows[WORKFLOW]["status"] == "step_4_clustering"
    assert STEP_SEEDS not in (workflow_store.rows[WORKFLOW]["step_progress"] or {})
    assert workflow_store.rows[WORKFLOW]["step_progress"][STEP_FILTERING]["retry_count"] == 0
