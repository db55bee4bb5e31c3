"""Unit tests for settings normalization."""

from __future__ import annotations

import pytest

from keyword_intel.config import Settings


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@db:5432/kw", "postgresql+asyncpg://u:p@db:5432/kw"),
        ("postgresql://u:p@db/kw", "postgresql+asyncpg://u:p@db/kw"),
        ("postgresql+psycopg2://u:p@db/kw", "postgresql+asyncpg://u:p@db/kw"),
        ("  postgresql+asyncpg://u:p@db/kw  ", "postgresql+asyncpg://u:p@db/kw"),
    ],
)
def test_database_url_is_normalized_to_asyncpg(raw: str, expected: str) -> None:
    assert Settings(database_url=raw).database_url == expected


def test_log_level_is_uppercased() -> None:
    assert Settings(log_level=" debug ").log_level == "DEBUG"


def test_dataforseo_configured_requires_both_credentials() -> None:
    assert Settings(dataforseo_login="user", dataforseo_password="secret").dataforseo_configured is True
    assert Settings(dataforseo_login="user", dataforseo_password=None).dataforseo_configured is False
