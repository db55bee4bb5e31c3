"""Repository for Keyword read/write operations."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, select, update

from keyword_intel.config import settings
from keyword_intel.core.database import get_session_context
from keyword_intel.models.keyword import Keyword, StageStatus
from keyword_intel.schemas.keyword import KeywordCreate, KeywordFilterUpdate, KeywordRecord

logger = logging.getLogger(__name__)


class KeywordRepository:
    """Keyword persistence via short-lived sessions.

    Every mutation is scoped by (organization_id, workflow_id) or by primary
    key, and replace operations delete before inserting so a re-run step
    lands on the same rows.
    """

    async def replace_competitor_seeds(
        self,
        *,
        organization_id: str,
        workflow_id: str,
        competitor_url_id: str,
        seeds: Sequence[KeywordCreate],
    ) -> list[KeywordRecord]:
        async with get_session_context() as session:
            deleted = await session.execute(
                delete(Keyword).where(
                    Keyword.organization_id == organization_id,
                    Keyword.workflow_id == workflow_id,
                    Keyword.competitor_url_id == competitor_url_id,
                    Keyword.parent_seed_keyword_id.is_(None),
                )
            )
            rows = [Keyword(**seed.model_dump()) for seed in seeds]
            session.add_all(rows)
            await session.flush()
            records = [KeywordRecord.model_validate(row) for row in rows]

        logger.info(
            "Seed keywords replaced",
            extra={
                "workflow_id": workflow_id,
                "competitor_url_id": competitor_url_id,
                "deleted": deleted.rowcount,
                "inserted": len(records),
            },
        )
        return records

    async def list_seeds_pending_expansion(
        self,
        *,
        organization_id: str,
        workflow_id: str,
    ) -> list[KeywordRecord]:
        async with get_session_context(commit_on_exit=False) as session:
            result = await session.execute(
                select(Keyword)
                .where(
                    Keyword.organization_id == organization_id,
                    Keyword.workflow_id == workflow_id,
                    Keyword.parent_seed_keyword_id.is_(None),
                    Keyword.longtail_status == "not_started",
                )
                .order_by(Keyword.created_at, Keyword.id)
            )
            return [KeywordRecord.model_validate(row) for row in result.scalars()]

    async def replace_longtails(
        self,
        *,
        seed: KeywordRecord,
        longtails: Sequence[KeywordCreate],
    ) -> int:
        async with get_session_context() as session:
            await session.execute(
                delete(Keyword).where(
                    Keyword.workflow_id == seed.workflow_id,
                    Keyword.parent_seed_keyword_id == seed.id,
                )
            )
            session.add_all(Keyword(**longtail.model_dump()) for longtail in longtails)
        return len(longtails)

    async def set_longtail_status(self, *, keyword_id: str, status: StageStatus) -> None:
        async with get_session_context() as session:
            await session.execute(
                update(Keyword).where(Keyword.id == keyword_id).values(longtail_status=status)
            )

    async def list_longtails_for_filtering(
        self,
        *,
        organization_id: str,
        workflow_id: str,
    ) -> list[KeywordRecord]:
        async with get_session_context(commit_on_exit=False) as session:
            result = await session.execute(
                select(Keyword)
                .where(
                    Keyword.organization_id == organization_id,
                    Keyword.workflow_id == workflow_id,
                    Keyword.parent_seed_keyword_id.is_not(None),
                    Keyword.is_filtered_out.is_(False),
                )
                .order_by(Keyword.search_volume.desc(), Keyword.created_at, Keyword.id)
            )
            return [KeywordRecord.model_validate(row) for row in result.scalars()]

    async def mark_filtered(self, updates: Sequence[KeywordFilterUpdate]) -> int:
        if not updates:
            return 0
        batch_size = max(1, settings.filter_update_batch_size)
        async with get_session_context() as session:
            for start in range(0, len(updates), batch_size):
                batch = updates[start : start + batch_size]
                # ORM bulk UPDATE by primary key.
                await session.execute(
                    update(Keyword),
                    [item.model_dump() for item in batch],
                )
        logger.info(
            "Keywords marked as filtered",
            extra={"updated": len(updates), "batch_size": batch_size},
        )
        return len(updates)

    async def list_clusterable_keywords(
        self,
        *,
        workflow_id: str,
        user_selected_only: bool = False,
    ) -> list[KeywordRecord]:
        stmt = select(Keyword).where(
            Keyword.workflow_id == workflow_id,
            Keyword.is_filtered_out.is_(False),
        )
        if user_selected_only:
            stmt = stmt.where(Keyword.user_selected.is_(True))
        stmt = stmt.order_by(Keyword.search_volume.desc(), Keyword.created_at, Keyword.id)

        async with get_session_context(commit_on_exit=False) as session:
            result = await session.execute(stmt)
            return [KeywordRecord.model_validate(row) for row in result.scalars()]
