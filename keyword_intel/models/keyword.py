"""Keyword model: seeds and their longtail expansions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from keyword_intel.models.base import Base, StringUUID, TimestampMixin, UUIDMixin

CompetitionLevel = Literal["low", "medium", "high"]
StageStatus = Literal["not_started", "in_progress", "completed", "failed"]
FilteredReason = Literal["duplicate", "low_volume"]


class Keyword(Base, UUIDMixin, TimestampMixin):
    """Keyword row; ``parent_seed_keyword_id`` is NULL exactly for seeds."""

    __tablename__ = "keywords"
    __table_args__ = (
        Index("ix_keywords_org_workflow", "organization_id", "workflow_id"),
        Index("ix_keywords_workflow_competitor", "workflow_id", "competitor_url_id"),
    )

    organization_id: Mapped[str] = mapped_column(StringUUID(), nullable=False)
    workflow_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("intent_workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    competitor_url_id: Mapped[str | None] = mapped_column(StringUUID(), nullable=True)
    parent_seed_keyword_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("keywords.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # Core data
    seed_keyword: Mapped[str | None] = mapped_column(String(500), nullable=True)
    keyword: Mapped[str] = mapped_column(String(500), nullable=False, index=True)

    # Metrics
    search_volume: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    competition_level: Mapped[str] = mapped_column(String(10), default="low", nullable=False)
    competition_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    keyword_difficulty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cpc: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Stage statuses
    longtail_status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)
    subtopics_status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)
    article_status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)

    # Selection
    user_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Filtering
    is_filtered_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    filtered_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    filtered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    parent_seed: Mapped[Keyword | None] = relationship(
        "Keyword",
        remote_side="Keyword.id",
        foreign_keys=[parent_seed_keyword_id],
    )

    @property
    def is_seed(self) -> bool:
        return self.parent_seed_keyword_id is None

    def __repr__(self) -> str:
        return f"<Keyword {self.keyword}>"
