"""Hub-and-spoke cluster edges (clustering step output)."""

from __future__ import annotations

from typing import Literal

from sqlalchemy import Boolean, CheckConstraint, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from keyword_intel.models.base import Base, StringUUID, TimestampMixin, UUIDMixin

SelectionSource = Literal["ai", "user"]


class TopicCluster(Base, UUIDMixin, TimestampMixin):
    """One hub -> spoke edge with its similarity score."""

    __tablename__ = "topic_clusters"
    __table_args__ = (
        CheckConstraint("hub_keyword_id <> spoke_keyword_id", name="ck_topic_clusters_hub_not_spoke"),
        CheckConstraint(
            "similarity_score >= 0 AND similarity_score <= 1",
            name="ck_topic_clusters_similarity_range",
        ),
        UniqueConstraint("workflow_id", "spoke_keyword_id", name="uq_topic_clusters_workflow_spoke"),
    )

    workflow_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("intent_workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    hub_keyword_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("keywords.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    spoke_keyword_id: Mapped[str] = mapped_column(
        StringUUID(),
        ForeignKey("keywords.id", ondelete="CASCADE"),
        nullable=False,
    )
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    user_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    selection_source: Mapped[str] = mapped_column(String(10), default="ai", nullable=False)

    def __repr__(self) -> str:
        return f"<TopicCluster {self.hub_keyword_id} -> {self.spoke_keyword_id}>"
