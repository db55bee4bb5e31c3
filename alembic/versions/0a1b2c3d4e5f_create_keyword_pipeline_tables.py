"""create keyword pipeline tables

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-17 09:30:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op
from keyword_intel.models.base import StringUUID

# revision identifiers, used by Alembic.
revision: str = "0a1b2c3d4e5f"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "intent_workflows",
        sa.Column("organization_id", StringUUID(), nullable=False),
        sa.Column("locale", sa.String(length=10), server_default="en-US", nullable=False),
        sa.Column("status", sa.String(length=30), server_default="step_1_seeds", nullable=False),
        sa.Column("current_step", sa.String(length=30), server_default="step_1_seeds", nullable=False),
        sa.Column("retry_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_error_message", sa.Text(), nullable=True),
        sa.Column("step_progress", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("id", StringUUID(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_intent_workflows_organization_id"),
        "intent_workflows",
        ["organization_id"],
        unique=False,
    )

    op.create_table(
        "keywords",
        sa.Column("organization_id", StringUUID(), nullable=False),
        sa.Column("workflow_id", StringUUID(), nullable=False),
        sa.Column("competitor_url_id", StringUUID(), nullable=True),
        sa.Column("parent_seed_keyword_id", StringUUID(), nullable=True),
        sa.Column("seed_keyword", sa.String(length=500), nullable=True),
        sa.Column("keyword", sa.String(length=500), nullable=False),
        sa.Column("search_volume", sa.Integer(), server_default="0", nullable=False),
        sa.Column("competition_level", sa.String(length=10), server_default="low", nullable=False),
        sa.Column("competition_index", sa.Integer(), server_default="0", nullable=False),
        sa.Column("keyword_difficulty", sa.Integer(), server_default="0", nullable=False),
        sa.Column("cpc", sa.Float(), nullable=True),
        sa.Column("longtail_status", sa.String(length=20), server_default="not_started", nullable=False),
        sa.Column("subtopics_status", sa.String(length=20), server_default="not_started", nullable=False),
        sa.Column("article_status", sa.String(length=20), server_default="not_started", nullable=False),
        sa.Column("user_selected", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("is_filtered_out", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("filtered_reason", sa.String(length=20), nullable=True),
        sa.Column("filtered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("id", StringUUID(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["workflow_id"], ["intent_workflows.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_seed_keyword_id"], ["keywords.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_keywords_workflow_id"), "keywords", ["workflow_id"], unique=False)
    op.create_index(op.f("ix_keywords_keyword"), "keywords", ["keyword"], unique=False)
    op.create_index(
        op.f("ix_keywords_parent_seed_keyword_id"),
        "keywords",
        ["parent_seed_keyword_id"],
        unique=False,
    )
    op.create_index("ix_keywords_org_workflow", "keywords", ["organization_id", "workflow_id"], unique=False)
    op.create_index(
        "ix_keywords_workflow_competitor",
        "keywords",
        ["workflow_id", "competitor_url_id"],
        unique=False,
    )

    op.create_table(
        "topic_clusters",
        sa.Column("workflow_id", StringUUID(), nullable=False),
        sa.Column("hub_keyword_id", StringUUID(), nullable=False),
        sa.Column("spoke_keyword_id", StringUUID(), nullable=False),
        sa.Column("similarity_score", sa.Float(), nullable=False),
        sa.Column("user_selected", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("selection_source", sa.String(length=10), server_default="ai", nullable=False),
        sa.Column("id", StringUUID(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("hub_keyword_id <> spoke_keyword_id", name="ck_topic_clusters_hub_not_spoke"),
        sa.CheckConstraint(
            "similarity_score >= 0 AND similarity_score <= 1",
            name="ck_topic_clusters_similarity_range",
        ),
        sa.ForeignKeyConstraint(["workflow_id"], ["intent_workflows.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["hub_keyword_id"], ["keywords.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["spoke_keyword_id"], ["keywords.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workflow_id", "spoke_keyword_id", name="uq_topic_clusters_workflow_spoke"),
    )
    op.create_index(op.f("ix_topic_clusters_workflow_id"), "topic_clusters", ["workflow_id"], unique=False)
    op.create_index(
        op.f("ix_topic_clusters_hub_keyword_id"),
        "topic_clusters",
        ["hub_keyword_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_topic_clusters_hub_keyword_id"), table_name="topic_clusters")
    op.drop_index(op.f("ix_topic_clusters_workflow_id"), table_name="topic_clusters")
    op.drop_table("topic_clusters")

    op.drop_index("ix_keywords_workflow_competitor", table_name="keywords")
    op.drop_index("ix_keywords_org_workflow", table_name="keywords")
    op.drop_index(op.f("ix_keywords_parent_seed_keyword_id"), table_name="keywords")
    op.drop_index(op.f("ix_keywords_keyword"), table_name="keywords")
    op.drop_index(op.f("ix_keywords_workflow_id"), table_name="keywords")
    op.drop_table("keywords")

    op.drop_index(op.f("ix_intent_workflows_organization_id"), table_name="intent_workflows")
    op.drop_table("intent_workflows")
