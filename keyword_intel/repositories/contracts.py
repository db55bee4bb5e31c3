"""Read/write contracts the pipeline steps depend on."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from keyword_intel.models.keyword import StageStatus
from keyword_intel.schemas.keyword import KeywordCreate, KeywordFilterUpdate, KeywordRecord
from keyword_intel.schemas.topic_cluster import TopicClusterEdge
from keyword_intel.schemas.workflow import WorkflowRecord


class KeywordStore(Protocol):
    """Scoped access to the ``keywords`` relation."""

    async def replace_competitor_seeds(
        self,
        *,
        organization_id: str,
        workflow_id: str,
        competitor_url_id: str,
        seeds: Sequence[KeywordCreate],
    ) -> list[KeywordRecord]:
        """Delete the competitor's previous seeds and insert ``seeds`` atomically."""

    async def list_seeds_pending_expansion(
        self,
        *,
        organization_id: str,
        workflow_id: str,
    ) -> list[KeywordRecord]:
        """Seeds of the workflow whose longtail status is ``not_started``."""

    async def replace_longtails(
        self,
        *,
        seed: KeywordRecord,
        longtails: Sequence[KeywordCreate],
    ) -> int:
        """Replace the longtails hanging off ``seed``; returns rows inserted."""

    async def set_longtail_status(self, *, keyword_id: str, status: StageStatus) -> None:
        """Update the longtail stage status of one keyword."""

    async def list_longtails_for_filtering(
        self,
        *,
        organization_id: str,
        workflow_id: str,
    ) -> list[KeywordRecord]:
        """Active longtails of the workflow ordered by search volume, highest first."""

    async def mark_filtered(self, updates: Sequence[KeywordFilterUpdate]) -> int:
        """Upsert filter flags by keyword id; returns rows touched."""

    async def list_clusterable_keywords(
        self,
        *,
        workflow_id: str,
        user_selected_only: bool = False,
    ) -> list[KeywordRecord]:
        """Non-filtered keywords of the workflow ordered by search volume, highest first."""


class TopicClusterStore(Protocol):
    """Scoped access to the ``topic_clusters`` relation."""

    async def delete_for_workflow(self, workflow_id: str) -> int:
        """Delete every edge of the workflow; returns rows deleted."""

    async def insert_edges(self, workflow_id: str, edges: Sequence[TopicClusterEdge]) -> int:
        """Insert cluster edges; returns rows inserted."""


class WorkflowStore(Protocol):
    """Access to workflow status records."""

    async def get(self, workflow_id: str, organization_id: str | None = None) -> WorkflowRecord | None:
        """Fetch a workflow, optionally scoped to an organization."""

    async def create(self, *, workflow_id: str, organization_id: str, locale: str) -> WorkflowRecord:
        """Create a workflow at its first step."""

    async def update(
        self,
        workflow_id: str,
        organization_id: str,
        updates: Mapping[str, Any],
    ) -> WorkflowRecord:
        """Apply a sparse update and return the new state."""
