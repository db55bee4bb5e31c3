"""Repository for TopicCluster edges."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete

from keyword_intel.core.database import get_session_context
from keyword_intel.models.topic_cluster import TopicCluster
from keyword_intel.schemas.topic_cluster import TopicClusterEdge


class TopicClusterRepository:
    """Cluster edge persistence scoped by workflow."""

    async def delete_for_workflow(self, workflow_id: str) -> int:
        async with get_session_context() as session:
            result = await session.execute(
                delete(TopicCluster).where(TopicCluster.workflow_id == workflow_id)
            )
            return int(result.rowcount or 0)

    async def insert_edges(self, workflow_id: str, edges: Sequence[TopicClusterEdge]) -> int:
        if not edges:
            return 0
        async with get_session_context() as session:
            session.add_all(
                TopicCluster(
                    workflow_id=workflow_id,
                    hub_keyword_id=edge.hub_keyword_id,
                    spoke_keyword_id=edge.spoke_keyword_id,
                    similarity_score=edge.similarity_score,
                    user_selected=edge.user_selected,
                    selection_source=edge.selection_source,
                )
                for edge in edges
            )
        return len(edges)
