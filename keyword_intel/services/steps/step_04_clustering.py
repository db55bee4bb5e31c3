"""Step 4: Hub-and-spoke topic clustering.

Greedy and deterministic for a fixed input order: the highest-volume
unassigned keyword becomes a hub, the most similar remaining keywords become
its spokes, and the loop stops at the first hub that cannot gather enough
spokes. Keywords left over stay unclustered.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from keyword_intel.config import settings
from keyword_intel.core.exceptions import ClusteringGuardError
from keyword_intel.models.workflow import STEP_CLUSTERING
from keyword_intel.repositories.contracts import KeywordStore, TopicClusterStore
from keyword_intel.schemas.keyword import KeywordRecord
from keyword_intel.schemas.topic_cluster import ClusterOptions, ClusterResult, TopicClusterEdge
from keyword_intel.services.analytics import EVENT_CLUSTERING_COMPLETED, EVENT_CLUSTERING_STARTED
from keyword_intel.services.steps.base_step import BaseStepService
from keyword_intel.services.steps.step_03_filtering import normalize_keyword

logger = logging.getLogger(__name__)

# Pairwise scoring is quadratic in the keyword count.
MAX_CLUSTER_KEYWORDS = settings.max_cluster_keywords
PARTIAL_MATCH_BONUS = 0.1
MIN_TOKEN_LENGTH = 3

SimilarityScorer = Callable[[str, str], float]


def _tokens(text: str) -> set[str]:
    return {word for word in normalize_keyword(text).split() if len(word) >= MIN_TOKEN_LENGTH}


def calculate_text_similarity(text1: str, text2: str) -> float:
    """Jaccard over normalized words plus 0.1 per substring cross pair, capped at 1.0."""
    words1 = _tokens(text1)
    words2 = _tokens(text2)
    if not words1 or not words2:
        return 0.0

    jaccard = len(words1 & words2) / len(words1 | words2)
    bonus = sum(
        PARTIAL_MATCH_BONUS
        for word1 in words1
        for word2 in words2
        if word1 != word2 and (word1 in word2 or word2 in word1)
    )
    return min(jaccard + bonus, 1.0)


def identify_hub(keywords: Sequence[KeywordRecord]) -> KeywordRecord:
    """Highest search volume wins; ties go to the earlier keyword."""
    if not keywords:
        raise ValueError("No keywords available for hub identification")
    best = keywords[0]
    for keyword in keywords[1:]:
        if keyword.search_volume > best.search_volume:
            best = keyword
    return best


def assign_spokes_to_hub(
    hub: KeywordRecord,
    candidates: Sequence[KeywordRecord],
    similarity_threshold: float,
    max_spokes_per_hub: int,
    scorer: SimilarityScorer = calculate_text_similarity,
) -> list[tuple[KeywordRecord, float]]:
    """Best-scoring candidates at or above the threshold, at most ``max_spokes_per_hub``."""
    scored = [(candidate, scorer(hub.keyword, candidate.keyword)) for candidate in candidates]
    qualified = [(candidate, score) for candidate, score in scored if score >= similarity_threshold]
    qualified.sort(key=lambda pair: pair[1], reverse=True)
    return qualified[:max_spokes_per_hub]


def perform_clustering(
    keywords: Sequence[KeywordRecord],
    options: ClusterOptions,
    scorer: SimilarityScorer = calculate_text_similarity,
) -> list[TopicClusterEdge]:
    """Run the greedy hub/spoke loop and return the committed edges."""
    pool = list(keywords)
    edges: list[TopicClusterEdge] = []

    while len(pool) >= options.min_cluster_size:
        hub = identify_hub(pool)
        candidates = [keyword for keyword in pool if keyword.id != hub.id]
        spokes = assign_spokes_to_hub(
            hub,
            candidates,
            options.similarity_threshold,
            options.max_spokes_per_hub,
            scorer,
        )
        if len(spokes) < options.min_cluster_size - 1:
            break

        assigned = {hub.id}
        for spoke, score in spokes:
            assigned.add(spoke.id)
            edges.append(
                TopicClusterEdge(
                    hub_keyword_id=hub.id,
                    hub_keyword=hub.keyword,
                    spoke_keyword_id=spoke.id,
                    spoke_keyword=spoke.keyword,
                    similarity_score=round(score, 6),
                    user_selected=False,
                    selection_source="ai",
                )
            )
        pool = [keyword for keyword in pool if keyword.id not in assigned]

    return edges


@dataclass
class ClusteringInput:
    """Input for clustering."""

    options: ClusterOptions


class KeywordClusterer(BaseStepService[ClusteringInput, ClusterResult]):
    """Groups a workflow's surviving keywords into hub-and-spoke clusters."""

    workflow_step = STEP_CLUSTERING
    step_name = "topic_clustering"

    def __init__(
        self,
        keywords: KeywordStore,
        clusters: TopicClusterStore,
        scorer: SimilarityScorer = calculate_text_similarity,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        if self.tracker is None:
            raise ValueError("KeywordClusterer requires a workflow status tracker")
        self.keywords = keywords
        self.clusters = clusters
        self.scorer = scorer

    async def _validate_preconditions(self, input_data: ClusteringInput) -> None:
        return None

    async def _execute(self, input_data: ClusteringInput) -> ClusterResult:
        return await self.cluster_keywords(self.workflow_id or "", input_data.options)

    @staticmethod
    def _check_guards(count: int, options: ClusterOptions) -> None:
        if count < 2:
            raise ClusteringGuardError(f"Insufficient keywords for clustering: {count} < 2")
        if count > MAX_CLUSTER_KEYWORDS:
            raise ClusteringGuardError(
                f"Keyword limit exceeded for clustering: {count} > {MAX_CLUSTER_KEYWORDS}"
            )
        if count < options.min_cluster_size:
            raise ClusteringGuardError(
                f"Insufficient keywords for clustering: {count} < {options.min_cluster_size}"
            )

    async def cluster_keywords(
        self,
        workflow_id: str,
        options: ClusterOptions | None = None,
    ) -> ClusterResult:
        """Cluster the workflow's non-filtered keywords, replacing earlier clusters.

        Raises:
            WorkflowNotFoundError: The workflow does not exist.
            ClusteringGuardError: Too few or too many keywords.
        """
        options = options or ClusterOptions()
        started = time.monotonic()

        workflow = await self.tracker.get_workflow(workflow_id)
        if self.workflow_id != workflow_id:
            self._bind(workflow_id, workflow.organization_id)

        keywords = await self._with_retry(
            lambda: self.keywords.list_clusterable_keywords(
                workflow_id=workflow_id,
                user_selected_only=options.user_selected_only,
            ),
            f"load_clusterable_keywords({workflow_id})",
        )
        self._check_guards(len(keywords), options)

        await self.publisher.publish(
            EVENT_CLUSTERING_STARTED,
            {
                "workflow_id": workflow_id,
                "organization_id": workflow.organization_id,
                "total_keywords": len(keywords),
                "similarity_threshold": options.similarity_threshold,
                "max_spokes_per_hub": options.max_spokes_per_hub,
            },
        )

        await self._with_retry(
            lambda: self.clusters.delete_for_workflow(workflow_id),
            f"clear_clusters({workflow_id})",
        )
        edges = perform_clustering(keywords, options, self.scorer)
        if edges:
            await self._with_retry(
                lambda: self.clusters.insert_edges(workflow_id, edges),
                f"persist_clusters({workflow_id})",
            )

        hubs = {edge.hub_keyword_id for edge in edges}
        clustered = len(hubs) + len(edges)
        result = ClusterResult(
            workflow_id=workflow_id,
            cluster_count=len(hubs),
            keywords_clustered=clustered,
            keywords_unclustered=len(keywords) - clustered,
            avg_cluster_size=round(clustered / len(hubs), 2) if hubs else 0.0,
            clusters=edges,
            completed_at=datetime.now(timezone.utc),
        )

        duration_ms = round((time.monotonic() - started) * 1000)
        logger.info(
            "Topic clustering completed",
            extra={
                "workflow_id": workflow_id,
                "total_keywords": len(keywords),
                "cluster_count": result.cluster_count,
                "keywords_unclustered": result.keywords_unclustered,
                "duration_ms": duration_ms,
            },
        )
        await self.publisher.publish(
            EVENT_CLUSTERING_COMPLETED,
            {
                "workflow_id": workflow_id,
                "organization_id": workflow.organization_id,
                "total_keywords": len(keywords),
                "cluster_count": result.cluster_count,
                "avg_cluster_size": result.avg_cluster_size,
                "duration_ms": duration_ms,
            },
        )
        return result
