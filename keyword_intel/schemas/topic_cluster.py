"""Topic cluster schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from keyword_intel.config import settings
from keyword_intel.models.topic_cluster import SelectionSource


class ClusterOptions(BaseModel):
    """Knobs for the clustering step."""

    similarity_threshold: float = Field(default=settings.cluster_similarity_threshold, ge=0, le=1)
    max_spokes_per_hub: int = Field(default=settings.cluster_max_spokes_per_hub, ge=1)
    min_cluster_size: int = Field(default=settings.cluster_min_cluster_size, ge=2)
    user_selected_only: bool = False

    @model_validator(mode="after")
    def _check_cluster_size(self) -> "ClusterOptions":
        if self.min_cluster_size - 1 > self.max_spokes_per_hub:
            raise ValueError("min_cluster_size - 1 must not exceed max_spokes_per_hub")
        return self


class TopicClusterEdge(BaseModel):
    """One committed hub -> spoke assignment."""

    hub_keyword_id: str
    hub_keyword: str
    spoke_keyword_id: str
    spoke_keyword: str
    similarity_score: float = Field(ge=0, le=1)
    user_selected: bool = False
    selection_source: SelectionSource = "ai"


class ClusterResult(BaseModel):
    """Summary returned by the clustering step."""

    workflow_id: str
    cluster_count: int
    keywords_clustered: int
    keywords_unclustered: int
    avg_cluster_size: float
    clusters: list[TopicClusterEdge]
    completed_at: datetime
