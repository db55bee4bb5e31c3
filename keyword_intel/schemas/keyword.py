"""Keyword schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from keyword_intel.config import settings
from keyword_intel.models.keyword import CompetitionLevel, FilteredReason, StageStatus


class Competitor(BaseModel):
    """Competitor site whose ranking keywords seed the workflow."""

    id: str
    url: str
    domain: str | None = None
    name: str | None = None
    is_active: bool = True


class KeywordCreate(BaseModel):
    """Schema for inserting a seed or longtail keyword."""

    organization_id: str
    workflow_id: str
    keyword: str
    competitor_url_id: str | None = None
    seed_keyword: str | None = None
    parent_seed_keyword_id: str | None = None
    search_volume: int = 0
    competition_level: CompetitionLevel = "low"
    competition_index: int = Field(default=0, ge=0, le=100)
    keyword_difficulty: int = Field(default=0, ge=0, le=100)
    cpc: float | None = None
    longtail_status: StageStatus = "not_started"
    subtopics_status: StageStatus = "not_started"
    article_status: StageStatus = "not_started"


class KeywordRecord(BaseModel):
    """Keyword row as read back from the store."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    workflow_id: str
    keyword: str
    search_volume: int = 0
    competitor_url_id: str | None = None
    seed_keyword: str | None = None
    parent_seed_keyword_id: str | None = None
    competition_level: CompetitionLevel = "low"
    competition_index: int = 0
    keyword_difficulty: int = 0
    cpc: float | None = None
    longtail_status: StageStatus = "not_started"
    user_selected: bool = False
    is_filtered_out: bool = False
    filtered_reason: FilteredReason | None = None

    @property
    def is_seed(self) -> bool:
        return self.parent_seed_keyword_id is None


class KeywordFilterUpdate(BaseModel):
    """Sparse upsert payload marking a keyword as filtered out."""

    id: str
    filtered_reason: FilteredReason
    filtered_at: datetime
    is_filtered_out: bool = True


class FilterOptions(BaseModel):
    """Knobs for the keyword filter step."""

    min_search_volume: int = Field(default=settings.filter_min_search_volume, ge=0)
    similarity_threshold: float = Field(default=settings.filter_similarity_threshold, gt=0, le=1)
