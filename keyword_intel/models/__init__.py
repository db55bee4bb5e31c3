"""SQLAlchemy database models."""
from dotenv import load_dotenv

from keyword_intel.models.base import Base
from keyword_intel.models.keyword import Keyword
from keyword_intel.models.topic_cluster import TopicCluster
from keyword_intel.models.workflow import IntentWorkflow


load_dotenv()

__all__ = [
    "Base",
    "IntentWorkflow",
    "Keyword",
    "TopicCluster",
]
