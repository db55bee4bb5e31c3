"""Run (or resume) the keyword pipeline for one workflow."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

from keyword_intel.config import settings
from keyword_intel.core.database import close_db
from keyword_intel.core.exceptions import KeywordIntelError
from keyword_intel.core.logging import setup_logging
from keyword_intel.core.redis import close_redis
from keyword_intel.integrations.dataforseo import DataForSEOClient
from keyword_intel.repositories.keyword_repository import KeywordRepository
from keyword_intel.repositories.topic_cluster_repository import TopicClusterRepository
from keyword_intel.repositories.workflow_repository import WorkflowRepository
from keyword_intel.schemas.keyword import Competitor, FilterOptions
from keyword_intel.schemas.topic_cluster import ClusterOptions
from keyword_intel.services.analytics import InMemoryEventPublisher, RedisEventPublisher
from keyword_intel.services.pipeline_orchestrator import KeywordPipelineOrchestrator

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--organization-id", required=True, help="Organization owning the workflow")
    parser.add_argument(
        "--workflow-id",
        default=None,
        help="Workflow to resume (default: start a new one)",
    )
    parser.add_argument(
        "--competitor",
        action="append",
        default=[],
        metavar="URL",
        help="Competitor URL (repeatable)",
    )
    parser.add_argument(
        "--competitors-file",
        type=Path,
        default=None,
        help="JSON file with a list of {id, url, domain?, name?} competitor objects",
    )
    parser.add_argument("--locale", default=settings.default_locale, help="Workflow locale, e.g. en-US")
    parser.add_argument("--min-search-volume", type=int, default=settings.filter_min_search_volume)
    parser.add_argument("--similarity-threshold", type=float, default=settings.filter_similarity_threshold)
    parser.add_argument("--cluster-threshold", type=float, default=settings.cluster_similarity_threshold)
    parser.add_argument("--max-spokes", type=int, default=settings.cluster_max_spokes_per_hub)
    parser.add_argument("--min-cluster-size", type=int, default=settings.cluster_min_cluster_size)
    parser.add_argument(
        "--no-analytics",
        action="store_true",
        help="Keep analytics events in memory instead of pushing them to Redis",
    )
    return parser.parse_args()


def load_competitors(args: argparse.Namespace) -> list[Competitor]:
    competitors: list[Competitor] = []
    if args.competitors_file is not None:
        raw: list[dict[str, Any]] = json.loads(args.competitors_file.read_text(encoding="utf-8"))
        competitors.extend(Competitor.model_validate(item) for item in raw)
    for url in args.competitor:
        competitors.append(Competitor(id=uuid.uuid4().hex, url=url))
    return competitors


async def async_main() -> int:
    args = parse_args()
    setup_logging()

    competitors = load_competitors(args)
    workflow_id = args.workflow_id or uuid.uuid4().hex
    publisher = InMemoryEventPublisher() if args.no_analytics else RedisEventPublisher()

    try:
        async with DataForSEOClient() as client:
            orchestrator = KeywordPipelineOrchestrator(
                client,
                keyword_store=KeywordRepository(),
                cluster_store=TopicClusterRepository(),
                workflow_store=WorkflowRepository(),
                publisher=publisher,
            )
            summary = await orchestrator.run(
                workflow_id,
                args.organization_id,
                competitors,
                locale=args.locale,
                filter_options=FilterOptions(
                    min_search_volume=args.min_search_volume,
                    similarity_threshold=args.similarity_threshold,
                ),
                cluster_options=ClusterOptions(
                    similarity_threshold=args.cluster_threshold,
                    max_spokes_per_hub=args.max_spokes,
                    min_cluster_size=args.min_cluster_size,
                ),
            )
    except KeywordIntelError as exc:
        print(f"Keyword pipeline failed for workflow {workflow_id}: {exc}", file=sys.stderr)
        return 1
    finally:
        await close_redis()
        await close_db()

    print(
        json.dumps(
            {
                "workflow_id": summary.workflow_id,
                "status": summary.status,
                "steps_run": summary.steps_run,
            },
            indent=2,
        )
    )
    return 0


def main() -> int:
    """Sync wrapper."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    raise SystemExit(main())
