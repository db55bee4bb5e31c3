"""Development helper to drop and recreate the keyword pipeline tables."""

from __future__ import annotations

import argparse
import asyncio

from keyword_intel.config import settings
from keyword_intel.core.database import close_db, engine, init_db
from keyword_intel.core.logging import setup_logging
from keyword_intel.models import Base


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--drop-only",
        action="store_true",
        help="Drop the tables without recreating them",
    )
    return parser.parse_args()


async def _reset_tables(*, recreate: bool) -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        if recreate:
            await init_db()
    finally:
        await close_db()


def main() -> int:
    args = parse_args()
    setup_logging()
    if settings.environment == "production":
        print("Refusing to reset tables in production")
        return 1
    asyncio.run(_reset_tables(recreate=not args.drop_only))
    print("Keyword pipeline tables reset complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
