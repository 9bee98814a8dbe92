"""
Create (or reset) the dispatch tables without running alembic.

Usage:
    python create_tables.py           # create webhook_endpoints/webhook_deliveries
    python create_tables.py --drop    # drop them first
"""
import argparse
import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

from webhook_dispatch.logging_config import configure_logging, get_logger
from webhook_dispatch.models.base import Base

# Registers the tables on Base.metadata
from webhook_dispatch.models.endpoint import WebhookEndpoint  # noqa: F401
from webhook_dispatch.models.delivery import WebhookDelivery  # noqa: F401


logger = get_logger(component="create_tables")


async def create_all_tables(engine: AsyncEngine) -> list[str]:
    """Create any missing dispatch tables and return their names."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    tables = sorted(Base.metadata.tables)
    logger.info("tables_created", tables=tables)
    return tables


async def drop_all_tables(engine: AsyncEngine) -> None:
    """Drop the dispatch tables, deliveries first."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("tables_dropped")


async def main(drop: bool = False) -> None:
    from webhook_dispatch.database import engine

    try:
        if drop:
            await drop_all_tables(engine)
        await create_all_tables(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(main(drop=args.drop))
