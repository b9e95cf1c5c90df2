import argparse
import asyncio
import os
import sys

# path setup
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from todo_manager.api.deps import get_todo_service
from todo_manager.core.config import settings
from todo_manager.core.constants import SEED_BATCH_SIZE, SEED_MAX_TODOS, SEED_TOTAL_TODOS
from todo_manager.core.logging import configure_logging
from todo_manager.db.mongo import close_mongo_connection, connect_to_mongo


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Seed the TODO collection with synthetic records.")
    parser.add_argument("--count", type=int, default=SEED_TOTAL_TODOS)
    parser.add_argument("--batch-size", type=int, default=SEED_BATCH_SIZE)
    parser.add_argument("--clear", action="store_true", help="delete every record first")
    args = parser.parse_args(argv)
    if not 1 <= args.count <= SEED_MAX_TODOS:
        parser.error(f"--count must be between 1 and {SEED_MAX_TODOS}")
    return args


async def main(argv=None):
    args = parse_args(argv)
    logger = configure_logging(settings.LOG_LEVEL)

    await connect_to_mongo()
    try:
        service = get_todo_service()
        await service.store.ensure_index()

        if args.clear:
            cleared = await service.delete_all()
            logger.info("Cleared %d existing records", cleared.deleted)

        result = await service.seed(args.count, batch_size=args.batch_size)
        logger.info(
            "Seeded %d/%d records (%d failed) in %s",
            result.processed, result.requested, result.failed, result.duration,
        )
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
