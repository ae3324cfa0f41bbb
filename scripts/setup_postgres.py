#!/usr/bin/env python3
"""Script to initialize PostgreSQL database schema."""

import asyncio
import logging
import sys
import os

# Add the project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dotenv import load_dotenv

from src.config import normalize_database_url
from src.domain.exceptions import StorageError
from src.infrastructure.database import Database

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)

logger = logging.getLogger(__name__)


async def setup() -> int:
    load_dotenv()
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        logger.error("DATABASE_URL is not set in the environment.")
        return 1

    database = Database(normalize_database_url(db_url))
    try:
        await database.initialize_schema()
    except StorageError as e:
        logger.error(f"Failed to setup database schema: {e}")
        return 1
    finally:
        await database.close()
    logger.info("Database schema setup completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(setup()))
