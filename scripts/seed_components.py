#!/usr/bin/env python3
"""
Seeds the tracked entities from a components file.

The file looks like {"components": [{"name": "repo-a"}, ...]}. A `github`
platform and the owning account are created unless they already exist, then
one repository is created per component. Existing repositories are left alone.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

# Add the project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dotenv import load_dotenv

from src.config import normalize_database_url
from src.domain.exceptions import StorageError
from src.domain.models import Account, Platform, Repository
from src.infrastructure.database import Database

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)

logger = logging.getLogger(__name__)


async def ensure_platform(database: Database, name: str) -> Platform:
    for platform in await database.platforms.list():
        if platform.name == name and not platform.is_deleted:
            return platform
    platform = await database.platforms.create(Platform(name=name))
    logger.info(f"Created platform with id: {platform.id}")
    return platform


async def ensure_account(database: Database, name: str, platform: Platform) -> Account:
    for account in await database.accounts.children('platform_id', platform.id):
        if account.name == name:
            return account
    account = await database.accounts.create(Account(name=name, platform_id=platform.id))
    logger.info(f"Created account '{name}' with id: {account.id}")
    return account


async def seed(path: str, account_name: str, platform_name: str) -> int:
    load_dotenv()
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        logger.error("DATABASE_URL is not set in the environment.")
        return 1

    try:
        with open(path) as f:
            components = json.load(f).get("components", [])
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read components from {path}: {e}")
        return 1

    database = Database(normalize_database_url(db_url))
    try:
        platform = await ensure_platform(database, platform_name.lower())
        account = await ensure_account(database, account_name.lower(), platform)
        existing = {r.name for r in await database.repositories.children('account_id', account.id)}

        created = 0
        for component in components:
            name = str(component.get("name", "")).strip().lower()
            if not name or name in existing:
                continue
            try:
                await database.repositories.create(Repository(name=name, account_id=account.id))
            except StorageError as e:
                logger.warning(f"Skipping component '{name}': {e}")
                continue
            existing.add(name)
            created += 1
        logger.info(f"Created {created} repositories for account '{account.name}'.")
    except StorageError as e:
        logger.error(f"Seeding failed: {e}")
        return 1
    finally:
        await database.close()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("components", help="Path to the components JSON file")
    parser.add_argument("--account", required=True, help="Account (organization) that owns the repositories")
    parser.add_argument("--platform", default="github", help="Platform name (default: github)")
    args = parser.parse_args()
    return asyncio.run(seed(args.components, args.account, args.platform))


if __name__ == "__main__":
    sys.exit(main())
