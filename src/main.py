import asyncio
import logging
import signal
import sys
from datetime import timedelta

from aiohttp import web
from dotenv import load_dotenv

from src.api.routes import build_app
from src.application.scheduler import RecurringTask, delay_until_weekday
from src.application.sync_service import SyncService
from src.config import Settings
from src.domain.exceptions import ConfigError
from src.infrastructure.database import Database
from src.infrastructure.github_client import GitHubRestClient
from src.infrastructure.log_config import configure_logging

logger = logging.getLogger(__name__)


async def main():
    # Load environment variables from .env file
    load_dotenv()

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error(f"{e}")
        sys.exit(1)

    loggers = configure_logging(settings)
    loggers.server.debug(f"Loaded config - Host: {settings.host}, Port: {settings.port}")

    # Fail fast on the trust store before anything is bound or scheduled
    try:
        github_client = GitHubRestClient(
            token=settings.github_token,
            ca_bundle=settings.ca_bundle,
            timeout=settings.github_timeout_seconds,
            logger=loggers.sync,
        )
    except ConfigError as e:
        loggers.server.error(f"{e}")
        sys.exit(1)

    loggers.server.info("Connecting to database.")
    database = Database(db_url=settings.database_url, logger=loggers.server)
    sync_service = SyncService(
        github_client=github_client,
        database=database,
        concurrency=settings.sync_concurrency,
        logger=loggers.sync,
    )

    runner = web.AppRunner(build_app(database, loggers.server), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()
    loggers.server.info(f"Server ready and listening on http://{settings.host}:{settings.port}")

    scheduler = RecurringTask(
        name="GitHub sync",
        task=sync_service.run_all,
        initial_delay=delay_until_weekday(settings.sync_weekday),
        interval=timedelta(days=settings.sync_interval_days),
        logger=loggers.sync,
    )
    scheduler.start()
    loggers.sync.info(
        f"Tasks ready and running every {settings.sync_interval_days} days "
        f"(first run in {scheduler.initial_delay})."
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
        loggers.server.info("Shutdown signal received.")
    finally:
        await scheduler.stop()
        await runner.cleanup()
        await database.close()


if __name__ == "__main__":
    asyncio.run(main())
