import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import aiohttp

from src.domain.exceptions import ExternalApiError, NotFoundError, StorageError
from src.domain.models import Repository
from src.infrastructure.database import Database
from src.infrastructure.github_client import GitHubRestClient

module_logger = logging.getLogger(__name__)


@dataclass
class StageReport:
    """Per-entity outcome of one pipeline stage."""
    stage: str
    updated: List[str] = field(default_factory=list)
    # Persisted, but at least one upstream call after the first one failed.
    partial: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    # Set when the stage could not even list its entities.
    error: Optional[str] = None

    def summary(self) -> str:
        return (
            f"{self.stage}: {len(self.updated)} updated, {len(self.partial)} partial, "
            f"{len(self.skipped)} skipped, {len(self.failed)} failed"
        )


@dataclass
class SyncReport:
    repositories: StageReport
    accounts: StageReport
    platforms: StageReport
    duration_seconds: float = 0.0


class SyncService:
    """
    Refreshes stored counters from the GitHub REST API.

    The pipeline runs Repositories -> Accounts -> Platforms. Every entity is
    handled in isolation: an upstream or storage failure is logged, recorded
    in the stage report and the batch moves on. Entities are processed one at
    a time unless `concurrency` is raised; each entity is only ever handled by
    a single coroutine, so writes to the same row never interleave.
    """

    def __init__(
            self,
            github_client: GitHubRestClient,
            database: Database,
            concurrency: int = 1,
            logger: Optional[logging.Logger] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.github_client = github_client
        self.database = database
        self.concurrency = concurrency
        self.logger = logger or module_logger

    async def run_all(self) -> SyncReport:
        """Runs the full pipeline. Entity-level failures never escalate out of here."""
        start = time.monotonic()
        async with self.github_client.open_session() as session:
            repositories = await self.sync_repositories(session)
            accounts = await self.sync_accounts(session)
        # Platform counters are folded from children, so they go last.
        platforms = await self.sync_platforms()

        report = SyncReport(repositories, accounts, platforms, duration_seconds=time.monotonic() - start)
        for stage in (repositories, accounts, platforms):
            self.logger.info(stage.summary())
        self.logger.info(f"Sync finished in {report.duration_seconds:.1f}s")
        return report

    async def _for_each(self, report: StageReport, ids: Iterable[str], handler: Callable[[str], Awaitable[None]]) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(entity_id: str) -> None:
            async with semaphore:
                try:
                    await handler(entity_id)
                except Exception as e:
                    self.logger.exception(f"[{report.stage}] Unexpected error for {entity_id}: {e}")
                    report.failed[entity_id] = str(e)

        await asyncio.gather(*(guarded(entity_id) for entity_id in ids))

    async def _list_ids(self, report: StageReport, store) -> Optional[List[str]]:
        try:
            entities = await store.list()
        except StorageError as e:
            self.logger.error(f"[{report.stage}] Could not list entities: {e}")
            report.error = str(e)
            return None
        return [entity.id for entity in entities]

    # Repositories
    # - /repos/{owner}/{repo}                -> forks, stars, subscribers
    # - /repos/{owner}/{repo}/traffic/clones -> clones
    # - /repos/{owner}/{repo}/traffic/views  -> views
    async def sync_repositories(self, session: aiohttp.ClientSession) -> StageReport:
        report = StageReport("repositories")
        ids = await self._list_ids(report, self.database.repositories)
        if ids is not None:
            await self._for_each(report, ids, lambda repo_id: self._sync_repository(session, repo_id, report))
        return report

    async def _sync_repository(self, session: aiohttp.ClientSession, repo_id: str, report: StageReport) -> None:
        try:
            repository = await self.database.repositories.get(repo_id)
            account = await self.database.accounts.get(repository.account_id)
        except NotFoundError as e:
            # Soft-deleted repository or orphaned/deleted account.
            self.logger.debug(f"Skipping repository {repo_id}: {e}")
            report.skipped.append(repo_id)
            return
        except StorageError as e:
            self.logger.error(f"Could not load repository {repo_id}: {e}")
            report.failed[repo_id] = str(e)
            return

        owner = account.name
        try:
            stats = await self.github_client.fetch_repo_stats(session, owner, repository.name)
        except ExternalApiError as e:
            self.logger.error(f"Repo stats for {owner}/{repository.name} failed: {e}")
            report.failed[repo_id] = str(e)
            return
        repository = repository.merge_repo_stats(stats)

        repository, complete = await self._merge_traffic(session, owner, repository)

        self.logger.info(
            f"Repo: ID: {repository.id}, Name: {repository.name}, AccountId: {repository.account_id}, "
            f"Clones: {repository.clones}, Forks: {repository.forks}, Stars: {repository.stars}, "
            f"Subscribers: {repository.subscribers}, Views: {repository.views}"
        )
        try:
            await self.database.repositories.update(repository)
        except StorageError as e:
            self.logger.error(f"DB update failed for {repository.id}: {e}")
            report.failed[repo_id] = str(e)
            return

        if complete:
            report.updated.append(repo_id)
        else:
            report.partial.append(repo_id)

    async def _merge_traffic(
            self, session: aiohttp.ClientSession, owner: str, repository: Repository,
    ) -> Tuple[Repository, bool]:
        """
        Merges clones then views. Stops at the first failure and returns what
        was merged so far; earlier merges are kept and persisted by the caller.
        """
        try:
            repository = repository.merge_clones(
                await self.github_client.fetch_clones(session, owner, repository.name)
            )
            repository = repository.merge_views(
                await self.github_client.fetch_views(session, owner, repository.name)
            )
        except ExternalApiError as e:
            self.logger.warning(
                f"Traffic for {owner}/{repository.name} failed, persisting partial merge: {e}"
            )
            return repository, False
        return repository, True

    # Accounts
    # - /orgs/{org} -> followers
    async def sync_accounts(self, session: aiohttp.ClientSession) -> StageReport:
        report = StageReport("accounts")
        ids = await self._list_ids(report, self.database.accounts)
        if ids is not None:
            await self._for_each(report, ids, lambda account_id: self._sync_account(session, account_id, report))
        return report

    async def _sync_account(self, session: aiohttp.ClientSession, account_id: str, report: StageReport) -> None:
        try:
            account = await self.database.accounts.get(account_id)
        except NotFoundError:
            report.skipped.append(account_id)
            return
        except StorageError as e:
            self.logger.error(f"Could not load account {account_id}: {e}")
            report.failed[account_id] = str(e)
            return

        try:
            stats = await self.github_client.fetch_org_stats(session, account.name)
        except ExternalApiError as e:
            self.logger.error(f"Org stats for {account.name} failed: {e}")
            report.failed[account_id] = str(e)
            return
        account = account.merge_org_stats(stats)

        self.logger.info(f"Account: ID: {account.id}, Name: {account.name}, Followers: {account.followers}")
        try:
            await self.database.accounts.update(account)
        except StorageError as e:
            self.logger.error(f"DB update failed for {account.id}: {e}")
            report.failed[account_id] = str(e)
            return
        report.updated.append(account_id)

    # Platforms: recomputed from live accounts and their live repositories.
    async def sync_platforms(self) -> StageReport:
        report = StageReport("platforms")
        ids = await self._list_ids(report, self.database.platforms)
        if ids is not None:
            await self._for_each(report, ids, lambda platform_id: self._sync_platform(platform_id, report))
        return report

    async def _sync_platform(self, platform_id: str, report: StageReport) -> None:
        try:
            platform = await self.database.platforms.get(platform_id)
        except NotFoundError:
            report.skipped.append(platform_id)
            return
        except StorageError as e:
            self.logger.error(f"Could not load platform {platform_id}: {e}")
            report.failed[platform_id] = str(e)
            return

        try:
            accounts = await self.database.accounts.children('platform_id', platform_id)
            repositories: List[Repository] = []
            for account in accounts:
                repositories.extend(await self.database.repositories.children('account_id', account.id))
            platform = platform.aggregate(accounts, repositories)
            await self.database.platforms.update(platform)
        except StorageError as e:
            self.logger.error(f"Aggregation failed for platform {platform_id}: {e}")
            report.failed[platform_id] = str(e)
            return

        self.logger.info(
            f"Platform: ID: {platform.id}, Name: {platform.name}, Followers: {platform.followers}, "
            f"Clones: {platform.clones}, Forks: {platform.forks}, Stars: {platform.stars}, "
            f"Views: {platform.views}, Watchers: {platform.watchers}"
        )
        report.updated.append(platform_id)
