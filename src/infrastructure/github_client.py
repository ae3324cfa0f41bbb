import aiohttp
import asyncio
import logging
import os
import random
import ssl
from typing import Any, Optional

from src.domain.exceptions import ConfigError, DecodeError, TransportError
from src.domain.metrics import OrgStats, RepoStats, TrafficCount
from src.infrastructure.acl import GitHubTranslator

module_logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_RETRIES = 3
RETRYABLE_STATUSES = {500, 502, 503, 504}
# Limit concurrent connections to stay polite with GitHub's servers
CONNECTOR_LIMIT = 10


def build_ssl_context(ca_bundle: Optional[str] = None) -> ssl.SSLContext:
    """
    Builds the TLS context used for every upstream call.

    Uses ca_bundle when given, otherwise the system trust store. Raises
    ConfigError when no usable CA certificates can be found.
    """
    try:
        context = ssl.create_default_context(cafile=ca_bundle)
    except (OSError, ssl.SSLError) as e:
        raise ConfigError(f"Could not load CA bundle '{ca_bundle}': {e}") from e

    if context.cert_store_stats().get('x509_ca', 0) > 0:
        return context
    if ca_bundle:
        raise ConfigError(f"CA bundle '{ca_bundle}' contains no CA certificates.")

    # A hashed capath directory is loaded lazily, so an empty store is not
    # conclusive on its own.
    paths = ssl.get_default_verify_paths()
    has_cafile = bool(paths.cafile) and os.path.isfile(paths.cafile)
    has_capath = bool(paths.capath) and os.path.isdir(paths.capath) and bool(os.listdir(paths.capath))
    if not (has_cafile or has_capath):
        raise ConfigError("Could not find CA certificates.")
    return context


class GitHubRestClient:
    """
    Client for the GitHub REST API.
    Handles authentication, TLS trust, timeouts, retries and decoding of the
    repository, traffic and organization endpoints.
    """

    def __init__(
        self,
        token: str,
        ca_bundle: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        api_url: str = API_URL,
        ssl_context: Optional[ssl.SSLContext] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "git-insights",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=min(10.0, timeout))
        # Fail fast: the trust store is resolved before the first request.
        self.ssl_context = ssl_context or build_ssl_context(ca_bundle)
        self.logger = logger or module_logger

    def open_session(self) -> aiohttp.ClientSession:
        """Opens a session bound to this client's TLS context. The caller closes it."""
        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT, ssl=self.ssl_context),
        )

    async def fetch_repo_stats(self, session: aiohttp.ClientSession, owner: str, repo: str) -> RepoStats:
        raw = await self._get_json(session, f"repos/{owner}/{repo}")
        return GitHubTranslator.to_repo_stats(raw)

    async def fetch_clones(self, session: aiohttp.ClientSession, owner: str, repo: str) -> TrafficCount:
        raw = await self._get_json(session, f"repos/{owner}/{repo}/traffic/clones")
        return GitHubTranslator.to_traffic(raw)

    async def fetch_views(self, session: aiohttp.ClientSession, owner: str, repo: str) -> TrafficCount:
        raw = await self._get_json(session, f"repos/{owner}/{repo}/traffic/views")
        return GitHubTranslator.to_traffic(raw)

    async def fetch_org_stats(self, session: aiohttp.ClientSession, org: str) -> OrgStats:
        raw = await self._get_json(session, f"orgs/{org}")
        return GitHubTranslator.to_org_stats(raw)

    async def _get_json(self, session: aiohttp.ClientSession, path: str) -> Any:
        """
        Performs an authenticated GET and returns the decoded JSON body.

        Raises:
            TransportError: Network/TLS failure, timeout, or a non-success
                status once retries are exhausted.
            DecodeError: The body is not valid JSON.
        """
        url = f"{self.api_url}/{path}"
        self.logger.debug(f"Making HTTP GET request to: {url}")
        last_error = "no attempt made"
        last_status: Optional[int] = None

        for attempt in range(MAX_RETRIES):
            try:
                async with session.get(url, headers=self.headers, timeout=self.timeout) as response:
                    # Secondary rate limit (abuse detection)
                    retry_after = response.headers.get('Retry-After')
                    if response.status in (403, 429) and retry_after:
                        sleep_time = int(retry_after) if retry_after.isdigit() else 60
                        last_error, last_status = f"rate limited ({response.status})", response.status
                        self.logger.warning(f"Secondary rate limit on {url}. Sleeping {sleep_time}s...")
                        await asyncio.sleep(sleep_time)
                        continue

                    if response.status in RETRYABLE_STATUSES:
                        sleep_time = (2 ** attempt) + random.uniform(0, 1)
                        last_error, last_status = f"server error ({response.status})", response.status
                        self.logger.warning(
                            f"Server error ({response.status}) on {url}, "
                            f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                        )
                        await asyncio.sleep(sleep_time)
                        continue

                    if response.status >= 400:
                        raise TransportError(f"GET {url} returned {response.status}", status=response.status)

                    try:
                        return await response.json(content_type=None)
                    except ValueError as e:
                        raise DecodeError(f"GET {url} returned a body that is not JSON: {e}") from e

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error, last_status = str(e) or type(e).__name__, None
                sleep_time = (2 ** attempt) + random.uniform(0, 1)
                self.logger.warning(
                    f"GET {url} failed (attempt {attempt + 1}/{MAX_RETRIES}): {last_error}. "
                    f"Retrying in {sleep_time:.1f}s..."
                )
                await asyncio.sleep(sleep_time)

        raise TransportError(f"GET {url} failed after {MAX_RETRIES} attempts: {last_error}", status=last_status)
