"""
Metadata client for the Feishu document API.

Fetches who last modified a document and when, through the legacy
``docs-api/meta`` endpoint. Successful results are cached for a short TTL,
transient failures are retried with jittered exponential backoff, and
permanent failures are raised immediately as typed errors.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from doc_change_monitor.client.cache import TTLMetadataCache
from doc_change_monitor.config.settings import MonitorConfig
from doc_change_monitor.core.interfaces import IMetadataCache, IMetadataClient
from doc_change_monitor.models import (
    DocumentMetadata,
    PermanentFetchError,
    PermissionDeniedError,
    ResourceNotFoundError,
    TransientFetchError,
)

logger = logging.getLogger(__name__)

META_ENDPOINT = "/open-apis/suite/docs-api/meta"

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class FeishuMetadataClient(IMetadataClient):
    """
    Metadata client backed by ``httpx.AsyncClient``.

    At most one upstream request is in flight per token: concurrent callers
    asking for the same token (a poll cycle racing an interactive check)
    share the result of a single request.
    """

    def __init__(
        self,
        config: MonitorConfig,
        cache: IMetadataCache | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        """
        Initialize the client.

        Args:
            config: Monitor configuration with API, cache and retry settings
            cache: Optional cache (a TTL cache is created if not provided)
            http_client: Optional preconfigured HTTP client, not closed by us
            sleep: Optional coroutine used for retry backoff
        """
        self.config = config
        self.cache = cache if cache is not None else TTLMetadataCache(config.metadata_cache_ttl_seconds)
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=config.api_timeout_seconds,
            headers=config.get_http_headers(),
        )
        self._sleep = sleep or asyncio.sleep
        self._in_flight: dict[str, asyncio.Future] = {}
        self._stats = {"cache_hits": 0, "upstream_requests": 0, "shared_requests": 0, "failures": 0}

    async def fetch(self, token: str, doc_type: str = "doc", use_cache: bool = True) -> DocumentMetadata:
        if use_cache:
            cached = self.cache.get(token)
            if cached is not None:
                self._stats["cache_hits"] += 1
                logger.debug("Cache hit for %s", token)
                return cached

        future = self._in_flight.get(token)
        if future is None:
            future = asyncio.ensure_future(self._fetch_and_cache(token, doc_type))
            self._in_flight[token] = future
            future.add_done_callback(lambda done: self._release(token, done))
        else:
            self._stats["shared_requests"] += 1
            logger.debug("Joining in-flight request for %s", token)

        return await asyncio.shield(future)

    def invalidate(self, token: str) -> None:
        self.cache.expire(token)

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> "FeishuMetadataClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def get_stats(self) -> dict[str, Any]:
        """Get request and cache counters for monitoring."""
        return {**self._stats, "in_flight": len(self._in_flight)}

    def _release(self, token: str, done: asyncio.Future) -> None:
        if self._in_flight.get(token) is done:
            del self._in_flight[token]

    async def _fetch_and_cache(self, token: str, doc_type: str) -> DocumentMetadata:
        try:
            metadata = await self._fetch_with_retry(token, doc_type)
        except (TransientFetchError, PermanentFetchError):
            self._stats["failures"] += 1
            raise

        self.cache.set(token, metadata)
        logger.debug("Retrieved metadata for %s: %s", token, metadata)
        return metadata

    async def _fetch_with_retry(self, token: str, doc_type: str) -> DocumentMetadata:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.fetch_max_retries + 1),
            wait=wait_exponential_jitter(
                initial=self.config.fetch_backoff_base_seconds,
                max=self.config.fetch_backoff_max_seconds,
                exp_base=self.config.fetch_backoff_factor,
                jitter=self.config.fetch_backoff_base_seconds,
            ),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        metadata = None
        async for attempt in retrying:
            with attempt:
                metadata = await self._request_once(token, doc_type)
        return metadata

    async def _request_once(self, token: str, doc_type: str) -> DocumentMetadata:
        self._stats["upstream_requests"] += 1
        payload = {"request_docs": [{"docs_token": token, "docs_type": doc_type}]}

        try:
            response = await self._http.post(f"{self.config.api_base_url}{META_ENDPOINT}", json=payload)
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                f"Timed out fetching metadata for {token}", token=token, underlying_error=e
            ) from e
        except httpx.TransportError as e:
            raise TransientFetchError(
                f"Connection error fetching metadata for {token}: {e}", token=token, underlying_error=e
            ) from e

        self._raise_for_status(token, response)

        try:
            body = response.json()
        except ValueError as e:
            raise TransientFetchError(
                f"Malformed response body for {token}",
                token=token,
                status_code=response.status_code,
                underlying_error=e,
            ) from e

        if not isinstance(body, dict):
            raise self._malformed(token, response, f"expected an object, got {type(body).__name__}")

        code = body.get("code", 0)
        if code != 0:
            raise TransientFetchError(
                f"API error for {token}: {body.get('msg') or 'unknown error'}",
                token=token,
                status_code=response.status_code,
                api_code=code,
            )

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise self._malformed(token, response, "data is not an object")
        metas = data.get("docs_metas") or []
        if not isinstance(metas, list):
            raise self._malformed(token, response, "docs_metas is not a list")
        if not metas:
            raise ResourceNotFoundError(
                f"No metadata in response for {token} (document may not exist)",
                token=token,
                status_code=response.status_code,
            )
        if not isinstance(metas[0], dict):
            raise self._malformed(token, response, "docs_metas entry is not an object")

        try:
            return self._parse_meta(token, doc_type, metas[0])
        except ValidationError as e:
            raise TransientFetchError(
                f"Malformed metadata for {token}: {e.error_count()} invalid field(s)",
                token=token,
                status_code=response.status_code,
                underlying_error=e,
            ) from e

    @staticmethod
    def _malformed(token: str, response: httpx.Response, detail: str) -> TransientFetchError:
        return TransientFetchError(
            f"Malformed response body for {token}: {detail}", token=token, status_code=response.status_code
        )

    @staticmethod
    def _raise_for_status(token: str, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        message = f"HTTP {status} fetching metadata for {token}"
        if status in RETRYABLE_STATUSES or status >= 500:
            raise TransientFetchError(message, token=token, status_code=status)
        if status == 404:
            raise ResourceNotFoundError(message, token=token, status_code=status)
        if status in (401, 403):
            raise PermissionDeniedError(message, token=token, status_code=status)
        raise PermanentFetchError(message, token=token, status_code=status)

    @staticmethod
    def _parse_meta(token: str, doc_type: str, meta: dict[str, Any]) -> DocumentMetadata:
        return DocumentMetadata(
            token=meta.get("docs_token") or token,
            title=meta.get("title") or "Unknown",
            doc_type=meta.get("docs_type") or doc_type,
            owner_id=meta.get("owner_id") or "unknown",
            created_time=meta.get("create_time") or 0,
            modified_at=meta.get("latest_modify_time") or 0,
            modified_by=meta.get("latest_modify_user") or "unknown",
        )
