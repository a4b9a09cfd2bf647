"""Request router applying the cache strategies."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urljoin

from diet_tracker.domain.http import (
    NetworkError,
    OfflineNavigationError,
    ProxyRequest,
    StoredResponse,
)
from diet_tracker.domain.routing import Strategy, choose_strategy
from diet_tracker.services.cache import CacheStorage

_logger = logging.getLogger(__name__)


class OriginFetcher(Protocol):
    """Interface for fetching a request from the network."""

    async def fetch(self, request: ProxyRequest) -> StoredResponse:
        """Fetch the request, raising NetworkError when unreachable."""


@dataclass
class RequestRouter:
    """Serves intercepted requests from the network or the current generation.

    Cache writes are detached tasks: they never delay the response and their
    failures are logged and dropped. ``drain`` waits for the ones in flight.
    Once ``retired`` is set, writes still in flight are skipped so an evicted
    generation is not recreated.
    """

    storage: CacheStorage
    fetcher: OriginFetcher
    generation: str
    worker_origin: str
    navigation_fallback_path: str = "/index.html"
    bypass_patterns: Sequence[str] = (".csv",)
    retired: bool = False
    _pending: set[asyncio.Task[None]] = field(default_factory=set, repr=False)

    @property
    def fallback_url(self) -> str:
        return urljoin(self.worker_origin, self.navigation_fallback_path)

    def strategy_for(self, request: ProxyRequest) -> Strategy:
        """Return the strategy the policy assigns to a request."""
        return choose_strategy(
            request,
            worker_origin=self.worker_origin,
            bypass_patterns=self.bypass_patterns,
        )

    async def handle(self, request: ProxyRequest) -> StoredResponse | None:
        """Serve a request, or return None when it must pass through untouched."""
        strategy = self.strategy_for(request)
        if strategy is Strategy.BYPASS:
            return None
        if strategy is Strategy.NETWORK_ONLY:
            return await self.fetcher.fetch(request)
        if strategy is Strategy.NETWORK_FIRST:
            return await self._network_first(request)
        return await self._cache_first(request)

    async def _network_first(self, request: ProxyRequest) -> StoredResponse:
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as exc:
            cache = await self.storage.open(self.generation)
            cached = await cache.match(request)
            if cached is not None:
                return cached
            fallback = await cache.match(request.with_url(self.fallback_url))
            if fallback is not None:
                _logger.info("Offline navigation to %s: fallback page", request.url)
                return fallback
            raise OfflineNavigationError(
                f"No network and no cached page for {request.url}"
            ) from exc
        self._store_detached(request, response)
        return response

    async def _cache_first(self, request: ProxyRequest) -> StoredResponse:
        cache = await self.storage.open(self.generation)
        cached = await cache.match(request)
        if cached is not None:
            return cached
        response = await self.fetcher.fetch(request)
        self._store_detached(request, response)
        return response

    def _store_detached(self, request: ProxyRequest, response: StoredResponse) -> None:
        if not response.ok:
            return
        task = asyncio.create_task(self._store(request, response.clone()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store(self, request: ProxyRequest, response: StoredResponse) -> None:
        if self.retired:
            _logger.debug("Skipping cache write for retired %s", self.generation)
            return
        try:
            cache = await self.storage.open(self.generation)
            await cache.put(request, response)
        except Exception:
            _logger.exception("Cache write failed for %s", request.url)

    async def drain(self) -> None:
        """Wait for detached cache writes still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
