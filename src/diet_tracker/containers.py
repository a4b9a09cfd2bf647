"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from supabase import create_client

from diet_tracker.adapters.metering_client import HttpxMeteringClient
from diet_tracker.adapters.openai_vision_client import OpenAIVisionClient
from diet_tracker.adapters.openfoodfacts_client import HttpxOpenFoodFactsClient
from diet_tracker.adapters.origin_client import HttpxOriginClient
from diet_tracker.adapters.supabase_cache_storage import SupabaseCacheStorage
from diet_tracker.config import Settings, parse_bypass_patterns
from diet_tracker.domain.http import ProxyRequest, StoredResponse
from diet_tracker.services.cache import CacheStorage, InMemoryCacheStorage
from diet_tracker.services.food_lookup import FoodLookupService
from diet_tracker.services.metering import MeteringService
from diet_tracker.services.registration import WorkerFactory, WorkerRegistration
from diet_tracker.services.router import OriginFetcher, RequestRouter
from diet_tracker.services.vision import MealPhotoService
from diet_tracker.services.worker import CacheWorker, ClientRegistry


class OriginGateway(OriginFetcher, Protocol):
    """Origin fetcher that can also forward requests the worker bypasses."""

    async def forward(
        self, request: ProxyRequest, body: bytes | None = None
    ) -> StoredResponse:
        """Send a request to the origin without consulting the cache."""


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    storage: CacheStorage
    origin: OriginGateway
    registration: WorkerRegistration
    food_lookup_service: FoodLookupService
    photo_service: MealPhotoService
    metering_service: MeteringService
    close_resources: Callable[[], Awaitable[None]]


def build_storage(settings: Settings) -> CacheStorage:
    """Create the cache storage selected by configuration."""
    if settings.cache_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase cache backend needs a URL and service key")
        return SupabaseCacheStorage(
            create_client(settings.supabase_url, settings.supabase_service_key)
        )
    return InMemoryCacheStorage()


def worker_factory(
    settings: Settings, storage: CacheStorage, origin: OriginFetcher
) -> WorkerFactory:
    """Return a factory creating a worker per cache generation."""
    bypass_patterns = parse_bypass_patterns(settings.bypass_patterns)

    def create(generation: str, clients: ClientRegistry) -> CacheWorker:
        router = RequestRouter(
            storage=storage,
            fetcher=origin,
            generation=generation,
            worker_origin=settings.public_origin,
            navigation_fallback_path=settings.navigation_fallback_path,
            bypass_patterns=bypass_patterns,
        )
        return CacheWorker(
            storage=storage,
            router=router,
            clients=clients,
            skip_waiting_on_install=settings.skip_waiting_on_install,
        )

    return create


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    storage = build_storage(resolved_settings)
    origin_client = HttpxOriginClient.create(
        resolved_settings.origin_url, resolved_settings.origin_timeout_seconds
    )
    registration = WorkerRegistration(
        worker_factory=worker_factory(resolved_settings, storage, origin_client)
    )
    products_client = HttpxOpenFoodFactsClient.create(
        resolved_settings.openfoodfacts_base_url
    )
    vision_client = (
        OpenAIVisionClient.create(resolved_settings.openai_api_key)
        if resolved_settings.openai_api_key
        else None
    )
    photo_service = MealPhotoService(
        client=vision_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    metering_client = (
        HttpxMeteringClient.create(
            resolved_settings.metering_base_url, resolved_settings.metering_api_key
        )
        if resolved_settings.metering_base_url
        else None
    )

    async def close_resources() -> None:
        if registration.active is not None:
            await registration.active.router.drain()
        await origin_client.close()
        await products_client.close()
        if vision_client is not None:
            await vision_client.close()
        if metering_client is not None:
            await metering_client.close()

    return AppContainer(
        settings=resolved_settings,
        storage=storage,
        origin=origin_client,
        registration=registration,
        food_lookup_service=FoodLookupService(products_client),
        photo_service=photo_service,
        metering_service=MeteringService(metering_client),
        close_resources=close_resources,
    )
