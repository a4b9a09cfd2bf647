"""Shared test fixtures."""

from dataclasses import dataclass, field

import pytest

from diet_tracker.config import Settings
from diet_tracker.containers import AppContainer, worker_factory
from diet_tracker.domain.http import NetworkError, ProxyRequest, StoredResponse
from diet_tracker.services.cache import InMemoryCacheStorage
from diet_tracker.services.food_lookup import FoodLookupService, ProductClient
from diet_tracker.services.metering import MeteringClient, MeteringService
from diet_tracker.services.registration import WorkerRegistration
from diet_tracker.services.router import OriginFetcher
from diet_tracker.services.vision import MealPhotoService, VisionClient

ORIGIN = "http://testserver"


def page(
    body: bytes, status: int = 200, content_type: str = "text/html"
) -> StoredResponse:
    """Build a response snapshot as the origin would return it."""
    return StoredResponse(
        status=status, headers=(("content-type", content_type),), body=body
    )


@dataclass
class FakeOrigin(OriginFetcher):
    """Origin serving fixed pages; can be taken offline."""

    pages: dict[str, StoredResponse] = field(default_factory=dict)
    online: bool = True
    fetched: list[str] = field(default_factory=list)
    forwarded: list[tuple[str, str, bytes | None]] = field(default_factory=list)

    async def fetch(self, request: ProxyRequest) -> StoredResponse:
        self.fetched.append(request.url)
        if not self.online:
            raise NetworkError(f"offline: {request.url}")
        return self.pages.get(request.url, page(b"missing", status=404))

    async def forward(
        self, request: ProxyRequest, body: bytes | None = None
    ) -> StoredResponse:
        self.forwarded.append((request.method, request.url, body))
        if not self.online:
            raise NetworkError(f"offline: {request.url}")
        return page(b"forwarded", content_type="text/plain")


class FlakyCacheStorage(InMemoryCacheStorage):
    """In-memory storage whose first ``failures`` deletes raise."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def delete(self, name: str) -> bool:
        if self.failures > 0:
            self.failures -= 1
            raise OSError(f"cannot delete {name}")
        return await super().delete(name)


@dataclass
class FakeProductClient(ProductClient):
    """Product client returning a fixed Open Food Facts payload."""

    payload: dict[str, object] = field(
        default_factory=lambda: {
            "status": 1,
            "product": {
                "product_name": "Greek Yogurt",
                "brands": "Acme",
                "serving_size": "150 g",
                "nutriments": {
                    "energy-kcal_serving": 146,
                    "proteins_serving": 15,
                    "carbohydrates_serving": 6,
                    "fat_serving": 7,
                    "energy-kcal_100g": 97,
                },
            },
        }
    )
    calls: list[str] = field(default_factory=list)

    async def get_product(self, barcode: str) -> dict[str, object]:
        self.calls.append(barcode)
        return self.payload


@dataclass
class FakeVisionClient(VisionClient):
    """Fake vision client returning a fixed payload."""

    payload: dict[str, object] = field(
        default_factory=lambda: {
            "name": "Chicken rice bowl",
            "estimated_weight_g": 420,
            "kcal": 610,
            "protein_g": 38,
            "carbs_g": 72,
            "fat_g": 16,
            "food_group": "protein",
        }
    )
    last_call: dict[str, object] | None = None

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        image_data_url: str,
        schema: dict[str, object],
        prompt: str,
    ) -> dict[str, object]:
        self.last_call = {
            "model": model,
            "image_data_url": image_data_url,
            "schema": schema,
            "prompt": prompt,
        }
        return self.payload


@dataclass
class FakeMeteringClient(MeteringClient):
    """Metering client counting down a fixed quota."""

    remaining: int = 3
    reset_date: str = "2026-11-01"

    async def analyze(self, image_base64: str, subscriber_id: str) -> dict[str, object]:
        self.remaining -= 1
        return {
            "result": {"kcal": 500},
            "remaining": self.remaining,
            "resetDate": self.reset_date,
        }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        origin_url="https://origin.test",
        public_origin=ORIGIN,
        admin_token="admin-token",
        cache_generation="diet-tracker-cache-v2",
    )


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


@pytest.fixture
def storage() -> InMemoryCacheStorage:
    return InMemoryCacheStorage()


@pytest.fixture
def container(
    settings: Settings, origin: FakeOrigin, storage: InMemoryCacheStorage
) -> AppContainer:
    registration = WorkerRegistration(
        worker_factory=worker_factory(settings, storage, origin)
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        storage=storage,
        origin=origin,
        registration=registration,
        food_lookup_service=FoodLookupService(FakeProductClient()),
        photo_service=MealPhotoService(
            client=FakeVisionClient(),
            model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,
            store=settings.openai_store,
        ),
        metering_service=MeteringService(FakeMeteringClient()),
        close_resources=close_resources,
    )
