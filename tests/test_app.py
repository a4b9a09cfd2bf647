"""Tests for the HTTP surface: cached proxy, control channel and boundary API."""

import asyncio
from dataclasses import dataclass

import httpx
from fastapi.testclient import TestClient

from diet_tracker.api.app import create_app
from diet_tracker.containers import AppContainer, worker_factory
from diet_tracker.domain.http import ProxyRequest
from diet_tracker.services.metering import MeteringService, QuotaExceededError
from diet_tracker.services.registration import WorkerRegistration
from tests.conftest import ORIGIN, FakeOrigin, FlakyCacheStorage, page

NAVIGATE = {"sec-fetch-mode": "navigate", "accept": "text/html"}
ADMIN = {"X-Admin-Token": "admin-token"}


def _drain(client: TestClient, container: AppContainer) -> None:
    active = container.registration.active
    assert active is not None
    client.portal.call(active.router.drain)


def _cached(container: AppContainer, path: str) -> bytes | None:
    async def lookup() -> bytes | None:
        cache = await container.storage.open(container.settings.cache_generation)
        hit = await cache.match(ProxyRequest(method="GET", url=f"{ORIGIN}{path}"))
        return hit.body if hit else None

    return asyncio.run(lookup())


def test_health(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.get("/health")

    assert response.json() == {"status": "ok"}


def test_startup_registers_active_worker(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.get("/admin/worker", headers=ADMIN)

    state = response.json()
    assert state["active"] == {"generation": "diet-tracker-cache-v2", "phase": "active"}
    assert state["waiting"] is None


def test_admin_requires_token(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.get("/admin/worker")

    assert response.status_code == 401


def test_navigation_is_cached_and_served_offline(
    container, origin: FakeOrigin
) -> None:
    origin.pages[f"{ORIGIN}/index.html"] = page(b"<html>root</html>")
    origin.pages[f"{ORIGIN}/diary"] = page(b"<html>diary</html>")

    with TestClient(create_app(container)) as client:
        assert client.get("/index.html", headers=NAVIGATE).text == "<html>root</html>"
        assert client.get("/diary", headers=NAVIGATE).text == "<html>diary</html>"
        _drain(client, container)
        origin.online = False

        cached = client.get("/diary", headers=NAVIGATE)
        fallback = client.get("/weekly-report", headers=NAVIGATE)

    assert cached.status_code == 200
    assert cached.text == "<html>diary</html>"
    assert cached.headers["content-type"] == "text/html"
    assert fallback.text == "<html>root</html>"


def test_offline_navigation_without_cache_is_503(
    container, origin: FakeOrigin
) -> None:
    origin.online = False

    with TestClient(create_app(container)) as client:
        response = client.get("/diary", headers=NAVIGATE)

    assert response.status_code == 503


def test_static_asset_is_cache_first(container, origin: FakeOrigin) -> None:
    origin.pages[f"{ORIGIN}/assets/app.js"] = page(
        b"console.log(1)", content_type="text/javascript"
    )

    with TestClient(create_app(container)) as client:
        first = client.get("/assets/app.js")
        _drain(client, container)
        origin.online = False
        second = client.get("/assets/app.js")
        missing = client.get("/assets/other.js")

    assert first.content == second.content == b"console.log(1)"
    assert origin.fetched == [f"{ORIGIN}/assets/app.js", f"{ORIGIN}/assets/other.js"]
    assert missing.status_code == 504


def test_tabular_data_is_never_cached(container, origin: FakeOrigin) -> None:
    origin.pages[f"{ORIGIN}/data/Food_DB.csv"] = page(
        b"name,kcal\n", content_type="text/csv"
    )

    with TestClient(create_app(container)) as client:
        client.get("/data/Food_DB.csv")
        client.get("/data/Food_DB.csv")
        _drain(client, container)

    assert origin.fetched == [f"{ORIGIN}/data/Food_DB.csv"] * 2
    assert _cached(container, "/data/Food_DB.csv") is None


def test_non_get_is_forwarded_untouched(container, origin: FakeOrigin) -> None:
    with TestClient(create_app(container)) as client:
        response = client.post("/sync", content=b'{"meals": []}')

    assert response.text == "forwarded"
    assert origin.forwarded == [("POST", f"{ORIGIN}/sync", b'{"meals": []}')]
    assert origin.fetched == []


def test_skip_waiting_message_rolls_out_waiting_update(container) -> None:
    container.settings.skip_waiting_on_install = False

    with TestClient(create_app(container)) as client:
        client.put("/worker/clients/tab-1")
        registered = client.post(
            "/admin/worker/register", params={"generation": "v3"}, headers=ADMIN
        ).json()
        ignored = [
            client.post("/worker/messages", json={"type": "RELOAD"}),
            client.post("/worker/messages", content=b"not json"),
            client.post("/worker/messages"),
        ]
        still_waiting = client.get("/admin/worker", headers=ADMIN).json()
        accepted = client.post("/worker/messages", json={"type": "SKIP_WAITING"})
        final = client.get("/admin/worker", headers=ADMIN).json()

    assert registered["waiting"] == {"generation": "v3", "phase": "waiting"}
    assert registered["update_available"] is True
    assert [response.status_code for response in ignored] == [202, 202, 202]
    assert still_waiting["waiting"] == {"generation": "v3", "phase": "waiting"}
    assert accepted.status_code == 202
    assert final["active"] == {"generation": "v3", "phase": "active"}
    assert final["waiting"] is None
    assert final["stored_generations"] in ([], ["v3"])


def test_closing_last_client_activates_waiting_update(container) -> None:
    container.settings.skip_waiting_on_install = False

    with TestClient(create_app(container)) as client:
        client.put("/worker/clients/tab-1")
        client.post(
            "/admin/worker/register", params={"generation": "v3"}, headers=ADMIN
        )
        client.delete("/worker/clients/tab-1")
        state = client.get("/admin/worker", headers=ADMIN).json()

    assert state["active"]["generation"] == "v3"
    assert state["open_clients"] == 0


def test_barcode_lookup(container) -> None:
    with TestClient(create_app(container)) as client:
        found = client.get("/api/foods/barcode/4710088410012")
        invalid = client.get("/api/foods/barcode/abc")

    assert found.status_code == 200
    assert found.json()["basis"] == "serving"
    assert found.json()["kcal"] == 146
    assert invalid.status_code == 400


def test_barcode_not_found(container) -> None:
    container.food_lookup_service.client.payload = {"status": 0}

    with TestClient(create_app(container)) as client:
        response = client.get("/api/foods/barcode/4710088410012")

    assert response.status_code == 404


def test_photo_analysis(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.post(
            "/api/vision/analyze",
            json={"image": "data:image/jpeg;base64,ZmFrZQ==", "mode": "food"},
        )

    assert response.status_code == 200
    assert response.json()["name"] == "Chicken rice bowl"


def test_photo_analysis_errors(container) -> None:
    with TestClient(create_app(container)) as client:
        invalid = client.post("/api/vision/analyze", json={"image": "not base64!"})
        container.photo_service.client = None
        unavailable = client.post(
            "/api/vision/analyze", json={"image": "data:image/jpeg;base64,ZmFrZQ=="}
        )

    assert invalid.status_code == 400
    assert unavailable.status_code == 503


def test_metered_analysis(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.post(
            "/api/metering/analyze", json={"image": "aW1n", "subscriber_id": "sub-1"}
        )

    assert response.status_code == 200
    assert response.json()["remaining"] == 2
    assert response.json()["reset_date"] == "2026-11-01"


def test_metered_analysis_quota_exhausted(container) -> None:
    @dataclass
    class _ExhaustedClient:
        async def analyze(
            self, image_base64: str, subscriber_id: str
        ) -> dict[str, object]:
            raise QuotaExceededError(None)

    container.metering_service = MeteringService(_ExhaustedClient())

    with TestClient(create_app(container)) as client:
        response = client.post(
            "/api/metering/analyze", json={"image": "aW1n", "subscriber_id": "sub-1"}
        )

    assert response.status_code == 429
    assert response.json()["detail"]["reset_date"] is None


def test_failed_activation_still_accepts_message(
    container, origin: FakeOrigin
) -> None:
    container.settings.skip_waiting_on_install = False
    storage = FlakyCacheStorage(failures=1)
    asyncio.run(storage.open("diet-tracker-cache-v2"))
    container.storage = storage
    container.registration = WorkerRegistration(
        worker_factory=worker_factory(container.settings, storage, origin)
    )

    with TestClient(create_app(container)) as client:
        client.put("/worker/clients/tab-1")
        client.post(
            "/admin/worker/register", params={"generation": "v3"}, headers=ADMIN
        )
        failed = client.post("/worker/messages", json={"type": "SKIP_WAITING"})
        after_failure = client.get("/admin/worker", headers=ADMIN).json()
        unchanged = client.get("/worker/clients/tab-1").json()
        retried = client.post("/worker/messages", json={"type": "SKIP_WAITING"})
        final = client.get("/admin/worker", headers=ADMIN).json()

    assert failed.status_code == 202
    assert after_failure["waiting"] == {"generation": "v3", "phase": "waiting"}
    assert "diet-tracker-cache-v2" in after_failure["stored_generations"]
    assert unchanged["controller"] == "diet-tracker-cache-v2"
    assert unchanged["reload"] is False
    assert retried.status_code == 202
    assert final["active"] == {"generation": "v3", "phase": "active"}
    assert "diet-tracker-cache-v2" not in final["stored_generations"]


def test_client_status_flags_reload_after_claim(container) -> None:
    container.settings.skip_waiting_on_install = False

    with TestClient(create_app(container)) as client:
        client.put("/worker/clients/tab-1")
        before = client.get("/worker/clients/tab-1").json()
        client.post(
            "/admin/worker/register", params={"generation": "v3"}, headers=ADMIN
        )
        client.post("/worker/messages", json={"type": "SKIP_WAITING"})
        claimed = client.get("/worker/clients/tab-1").json()
        read_again = client.get("/worker/clients/tab-1").json()
        unknown = client.get("/worker/clients/tab-9")

    assert before == {
        "client_id": "tab-1",
        "controller": "diet-tracker-cache-v2",
        "reload": False,
    }
    assert claimed["controller"] == "v3"
    assert claimed["reload"] is True
    assert read_again["reload"] is False
    assert unknown.status_code == 404


def test_metered_analysis_rejects_blank_subscriber(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.post(
            "/api/metering/analyze", json={"image": "aW1n", "subscriber_id": "   "}
        )

    assert response.status_code == 400


def test_metered_analysis_upstream_failure_is_502(container) -> None:
    @dataclass
    class _UnreachableClient:
        async def analyze(
            self, image_base64: str, subscriber_id: str
        ) -> dict[str, object]:
            request = httpx.Request("POST", "https://meter.test/analyze")
            raise httpx.ConnectError("connection refused", request=request)

    container.metering_service = MeteringService(_UnreachableClient())

    with TestClient(create_app(container)) as client:
        response = client.post(
            "/api/metering/analyze", json={"image": "aW1n", "subscriber_id": "sub-1"}
        )

    assert response.status_code == 502
