"""Usage-metering API client."""

from dataclasses import dataclass
from datetime import date

import httpx

from diet_tracker.services.metering import MeteringClient, QuotaExceededError

_TOO_MANY_REQUESTS = 429


@dataclass
class HttpxMeteringClient(MeteringClient):
    """HTTPX-backed metering client."""

    base_url: str
    api_key: str | None
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str, api_key: str | None) -> "HttpxMeteringClient":
        """Create a metering client with a managed httpx session."""
        return cls(base_url=base_url, api_key=api_key, http_client=httpx.AsyncClient())

    async def analyze(self, image_base64: str, subscriber_id: str) -> dict[str, object]:
        """Submit an image for a subscriber."""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        response = await self.http_client.post(
            f"{self.base_url.rstrip('/')}/analyze",
            json={"image": image_base64, "user_id": subscriber_id},
            headers=headers,
            timeout=30,
        )
        if response.status_code == _TOO_MANY_REQUESTS:
            raise QuotaExceededError(_reset_date(response))
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _reset_date(response: httpx.Response) -> date | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    raw = payload.get("reset_date") or payload.get("resetDate")
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        return None
