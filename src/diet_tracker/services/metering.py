"""Quota-metered photo analysis."""

from dataclasses import dataclass
from datetime import date
from typing import Protocol

from pydantic import ValidationError

from diet_tracker.domain.foods import MeteredAnalysis


class MeteringClient(Protocol):
    """Interface for the usage-metering API."""

    async def analyze(self, image_base64: str, subscriber_id: str) -> dict[str, object]:
        """Submit an image for a subscriber and return the raw result."""


class MeteringUnavailableError(RuntimeError):
    """Raised when no metering API is configured."""


class QuotaExceededError(RuntimeError):
    """Raised when the subscriber has no analyses left until ``reset_date``."""

    def __init__(self, reset_date: date | None) -> None:
        super().__init__(f"Analysis quota exhausted until {reset_date or 'unknown'}")
        self.reset_date = reset_date


@dataclass
class MeteringService:
    """Runs metered analyses and reports the remaining quota."""

    client: MeteringClient | None

    async def analyze(self, image_base64: str, subscriber_id: str) -> MeteredAnalysis:
        """Analyze an image against the subscriber's quota."""
        if self.client is None:
            raise MeteringUnavailableError("No metering API configured")
        if not subscriber_id.strip():
            raise ValueError("subscriber_id is required")
        raw = await self.client.analyze(image_base64, subscriber_id)
        try:
            return MeteredAnalysis.model_validate(
                {
                    "result": raw.get("result") or {},
                    "remaining": raw.get("remaining", 0),
                    "reset_date": raw.get("reset_date") or raw.get("resetDate"),
                }
            )
        except ValidationError as exc:
            raise RuntimeError("Metering API returned a malformed payload") from exc
