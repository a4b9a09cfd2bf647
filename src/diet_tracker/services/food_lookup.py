"""Barcode lookup against a public food database."""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from diet_tracker.domain.foods import ScannedFood

_logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_NAME_FIELDS = ("product_name_zh", "product_name_tw", "product_name")
_MACRO_FIELDS = {
    "kcal": "energy-kcal",
    "protein_g": "proteins",
    "carbs_g": "carbohydrates",
    "fat_g": "fat",
}


class ProductClient(Protocol):
    """Interface for barcode product lookups."""

    async def get_product(self, barcode: str) -> dict[str, object]:
        """Return the raw product payload for a barcode."""


@dataclass
class FoodLookupService:
    """Turns raw product payloads into per-serving or per-100 g foods."""

    client: ProductClient

    async def lookup(self, barcode: str) -> ScannedFood | None:
        """Return the food for a barcode, or None when unknown or unreachable."""
        try:
            payload = await self.client.get_product(barcode)
        except Exception:
            _logger.exception("Barcode lookup failed for %s", barcode)
            return None
        return parse_product(barcode, payload)


def parse_product(barcode: str, payload: dict[str, object]) -> ScannedFood | None:
    """Parse a product payload, preferring per-serving values when present."""
    product = payload.get("product")
    if payload.get("status") != 1 or not isinstance(product, dict):
        return None
    nutriments = product.get("nutriments") or {}
    name = next(
        (str(product[key]) for key in _NAME_FIELDS if product.get(key)),
        "Unknown product",
    )
    serving_size = _leading_number(product.get("serving_size"))
    has_serving = serving_size is not None and any(
        nutriments.get(f"{field}_serving") for field in _MACRO_FIELDS.values()
    )
    suffix = "_serving" if has_serving else "_100g"
    macros = {
        attr: _number(nutriments.get(f"{field}{suffix}"))
        for attr, field in _MACRO_FIELDS.items()
    }
    return ScannedFood(
        barcode=barcode,
        name=name,
        brand=product.get("brands") or None,
        serving_size_g=serving_size if has_serving else 100.0,
        basis="serving" if has_serving else "per100g",
        **macros,
    )


def _number(value: object) -> float:
    try:
        return max(float(value), 0.0)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def _leading_number(value: object) -> float | None:
    """Read the number at the start of strings like '30 g' or '2.5oz'."""
    if value is None:
        return None
    match = _LEADING_NUMBER.match(str(value).strip())
    if match is None:
        return None
    number = float(match.group())
    return number if number > 0 else None
