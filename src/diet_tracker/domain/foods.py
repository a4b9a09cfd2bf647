"""Models returned by the food lookup, photo analysis and metering APIs."""

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field

FoodGroup = Literal[
    "whole_grains",
    "protein",
    "dairy",
    "vegetables",
    "fruits",
    "fats_nuts_seeds",
    "other",
]


class ScannedFood(BaseModel):
    """Packaged food found by barcode, per serving or per 100 g."""

    barcode: str
    name: str
    brand: str | None = None
    serving_size_g: float = Field(gt=0)
    kcal: float = Field(default=0.0, ge=0)
    protein_g: float = Field(default=0.0, ge=0)
    carbs_g: float = Field(default=0.0, ge=0)
    fat_g: float = Field(default=0.0, ge=0)
    basis: Literal["serving", "per100g"]


class MealEstimate(BaseModel):
    """Macro estimate for a photographed meal."""

    name: str
    estimated_weight_g: float = Field(default=0.0, ge=0)
    kcal: float = Field(default=0.0, ge=0)
    protein_g: float = Field(default=0.0, ge=0)
    carbs_g: float = Field(default=0.0, ge=0)
    fat_g: float = Field(default=0.0, ge=0)
    food_group: FoodGroup = "other"


class LabelReading(BaseModel):
    """Per-serving values read from a nutrition facts label."""

    name: str
    serving_size_g: float = Field(default=100.0, gt=0)
    kcal: float = Field(default=0.0, ge=0)
    protein_g: float = Field(default=0.0, ge=0)
    carbs_g: float = Field(default=0.0, ge=0)
    fat_g: float = Field(default=0.0, ge=0)


class MeteredAnalysis(BaseModel):
    """Result of a quota-metered analysis call."""

    result: dict[str, Any]
    remaining: int = Field(ge=0)
    reset_date: date | None = None
