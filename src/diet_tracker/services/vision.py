"""Photo analysis for meals and nutrition labels using LLM vision."""

import base64
import binascii
from dataclasses import dataclass
from typing import Literal, Protocol, get_args

from pydantic import ValidationError

from diet_tracker.domain.foods import FoodGroup, LabelReading, MealEstimate

AnalysisMode = Literal["food", "label"]

_FOOD_GROUPS: list[str] = list(get_args(FoodGroup))

_NUMBER = {"type": "number", "minimum": 0}

MEAL_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "estimated_weight_g": _NUMBER,
        "kcal": _NUMBER,
        "protein_g": _NUMBER,
        "carbs_g": _NUMBER,
        "fat_g": _NUMBER,
        "food_group": {"type": "string", "enum": _FOOD_GROUPS},
    },
    "required": [
        "name",
        "estimated_weight_g",
        "kcal",
        "protein_g",
        "carbs_g",
        "fat_g",
        "food_group",
    ],
    "additionalProperties": False,
}

LABEL_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "serving_size_g": _NUMBER,
        "kcal": _NUMBER,
        "protein_g": _NUMBER,
        "carbs_g": _NUMBER,
        "fat_g": _NUMBER,
    },
    "required": ["name", "serving_size_g", "kcal", "protein_g", "carbs_g", "fat_g"],
    "additionalProperties": False,
}

MEAL_PROMPT = (
    "Identify the meal in the photo and estimate its portion. "
    "Return a short dish name, the total estimated weight in grams, "
    "and total kcal, protein, carbs and fat in grams for that weight. "
    "Macro calories should add up close to the total kcal. "
    "Count visible frying oil or dressing as fat. Prefer conservative estimates."
)

LABEL_PROMPT = (
    "Read the nutrition facts label and the packaging in the photo. "
    "Return the product name from the front of the pack if visible, "
    "the serving size in grams and per-serving kcal, protein, total carbs "
    "and total fat. If the label only lists values per 100 g, "
    "use 100 as the serving size."
)


class VisionClient(Protocol):
    """Interface for LLM vision extraction."""

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
        """Return structured vision extraction data."""


class VisionUnavailableError(RuntimeError):
    """Raised when no vision provider is configured."""


class VisionQuotaExceededError(RuntimeError):
    """Raised when the vision provider rejects the call for quota reasons."""


@dataclass
class MealPhotoService:
    """Prepares prompts for meal and label photos and validates results."""

    client: VisionClient | None
    model: str
    reasoning_effort: str | None
    store: bool

    async def analyze(
        self, image: str, mode: AnalysisMode = "food"
    ) -> MealEstimate | LabelReading:
        """Analyze a base64 image (bare or as a data URL)."""
        if self.client is None:
            raise VisionUnavailableError("No vision API key configured")
        if mode == "label":
            schema, prompt = LABEL_SCHEMA, LABEL_PROMPT
        else:
            schema, prompt = MEAL_SCHEMA, MEAL_PROMPT
        raw = await self.client.extract(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            image_data_url=to_data_url(image),
            schema=schema,
            prompt=prompt,
        )
        result_type = LabelReading if mode == "label" else MealEstimate
        try:
            return result_type.model_validate(raw)
        except ValidationError as exc:
            raise RuntimeError("Vision API returned a malformed result") from exc


def to_data_url(image: str) -> str:
    """Normalize a base64 image into a data URL with a detected MIME type."""
    if image.startswith("data:image/"):
        return image
    try:
        image_bytes = base64.b64decode(image, validate=True)
    except binascii.Error as exc:
        raise ValueError("Image is not valid base64") from exc
    return f"data:{_detect_mime_type(image_bytes)};base64,{image}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
