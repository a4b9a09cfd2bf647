"""OpenAI Responses API client for meal and label photos."""

import json
from dataclasses import dataclass

from openai import AsyncOpenAI, RateLimitError

from diet_tracker.services.vision import VisionClient, VisionQuotaExceededError

_FORMAT_NAME = "photo_macros"


@dataclass
class OpenAIVisionClient(VisionClient):
    """Reads macros off a meal photo or a nutrition label with one model call.

    The caller picks the prompt and JSON schema for the photo kind; this
    client only sends the image and decodes the structured reply.
    """

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIVisionClient":
        return cls(client=AsyncOpenAI(api_key=api_key))

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
        """Return the meal or label fields the model filled in for ``schema``.

        Raises VisionQuotaExceededError when the account is rate limited and
        RuntimeError when the reply is empty or not JSON.
        """
        payload = _photo_request(model, prompt, image_data_url, schema, store)
        if reasoning_effort:
            payload["reasoning"] = {"effort": reasoning_effort}
        try:
            response = await self.client.responses.create(**payload)
        except RateLimitError as exc:
            raise VisionQuotaExceededError("Vision API quota exhausted") from exc
        if not response.output_text:
            raise RuntimeError("Photo analysis returned no output")
        try:
            return json.loads(response.output_text)
        except json.JSONDecodeError as exc:
            raise RuntimeError("Photo analysis output is not JSON") from exc

    async def close(self) -> None:
        await self.client.close()


def _photo_request(
    model: str,
    prompt: str,
    image_data_url: str,
    schema: dict[str, object],
    store: bool,
) -> dict[str, object]:
    message = {
        "role": "user",
        "content": [
            {"type": "input_text", "text": prompt},
            {"type": "input_image", "image_url": image_data_url},
        ],
    }
    output_format = {
        "type": "json_schema",
        "name": _FORMAT_NAME,
        "strict": True,
        "schema": schema,
    }
    return {
        "model": model,
        "input": [message],
        "text": {"format": output_format},
        "store": store,
    }
