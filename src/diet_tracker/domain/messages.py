"""Control messages sent from the page to the cache worker."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError

SKIP_WAITING = "SKIP_WAITING"


class SkipWaitingMessage(BaseModel):
    """Directive asking a waiting worker to activate immediately."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["SKIP_WAITING"]


def parse_control_message(payload: object) -> SkipWaitingMessage | None:
    """Return the recognized directive, or None for anything else."""
    if not isinstance(payload, dict):
        return None
    try:
        return SkipWaitingMessage.model_validate(payload)
    except ValidationError:
        return None
