"""Request/response models at the ModelGateway boundary."""

from typing import Any, Literal

from pydantic import BaseModel


class ChatMessage(BaseModel):
    """One message of the history replayed into a model call."""

    role: Literal["system", "user", "assistant"]
    content: str


class GenerationResult(BaseModel):
    """Complete (non-streamed) model output.

    ``data`` is the parsed object when the call asked for a JSON schema.
    """

    text: str
    data: dict[str, Any] | None = None
