"""Queue message data transfer objects.

EnvelopeDTO is the JSON payload stored in the queue: headers (which pick and
parameterize the handler), an opaque body, and queue metadata. Message is
what the dispatcher sees after the repository has decoded a delivery.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MetaDTO(BaseModel):
    """Metadata for a queue message."""

    queue_name: str = Field(..., description="Name of the queue")
    correlation_id: str | None = Field(None, description="Correlation identifier")


class EnvelopeDTO(BaseModel):
    """Payload written to the queue by publishers such as the enqueue CLI."""

    headers: dict[str, Any] = Field(default_factory=dict, description="Header key/value pairs")
    body: Any = Field(None, description="Opaque body, never read by the dispatcher")
    meta: MetaDTO = Field(..., description="Message metadata")


class Message(BaseModel):
    """A delivered message.

    headers keeps the order it was received in; delivery_tag is the handle
    passed back to the repository to acknowledge the message.
    """

    model_config = ConfigDict(frozen=True)

    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    delivery_tag: int
    read_count: int = 1
