from typing import Any

from pydantic import BaseModel


class RealtimeEvent(BaseModel):
    """Envelope for every frame exchanged over the realtime socket."""

    event: str
    data: Any = None


class InboundFrame(BaseModel):
    event: str | None = None
