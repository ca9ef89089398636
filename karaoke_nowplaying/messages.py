"""
Message schema for events written to a host process.

Uses Pydantic for validation and serialization.
One JSON object per line.
"""

import time
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from .domain import EventType


class SongPayload(BaseModel):
    """Payload of update-song."""
    title: str = Field(..., min_length=1)
    artist: str = ""


class EventMessage(BaseModel):
    """A published change, as seen by the host."""
    event: EventType
    payload: Union[SongPayload, bool, int, str]
    timestamp: float = Field(default_factory=time.time)
    source: Optional[str] = "karaoke_nowplaying"

    @classmethod
    def build(cls, event: EventType, payload: Any) -> "EventMessage":
        if event is EventType.UPDATE_SONG:
            payload = SongPayload(**payload)
        elif event is EventType.PLAYBACK_STATE:
            payload = bool(payload)
        elif event in (EventType.SONG_DURATION, EventType.SONG_ELAPSED):
            payload = int(payload)
        else:
            payload = str(payload)
        return cls(event=event, payload=payload)
