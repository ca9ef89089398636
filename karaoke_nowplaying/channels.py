"""
Outbound Channels

Where published changes go. The detector calls emit() once per change;
a channel never raises back into the detector.

    OscEventChannel   - OSC over UDP (python-osc)
    JsonLinesChannel  - one JSON object per line on a text stream
    CallbackChannel   - in-process callable
"""

import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, TextIO

from pythonosc import udp_client

from .config import OscSettings
from .domain import EventType
from .messages import EventMessage

logger = logging.getLogger(__name__)


class EventChannel(ABC):
    """Receives normalized change events."""

    @abstractmethod
    def emit(self, event: EventType, payload: Any) -> None:
        pass

    def close(self) -> None:
        pass


def osc_arguments(event: EventType, payload: Any) -> List[Any]:
    """Flatten a payload into OSC arguments."""
    if event is EventType.UPDATE_SONG:
        return [payload.get("title", ""), payload.get("artist", "")]
    if isinstance(payload, bool):
        return [payload]
    if isinstance(payload, (int, float, str)):
        return [payload]
    return [str(payload)]


class OscEventChannel(EventChannel):
    """
    Sends each event to <prefix>/<event>.

    Examples:
        /karaoke/update-song "Title" "Artist"
        /karaoke/song-elapsed 42
    """

    def __init__(self, settings: Optional[OscSettings] = None):
        self.settings = settings or OscSettings()
        self._client: Optional[udp_client.SimpleUDPClient] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def start(self) -> bool:
        try:
            self._client = udp_client.SimpleUDPClient(self.settings.host, self.settings.port)
            logger.info(f"OSC events → {self.settings.host}:{self.settings.port}{self.settings.prefix}")
            return True
        except OSError as e:
            logger.error(f"Failed to open OSC client: {e}")
            self._client = None
            return False

    def address_for(self, event: EventType) -> str:
        return f"{self.settings.prefix.rstrip('/')}/{event.value}"

    def emit(self, event: EventType, payload: Any) -> None:
        if self._client is None:
            logger.debug(f"OSC not connected, dropping {event.value}")
            return
        address = self.address_for(event)
        try:
            self._client.send_message(address, osc_arguments(event, payload))
            logger.debug(f"OSC sent: {address} {payload}")
        except OSError as e:
            logger.warning(f"Failed to send OSC {address}: {e}")

    def close(self) -> None:
        self._client = None


class JsonLinesChannel(EventChannel):
    """Writes EventMessage JSON lines, for a host reading our stdout."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stdout

    def emit(self, event: EventType, payload: Any) -> None:
        message = EventMessage.build(event, payload)
        try:
            self._stream.write(message.model_dump_json() + "\n")
            self._stream.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to write event {event.value}: {e}")


class CallbackChannel(EventChannel):
    """Forwards events to a callable."""

    def __init__(self, callback: Callable[[EventType, Any], None]):
        self._callback = callback

    def emit(self, event: EventType, payload: Any) -> None:
        self._callback(event, payload)
