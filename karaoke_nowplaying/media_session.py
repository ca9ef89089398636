"""
OS Media Integration

Mirrors the published event stream into the operating system's media
session (lock screen, media keys, now-playing widgets) and maps the OS
transport commands back onto the player UI.

The adapter is an EventChannel: it sees exactly the de-duplicated events
the detector publishes, nothing else.

Transport actions:
    play / pause       click the play control (skipped if already in that state)
    nexttrack          click the next control
    previoustrack      click the previous control, else seek the media to 0
    seekbackward       media position -= seekOffset (default 10s)
    seekforward        media position += seekOffset (default 10s)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import markup
from .channels import EventChannel
from .domain import EventType, PlaybackState
from .page import PageSource

logger = logging.getLogger(__name__)

ARTWORK_SIZES = ("96x96", "256x256", "512x512")
DEFAULT_SEEK_OFFSET = 10.0

ActionHandler = Callable[[Dict[str, Any]], None]


class TransportAction(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    PREVIOUS_TRACK = "previoustrack"
    NEXT_TRACK = "nexttrack"
    SEEK_BACKWARD = "seekbackward"
    SEEK_FORWARD = "seekforward"


@dataclass(frozen=True)
class Artwork:
    src: str
    sizes: str
    type: str = ""


@dataclass(frozen=True)
class MediaMetadata:
    title: str
    artist: str = ""
    artwork: Tuple[Artwork, ...] = ()

    @classmethod
    def build(cls, title: str, artist: str = "", image_url: Optional[str] = None) -> "MediaMetadata":
        artwork = tuple(Artwork(src=image_url, sizes=size) for size in ARTWORK_SIZES) if image_url else ()
        return cls(title=title, artist=artist, artwork=artwork)


class MediaSession(ABC):
    """
    The OS media-session service.

    Implementations may raise from any method when the platform does not
    support a feature; the adapter handles that.
    """

    @abstractmethod
    def set_action_handler(self, action: TransportAction, handler: ActionHandler) -> None:
        pass

    @abstractmethod
    def set_metadata(self, metadata: MediaMetadata) -> None:
        pass

    @abstractmethod
    def set_playback_state(self, playing: bool) -> None:
        pass

    @abstractmethod
    def set_position_state(self, duration: float, position: float) -> None:
        pass


class MediaSessionAdapter(EventChannel):
    """Two-way bridge between the published events and a MediaSession."""

    def __init__(self, session: MediaSession, page: PageSource, seek_offset: float = DEFAULT_SEEK_OFFSET):
        self._session = session
        self._page = page
        self._seek_offset = seek_offset

        self._title: Optional[str] = None
        self._artist = ""
        self._image_url: Optional[str] = None
        self._metadata_key: Optional[Tuple[str, str, Optional[str]]] = None

        self.playback_state = PlaybackState.UNKNOWN
        self.duration: Optional[int] = None
        self.position: Optional[int] = None

        self._handlers: Dict[TransportAction, ActionHandler] = {
            TransportAction.PLAY: self.on_play,
            TransportAction.PAUSE: self.on_pause,
            TransportAction.PREVIOUS_TRACK: self.on_previous_track,
            TransportAction.NEXT_TRACK: self.on_next_track,
            TransportAction.SEEK_BACKWARD: self.on_seek_backward,
            TransportAction.SEEK_FORWARD: self.on_seek_forward,
        }

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register_handlers(self) -> List[TransportAction]:
        """Register every transport action; returns those that succeeded."""
        registered = []
        for action, handler in self._handlers.items():
            try:
                self._session.set_action_handler(action, handler)
                registered.append(action)
            except Exception as e:
                logger.warning(f"Media action '{action.value}' not supported: {e}")
        logger.info(f"Media session actions: {', '.join(a.value for a in registered) or 'none'}")
        return registered

    def handle(self, action: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Dispatch an action by its wire name."""
        try:
            transport = TransportAction(action)
        except ValueError:
            logger.warning(f"Unknown media action '{action}'")
            return
        self._handlers[transport](details or {})

    # =========================================================================
    # INBOUND: OS -> PAGE
    # =========================================================================

    def on_play(self, details: Optional[Dict[str, Any]] = None) -> None:
        self._toggle_to(PlaybackState.PLAYING, "play")

    def on_pause(self, details: Optional[Dict[str, Any]] = None) -> None:
        self._toggle_to(PlaybackState.PAUSED, "pause")

    def _toggle_to(self, target: PlaybackState, command: str) -> None:
        if self.playback_state is target:
            logger.debug(f"Ignoring '{command}', already {target.value}")
            return
        if self._page.click_first(markup.PLAY_CONTROL):
            logger.debug(f"'{command}' -> play control")
            return
        if not self._page.media_control(command):
            logger.warning(f"No play control or media element for '{command}'")

    def on_next_track(self, details: Optional[Dict[str, Any]] = None) -> None:
        if not self._page.click_first(markup.NEXT_CONTROL):
            logger.warning("No next control found")

    def on_previous_track(self, details: Optional[Dict[str, Any]] = None) -> None:
        if self._page.click_first(markup.PREVIOUS_CONTROL):
            return
        if not self._page.media_control("seek_to", 0.0):
            logger.warning("No previous control or media element found")

    def on_seek_backward(self, details: Optional[Dict[str, Any]] = None) -> None:
        self._seek(-self._offset(details))

    def on_seek_forward(self, details: Optional[Dict[str, Any]] = None) -> None:
        self._seek(self._offset(details))

    def _offset(self, details: Optional[Dict[str, Any]]) -> float:
        offset = (details or {}).get("seekOffset")
        try:
            return abs(float(offset)) if offset else self._seek_offset
        except (TypeError, ValueError):
            return self._seek_offset

    def _seek(self, delta: float) -> None:
        if not self._page.media_control("seek_by", delta):
            logger.info(f"Seek {delta:+.0f}s skipped, no media element")

    # =========================================================================
    # OUTBOUND: EVENTS -> OS
    # =========================================================================

    def emit(self, event: EventType, payload: Any) -> None:
        if event is EventType.UPDATE_SONG:
            self.duration = None
            self.position = None
            self.update_metadata(payload.get("title", ""), payload.get("artist", ""), self._image_url)
        elif event is EventType.ALBUM_ART:
            if self._title:
                self.update_metadata(self._title, self._artist, payload)
            else:
                self._image_url = payload
        elif event is EventType.PLAYBACK_STATE:
            self.update_playback_state(bool(payload))
        elif event is EventType.SONG_DURATION:
            self.duration = int(payload)
            if self.position is not None:
                self.update_position_state(self.duration, self.position)
        elif event is EventType.SONG_ELAPSED:
            self.position = int(payload)
            if self.duration is not None:
                self.update_position_state(self.duration, self.position)

    def update_metadata(self, title: str, artist: str = "", image_url: Optional[str] = None) -> bool:
        """Push metadata; a no-op unless title, artist or artwork changed."""
        key = (title, artist, image_url)
        if key == self._metadata_key:
            return False
        self._title, self._artist, self._image_url = title, artist, image_url
        try:
            self._session.set_metadata(MediaMetadata.build(title, artist, image_url))
        except Exception as e:
            logger.warning(f"Failed to set media metadata: {e}")
            return False
        self._metadata_key = key
        return True

    def update_playback_state(self, playing: bool) -> None:
        self.playback_state = PlaybackState.from_bool(playing)
        try:
            self._session.set_playback_state(playing)
        except Exception as e:
            logger.warning(f"Failed to set media playback state: {e}")

    def update_position_state(self, duration: Optional[float], position: float) -> bool:
        if not duration or duration <= 0:
            return False
        position = max(0.0, min(float(position), float(duration)))
        try:
            self._session.set_position_state(float(duration), position)
        except Exception as e:
            logger.debug(f"Position state unsupported: {e}")
            return False
        return True
