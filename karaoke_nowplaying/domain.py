"""
Domain Models

Plain data structures shared by the extractors, the detector and the
outbound channels. No I/O here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# ENUMS
# =============================================================================

class PlaybackState(str, Enum):
    """Tri-state playback flag. UNKNOWN is never published."""
    UNKNOWN = "unknown"
    PLAYING = "playing"
    PAUSED = "paused"

    @classmethod
    def from_bool(cls, playing: bool) -> "PlaybackState":
        return cls.PLAYING if playing else cls.PAUSED

    def as_bool(self) -> Optional[bool]:
        if self is PlaybackState.UNKNOWN:
            return None
        return self is PlaybackState.PLAYING


class ProgressMode(str, Enum):
    """How the progress control displays position. Sticky per song."""
    UNSET = "unset"
    ELAPSED = "elapsed"
    REMAINING = "remaining"


class EventType(str, Enum):
    """Outbound events, named as they appear on the wire."""
    UPDATE_SONG = "update-song"
    PLAYBACK_STATE = "playback-state"
    SONG_DURATION = "song-duration"
    SONG_ELAPSED = "song-elapsed"
    ALBUM_ART = "album-art"
    PLAYLIST_ID = "playlist-id"
    SONG_URL = "song-url"


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class SongInfo:
    """Title and artist of the current song. Identity is the title alone."""
    title: str
    artist: str = ""

    def __str__(self) -> str:
        if self.artist:
            return f"{self.artist} - {self.title}"
        return self.title


@dataclass(frozen=True)
class TimeValue:
    """
    One time token read from the page.

    negative marks a countdown display ("-2:30"); seconds is always >= 0.
    """
    seconds: int
    negative: bool = False


# =============================================================================
# DETECTION SNAPSHOT
# =============================================================================

@dataclass
class DetectionSnapshot:
    """
    Last published values, owned and mutated only by the detector.

    The timing fields are cleared whenever the title changes.
    """
    title: Optional[str] = None
    artist: Optional[str] = None
    playlist_id: Optional[str] = None
    song_url: Optional[str] = None
    image_url: Optional[str] = None
    playback_state: PlaybackState = PlaybackState.UNKNOWN
    duration: Optional[int] = None
    elapsed: Optional[int] = None
    progress_value: Optional[int] = None
    progress_mode: ProgressMode = ProgressMode.UNSET

    def reset_timing(self) -> None:
        self.duration = None
        self.elapsed = None
        self.progress_value = None
        self.progress_mode = ProgressMode.UNSET

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artist": self.artist,
            "playlist_id": self.playlist_id,
            "song_url": self.song_url,
            "image_url": self.image_url,
            "playback_state": self.playback_state.value,
            "duration": self.duration,
            "elapsed": self.elapsed,
            "progress_value": self.progress_value,
            "progress_mode": self.progress_mode.value,
        }
