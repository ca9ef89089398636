"""
Karaoke Now-Playing

Watches a karaoke web player's page and publishes what is playing:
song, playback state, duration, elapsed time, artwork, playlist and song
link. Only real changes go out, over OSC, JSON lines or the OS media
session.

Usage:
    from karaoke_nowplaying import NowPlayingDetector, StaticPage, CallbackChannel

    page = StaticPage(html, url="https://karaoke.example/songs/42")
    detector = NowPlayingDetector(page, [CallbackChannel(print)], loop=asyncio.get_running_loop())
    detector.start()
"""

from .channels import CallbackChannel, EventChannel, JsonLinesChannel, OscEventChannel
from .config import AppConfig, DetectorConfig, load_config
from .detector import DetectorState, NowPlayingDetector
from .domain import DetectionSnapshot, EventType, PlaybackState, ProgressMode, SongInfo, TimeValue
from .media_session import MediaSession, MediaSessionAdapter, TransportAction
from .page import MediaState, MutationKind, PageSnapshot, PageSource, PageUnavailableError, StaticPage
from .timetext import parse_time, parse_times

__version__ = "1.0.0"

__all__ = [
    "CallbackChannel",
    "EventChannel",
    "JsonLinesChannel",
    "OscEventChannel",
    "AppConfig",
    "DetectorConfig",
    "load_config",
    "DetectorState",
    "NowPlayingDetector",
    "DetectionSnapshot",
    "EventType",
    "PlaybackState",
    "ProgressMode",
    "SongInfo",
    "TimeValue",
    "MediaSession",
    "MediaSessionAdapter",
    "TransportAction",
    "MediaState",
    "MutationKind",
    "PageSnapshot",
    "PageSource",
    "PageUnavailableError",
    "StaticPage",
    "parse_time",
    "parse_times",
]
