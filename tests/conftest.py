"""
Pytest configuration and fixtures for karaoke_nowplaying tests.

FakeLoop stands in for the asyncio loop: timers only fire when a test
advances the clock, so every scheduling path is deterministic.
"""

from typing import Any, Callable, List, Optional, Tuple

import pytest

from karaoke_nowplaying.channels import EventChannel
from karaoke_nowplaying.domain import EventType


# =============================================================================
# Fake event loop
# =============================================================================

class FakeHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """call_later/time with a manually advanced clock."""

    def __init__(self):
        self.now = 0.0
        self.handles: List[FakeHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.fired = True
            handle.callback(*handle.args)
        self.now = target


# =============================================================================
# Channels
# =============================================================================

class RecordingChannel(EventChannel):
    """Keeps every emitted (event, payload) pair."""

    def __init__(self):
        self.events: List[Tuple[EventType, Any]] = []
        self.closed = False

    def emit(self, event: EventType, payload: Any) -> None:
        self.events.append((event, payload))

    def close(self) -> None:
        self.closed = True

    def of(self, event: EventType) -> List[Any]:
        return [payload for kind, payload in self.events if kind is event]

    @property
    def kinds(self) -> List[EventType]:
        return [kind for kind, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


# =============================================================================
# HTML builders
# =============================================================================

def player_html(
    title: Optional[str] = "First Song",
    artist: str = "Neuro",
    playing: bool = True,
    duration: Optional[str] = "3:20",
    progress: str = "",
    image: Optional[str] = None,
    document_title: Optional[str] = None,
    extra: str = "",
) -> str:
    """A minimal karaoke player page."""
    label = "Pause" if playing else "Play"
    doc_title = document_title if document_title is not None else f"{title} - Neuro Karaoke"
    parts = [f"<html><head><title>{doc_title}</title></head><body>"]
    parts.append('<div class="music-player">')
    if image:
        parts.append(f'<img src="{image}" alt="cover">')
    if title is not None:
        parts.append(f'<div class="song-title">{title}</div>')
        parts.append(f'<div class="song-artist">{artist}</div>')
    parts.append(f'<button aria-label="{label}"></button>')
    if duration is not None:
        parts.append(f'<span class="duration">{duration}</span>')
    parts.append(f'<div class="progress-bar">{progress}</div>')
    parts.append("</div>")
    parts.append(extra)
    parts.append("</body></html>")
    return "".join(parts)


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def channel():
    return RecordingChannel()
