"""
Now-Playing Detector - Change-reconciliation loop

Owns every extractor, runs them over a fresh page capture, diffs the
results against the last published values and emits only real changes.

Lifecycle:
    idle --(settle delay)--> observing --stop()--> stopped

While observing, three producers feed one consumer on a single thread:
    - mutation notifications (debounced, single pending timer)
    - document-title mutations (narrow, immediate title-only path)
    - a fixed-interval fallback timer (full pass, unconditional)

Usage:
    detector = NowPlayingDetector(page, [OscEventChannel()], loop=asyncio.get_running_loop())
    detector.start()
    ...
    detector.stop()
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from .channels import EventChannel
from .config import DetectorConfig
from .domain import DetectionSnapshot, EventType, PlaybackState, SongInfo
from .extractors import (
    ArtworkExtractor,
    PlaybackExtractor,
    PlaylistExtractor,
    TimingExtractor,
    TitleExtractor,
)
from .page import MutationKind, PageSnapshot, PageSource, PageUnavailableError, Subscription

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The part of an asyncio event loop the detector uses."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def time(self) -> float: ...


class DetectorState(str, Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    STOPPED = "stopped"


class NowPlayingDetector:
    """
    Change-reconciliation loop.

    The snapshot is touched only here. A title change clears the timing
    fields, resets the timing extractor and re-reads playback and duration
    within the same pass, before any elapsed value can go out.
    """

    def __init__(
        self,
        page: PageSource,
        channels: Sequence[EventChannel],
        loop: Scheduler,
        config: Optional[DetectorConfig] = None,
    ):
        self._page = page
        self._channels = list(channels)
        self._loop = loop
        self._config = config or DetectorConfig()

        self.snapshot = DetectionSnapshot()
        self.title = TitleExtractor()
        self.playlist = PlaylistExtractor()
        self.artwork = ArtworkExtractor()
        self.playback = PlaybackExtractor()
        self.timing = TimingExtractor(
            min_text_duration=self._config.min_text_duration,
            diagnostic_interval=self._config.diagnostic_interval,
            clock=loop.time,
        )

        self._state = DetectorState.IDLE
        self._started = False
        self._subscription: Optional[Subscription] = None
        self._settle_timer: Optional[TimerHandle] = None
        self._debounce_timer: Optional[TimerHandle] = None
        self._fallback_timer: Optional[TimerHandle] = None

        self._passes = 0
        self._events = 0
        self._skipped_captures = 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_observing(self) -> bool:
        return self._state is DetectorState.OBSERVING

    def add_channel(self, channel: EventChannel) -> None:
        self._channels.append(channel)

    def start(self) -> bool:
        if self._state is DetectorState.STOPPED:
            logger.warning("Detector was torn down; create a new one")
            return False
        if self._started:
            return True
        self._subscription = self._page.observe(self.on_mutation)
        self._settle_timer = self._loop.call_later(self._config.settle_delay, self._begin_observing)
        self._started = True
        logger.info(f"Detector waiting {self._config.settle_delay:.1f}s for the page to settle")
        return True

    def stop(self) -> None:
        """Tear down: no detection work happens after this returns."""
        if self._state is DetectorState.STOPPED:
            return
        self._state = DetectorState.STOPPED
        if self._subscription is not None:
            self._subscription.disconnect()
            self._subscription = None
        for timer in (self._settle_timer, self._debounce_timer, self._fallback_timer):
            if timer is not None:
                timer.cancel()
        self._settle_timer = None
        self._debounce_timer = None
        self._fallback_timer = None
        self._started = False
        logger.info("Detector stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "state": self._state.value,
            "passes": self._passes,
            "events": self._events,
            "skipped_captures": self._skipped_captures,
            "debounce_pending": self._debounce_timer is not None,
            "snapshot": self.snapshot.to_dict(),
        }

    def _begin_observing(self) -> None:
        self._settle_timer = None
        if self._state is not DetectorState.IDLE:
            return
        self._state = DetectorState.OBSERVING
        logger.info("Detector observing")
        self.run_pass()
        self._schedule_fallback()

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    def on_mutation(self, kind: MutationKind = MutationKind.TREE) -> None:
        """Mutation notification from the page."""
        if self._state is not DetectorState.OBSERVING:
            return
        if kind is MutationKind.TITLE:
            self.detect_title()
        if self._debounce_timer is None:
            self._debounce_timer = self._loop.call_later(self._config.debounce_delay, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce_timer = None
        self.run_pass()

    def _schedule_fallback(self) -> None:
        if self._state is DetectorState.OBSERVING:
            self._fallback_timer = self._loop.call_later(self._config.fallback_interval, self._on_fallback)

    def _on_fallback(self) -> None:
        self._fallback_timer = None
        self.run_pass()
        self._schedule_fallback()

    # =========================================================================
    # DETECTION
    # =========================================================================

    def _capture(self) -> Optional[PageSnapshot]:
        try:
            return self._page.capture()
        except PageUnavailableError as e:
            self._skipped_captures += 1
            logger.debug(f"Skipping detection, page unavailable: {e}")
            return None

    def run_pass(self) -> None:
        """Full detection pass over a fresh capture."""
        if self._state is not DetectorState.OBSERVING:
            return
        page = self._capture()
        if page is None:
            return
        self._passes += 1

        self._detect_song_url(page)
        self._detect_title(page)
        self._detect_playback(page)
        self._detect_duration(page)
        self._detect_elapsed(page)
        self._detect_playlist(page)
        self._detect_artwork(page)

    def detect_title(self) -> None:
        """Title-only path for document-title mutations."""
        if self._state is not DetectorState.OBSERVING:
            return
        page = self._capture()
        if page is not None:
            self._detect_title(page)

    def _detect_title(self, page: PageSnapshot) -> None:
        info = self.title.extract(page)
        if info is not None:
            self._on_new_song(info, page)

    def _on_new_song(self, info: SongInfo, page: PageSnapshot) -> None:
        if info.title == self.snapshot.title:
            return
        logger.info(f"♪ Now playing: {info}")
        self.snapshot.title = info.title
        self.snapshot.artist = info.artist
        self.snapshot.reset_timing()
        self.timing.reset()
        self._emit(EventType.UPDATE_SONG, {"title": info.title, "artist": info.artist})

        # playback and duration of the new song are there already
        self._detect_playback(page)
        self._detect_duration(page)

    def _detect_playback(self, page: PageSnapshot) -> None:
        playing = self.playback.extract(page)
        if playing is None:
            return
        state = PlaybackState.from_bool(playing)
        if state is self.snapshot.playback_state:
            return
        self.snapshot.playback_state = state
        self._emit(EventType.PLAYBACK_STATE, playing)

    def _detect_duration(self, page: PageSnapshot) -> None:
        duration = self.timing.extract_duration(page)
        if self._changed("duration", duration):
            self._emit(EventType.SONG_DURATION, duration)

    def _detect_elapsed(self, page: PageSnapshot) -> None:
        elapsed = self.timing.extract_elapsed(page)
        self.snapshot.progress_value = self.timing.state.last_progress
        self.snapshot.progress_mode = self.timing.state.mode
        if self._changed("elapsed", elapsed):
            self._emit(EventType.SONG_ELAPSED, elapsed)

    def _detect_playlist(self, page: PageSnapshot) -> None:
        playlist_id = self.playlist.extract(page)
        if self._changed("playlist_id", playlist_id):
            self._emit(EventType.PLAYLIST_ID, playlist_id)

    def _detect_artwork(self, page: PageSnapshot) -> None:
        image = self.artwork.extract_artwork(page)
        if self._changed("image_url", image):
            self._emit(EventType.ALBUM_ART, image)

    def _detect_song_url(self, page: PageSnapshot) -> None:
        url = self.artwork.extract_song_url(page)
        if self._changed("song_url", url):
            self._emit(EventType.SONG_URL, url)

    # =========================================================================
    # PUBLISHING
    # =========================================================================

    def _changed(self, name: str, value: Any) -> bool:
        """Store value in the snapshot if it is new. None never counts."""
        if value is None or getattr(self.snapshot, name) == value:
            return False
        setattr(self.snapshot, name, value)
        return True

    def _emit(self, event: EventType, payload: Any) -> None:
        if self._state is not DetectorState.OBSERVING:
            return
        self._events += 1
        logger.debug(f"→ {event.value}: {payload}")
        for channel in self._channels:
            try:
                channel.emit(event, payload)
            except Exception as e:
                logger.warning(f"Channel {type(channel).__name__} failed on {event.value}: {e}")
