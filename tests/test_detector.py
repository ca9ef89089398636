"""
Tests for the change-reconciliation loop.

All scheduling runs on FakeLoop; nothing fires unless the test advances
the clock.
"""

import pytest

from karaoke_nowplaying.channels import EventChannel
from karaoke_nowplaying.config import DetectorConfig
from karaoke_nowplaying.detector import DetectorState, NowPlayingDetector
from karaoke_nowplaying.domain import EventType, PlaybackState, ProgressMode
from karaoke_nowplaying.page import MutationKind, PageSource, PageUnavailableError, StaticPage

from conftest import player_html

SETTLE = 3.0
DEBOUNCE = 0.3
FALLBACK = 5.0


@pytest.fixture
def page():
    return StaticPage(player_html(title="First Song", progress="0:10 / 3:20"))


@pytest.fixture
def detector(page, channel, loop):
    return NowPlayingDetector(page, [channel], loop, DetectorConfig())


@pytest.fixture
def observing(detector, channel, loop):
    """Detector past its settle delay, first pass done, events cleared."""
    detector.start()
    loop.advance(SETTLE)
    channel.clear()
    return detector


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:
    """idle -> observing -> stopped."""

    def test_nothing_before_settle_delay(self, detector, channel, loop):
        detector.start()
        loop.advance(SETTLE - 0.1)
        assert detector.state is DetectorState.IDLE
        assert channel.events == []

    def test_first_pass_after_settle(self, detector, channel, loop):
        detector.start()
        loop.advance(SETTLE)
        assert detector.state is DetectorState.OBSERVING
        assert channel.kinds == [
            EventType.UPDATE_SONG,
            EventType.PLAYBACK_STATE,
            EventType.SONG_DURATION,
            EventType.SONG_ELAPSED,
        ]
        assert channel.of(EventType.UPDATE_SONG) == [{"title": "First Song", "artist": "Neuro"}]
        assert channel.of(EventType.PLAYBACK_STATE) == [True]
        assert channel.of(EventType.SONG_DURATION) == [200]
        assert channel.of(EventType.SONG_ELAPSED) == [10]

    def test_mutations_before_settle_are_ignored(self, detector, page, channel, loop):
        detector.start()
        page.load(player_html(title="Early", progress="0:01 / 3:20"))
        assert detector.get_status()["debounce_pending"] is False
        assert channel.events == []

    def test_start_is_idempotent(self, detector, page, loop):
        assert detector.start()
        assert detector.start()
        assert page.observer_count == 1

    def test_status(self, observing):
        status = observing.get_status()
        assert status["started"] is True
        assert status["state"] == "observing"
        assert status["passes"] == 1
        assert status["snapshot"]["title"] == "First Song"


# =============================================================================
# Scheduling
# =============================================================================

class TestScheduling:
    """Debounce and fallback timers."""

    def test_mutation_burst_coalesces_into_one_pass(self, observing, page, channel, loop):
        page.load(player_html(title="First Song", progress="0:11 / 3:20"))
        page.load(player_html(title="First Song", progress="0:12 / 3:20"))
        page.load(player_html(title="First Song", progress="0:13 / 3:20"))
        assert observing.get_status()["debounce_pending"] is True

        loop.advance(DEBOUNCE)
        assert observing.get_status()["passes"] == 2
        assert channel.of(EventType.SONG_ELAPSED) == [13]

    def test_pending_timer_is_not_rescheduled(self, observing, page, loop):
        page.notify(MutationKind.TREE)
        loop.advance(0.2)
        page.notify(MutationKind.TREE)
        loop.advance(0.1)
        # fired at the first mutation's deadline, not pushed back
        assert observing.get_status()["passes"] == 2
        assert observing.get_status()["debounce_pending"] is False

    def test_fallback_pass_without_mutations(self, observing, page, channel, loop):
        page.load(player_html(title="First Song", progress="0:40 / 3:20"), notify=False)
        loop.advance(FALLBACK)
        assert channel.of(EventType.SONG_ELAPSED) == [40]

    def test_fallback_repeats(self, observing, loop):
        loop.advance(FALLBACK * 3)
        assert observing.get_status()["passes"] == 4

    def test_run_pass_ignored_when_idle(self, detector, channel):
        detector.run_pass()
        assert channel.events == []


# =============================================================================
# Change reconciliation
# =============================================================================

class TestReconciliation:
    def test_no_duplicate_events_across_passes(self, observing, page, channel, loop):
        for _ in range(5):
            page.notify(MutationKind.TREE)
            loop.advance(DEBOUNCE)
        loop.advance(FALLBACK * 4)
        assert channel.events == []

    def test_playback_change(self, observing, page, channel, loop):
        page.load(player_html(title="First Song", playing=False, progress="0:10 / 3:20"))
        loop.advance(DEBOUNCE)
        assert channel.events == [(EventType.PLAYBACK_STATE, False)]
        assert observing.snapshot.playback_state is PlaybackState.PAUSED

    def test_playlist_artwork_and_song_url(self, observing, page, channel, loop):
        page.load(
            player_html(
                title="First Song",
                progress="0:10 / 3:20",
                image="/covers/first.jpg",
                extra='<div data-playlist-id="pl-7"></div>',
            ),
            url="https://karaoke.example/songs/first",
        )
        loop.advance(DEBOUNCE)
        assert channel.of(EventType.SONG_URL) == ["https://karaoke.example/songs/first"]
        assert channel.of(EventType.PLAYLIST_ID) == ["pl-7"]
        assert channel.of(EventType.ALBUM_ART) == ["https://karaoke.example/covers/first.jpg"]
        assert EventType.UPDATE_SONG not in channel.kinds

    def test_unavailable_page_skips_pass(self, channel, loop):
        class GonePage(StaticPage):
            def capture(self):
                raise PageUnavailableError("target closed")

        detector = NowPlayingDetector(GonePage(), [channel], loop)
        detector.start()
        loop.advance(SETTLE + FALLBACK)
        assert channel.events == []
        assert detector.get_status()["skipped_captures"] == 2

    def test_failing_channel_does_not_block_others(self, page, channel, loop):
        class BrokenChannel(EventChannel):
            def emit(self, event, payload):
                raise RuntimeError("boom")

        detector = NowPlayingDetector(page, [BrokenChannel(), channel], loop)
        detector.start()
        loop.advance(SETTLE)
        assert EventType.UPDATE_SONG in channel.kinds


class TestNewSong:
    """A title change resets timing before anything else goes out."""

    def test_title_path_is_immediate(self, observing, page, channel, loop):
        page.load(player_html(title="Second Song", duration="4:00", progress="0:01 / 4:00"))
        # title-only path ran on the mutation itself
        assert channel.kinds[:2] == [EventType.UPDATE_SONG, EventType.SONG_DURATION]
        assert channel.of(EventType.SONG_DURATION) == [240]

        loop.advance(DEBOUNCE)
        assert channel.of(EventType.SONG_ELAPSED) == [1]

    def test_duration_precedes_elapsed(self, observing, page, channel, loop):
        page.load(player_html(title="Second Song", duration="4:00", progress="0:05 / 4:00"), notify=False)
        loop.advance(FALLBACK)
        kinds = channel.kinds
        assert kinds.index(EventType.UPDATE_SONG) < kinds.index(EventType.SONG_DURATION)
        assert kinds.index(EventType.SONG_DURATION) < kinds.index(EventType.SONG_ELAPSED)

    def test_same_elapsed_value_republished_for_new_song(self, observing, page, channel, loop):
        page.load(player_html(title="Second Song", progress="0:10 / 3:20"))
        loop.advance(DEBOUNCE)
        assert channel.of(EventType.SONG_DURATION) == [200]
        assert channel.of(EventType.SONG_ELAPSED) == [10]

    def test_progress_mode_reset(self, observing, page, loop):
        page.load(player_html(title="First Song", progress="0:20 / 3:20"))
        loop.advance(DEBOUNCE)
        assert observing.snapshot.progress_mode is ProgressMode.ELAPSED

        page.load(player_html(title="Second Song", progress="0:02 / 3:20"))
        assert observing.snapshot.progress_mode is ProgressMode.UNSET

    def test_song_url_change_with_same_title_keeps_timing(self, observing, page, channel, loop):
        """Browsing to another song page while the same song plays."""
        html = player_html(title="First Song", progress="0:20 / 3:20")
        page.load(html, url="https://karaoke.example/songs/1")
        loop.advance(DEBOUNCE)
        assert observing.snapshot.progress_mode is ProgressMode.ELAPSED
        channel.clear()

        page.load(html, url="https://karaoke.example/songs/2")
        loop.advance(DEBOUNCE)
        assert channel.events == [(EventType.SONG_URL, "https://karaoke.example/songs/2")]
        assert observing.snapshot.progress_mode is ProgressMode.ELAPSED
        assert observing.snapshot.duration == 200
        assert observing.snapshot.elapsed == 20


# =============================================================================
# Teardown
# =============================================================================

class TestTeardown:
    def test_silent_after_stop(self, observing, page, channel, loop):
        observing.stop()
        page.load(player_html(title="After Stop", progress="1:00 / 3:20"))
        page.notify(MutationKind.TITLE)
        observing.on_mutation(MutationKind.TREE)
        loop.advance(60)
        assert channel.events == []
        assert loop.pending() == []

    def test_stop_disconnects_observer(self, observing, page):
        observing.stop()
        assert page.observer_count == 0

    def test_stop_during_settle_delay(self, detector, channel, loop):
        detector.start()
        detector.stop()
        loop.advance(SETTLE * 2)
        assert channel.events == []

    def test_stop_with_pending_debounce(self, observing, page, channel, loop):
        page.load(player_html(title="First Song", progress="0:30 / 3:20"))
        observing.stop()
        loop.advance(DEBOUNCE)
        assert channel.events == []

    def test_double_stop(self, observing):
        observing.stop()
        observing.stop()
        assert observing.state is DetectorState.STOPPED

    def test_start_after_stop_refused(self, observing, page):
        observing.stop()
        assert observing.start() is False
        assert not observing.is_started
        assert observing.get_status()["started"] is False
        assert page.observer_count == 0


class TestPageSourceContract:
    def test_detector_accepts_any_page_source(self, channel, loop):
        class MinimalPage(PageSource):
            def __init__(self):
                self.inner = StaticPage(player_html(title="Minimal"))

            def capture(self):
                return self.inner.capture()

            def observe(self, callback):
                return self.inner.observe(callback)

            def click(self, selector):
                return False

            def media_control(self, command, value=None):
                return False

        detector = NowPlayingDetector(MinimalPage(), [channel], loop)
        detector.start()
        loop.advance(SETTLE)
        assert channel.of(EventType.UPDATE_SONG) == [{"title": "Minimal", "artist": "Neuro"}]
