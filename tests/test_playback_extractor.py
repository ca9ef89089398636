"""
Tests for playback-state detection.

Icon paths are the Material play/pause glyphs the player uses.
"""

import pytest

from karaoke_nowplaying.domain import PlaybackState
from karaoke_nowplaying.extractors import PlaybackExtractor, classify_icon_path
from karaoke_nowplaying.extractors.playback import path_outlines
from karaoke_nowplaying.page import MediaState, PageSnapshot

PAUSE_ICON = "M6 4h4v16H6zM14 4h4v16h-4z"
PLAY_ICON = "M8 5v14l11-7z"


def _icon_page(d: str) -> PageSnapshot:
    return PageSnapshot(
        f'<div class="music-player"><button><svg viewBox="0 0 24 24"><path d="{d}"></path></svg></button></div>'
    )


def _label_page(label: str) -> PageSnapshot:
    return PageSnapshot(f'<div class="music-player"><button aria-label="{label}"></button></div>')


class TestIconClassification:
    """SVG path shape heuristics."""

    def test_two_bars_is_pause(self):
        assert classify_icon_path(PAUSE_ICON) == "pause"

    def test_triangle_is_play(self):
        assert classify_icon_path(PLAY_ICON) == "play"

    def test_absolute_triangle(self):
        assert classify_icon_path("M8 5L8 19L19 12Z") == "play"

    def test_curves_are_not_classified(self):
        assert classify_icon_path("M12 2C6.48 2 2 6.48 2 12s4.48 10 10 10") is None

    def test_single_bar_is_not_pause(self):
        assert classify_icon_path("M6 4h4v16H6z") is None

    def test_square_is_not_play(self):
        assert classify_icon_path("M6 6h12v12H6z") is None

    def test_outlines(self):
        assert path_outlines("M8 5v14l11-7z") == [[(8.0, 5.0), (8.0, 19.0), (19.0, 12.0)]]


class TestPlaybackStrategies:
    """Priority chain: media element, icon, label."""

    def test_media_element_playing(self):
        page = PageSnapshot("<div></div>", media=MediaState(paused=False))
        assert PlaybackExtractor().detect(page) is PlaybackState.PLAYING

    def test_media_element_wins_over_label(self):
        page = PageSnapshot(
            '<div class="music-player"><button aria-label="Pause"></button></div>',
            media=MediaState(paused=True),
        )
        assert PlaybackExtractor().detect(page) is PlaybackState.PAUSED

    def test_pause_icon_means_playing(self):
        assert PlaybackExtractor().detect(_icon_page(PAUSE_ICON)) is PlaybackState.PLAYING

    def test_play_icon_means_paused(self):
        assert PlaybackExtractor().detect(_icon_page(PLAY_ICON)) is PlaybackState.PAUSED

    @pytest.mark.parametrize("label,state", [
        ("Pause", PlaybackState.PLAYING),
        ("Play", PlaybackState.PAUSED),
        ("Play/Pause", PlaybackState.PAUSED),
        ("Playlist", PlaybackState.UNKNOWN),
        ("Shuffle", PlaybackState.UNKNOWN),
    ])
    def test_label(self, label, state):
        assert PlaybackExtractor().detect(_label_page(label)) is state

    def test_nothing_to_go_on(self):
        assert PlaybackExtractor().detect(PageSnapshot("<p>hello</p>")) is PlaybackState.UNKNOWN


class TestPlaybackExtractor:
    def test_reports_changes_only(self):
        extractor = PlaybackExtractor()
        assert extractor.extract(_label_page("Pause")) is True
        assert extractor.extract(_label_page("Pause")) is None
        assert extractor.extract(_label_page("Play")) is False
        assert extractor.extract(_label_page("Play")) is None

    def test_unknown_is_never_reported(self):
        extractor = PlaybackExtractor()
        extractor.extract(_label_page("Pause"))
        assert extractor.extract(PageSnapshot("<p></p>")) is None
        assert extractor.last_state is PlaybackState.PLAYING
