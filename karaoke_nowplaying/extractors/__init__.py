"""
Heuristic extractors over a PageSnapshot.

Each extractor is an ordered chain of plain strategy functions plus the
small amount of state it needs for change suppression.
"""

from .playback import PlaybackExtractor, classify_icon_path
from .playlist import ArtworkExtractor, PlaylistExtractor
from .timing import TimingExtractor, choose_progress_token, rescale_slider
from .title import TitleExtractor

__all__ = [
    "TitleExtractor",
    "PlaylistExtractor",
    "ArtworkExtractor",
    "PlaybackExtractor",
    "TimingExtractor",
    "classify_icon_path",
    "choose_progress_token",
    "rescale_slider",
]
