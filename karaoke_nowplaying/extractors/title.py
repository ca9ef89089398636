"""
Title Extractor

Recovers {title, artist} from, in order:
    1. the player bar's title/artist nodes
    2. the mobile player's title/artist nodes
    3. the document title ("<title> - Neuro Karaoke" or "<title> - * Karaoke")

Repeat suppression: a title equal to the last emitted one is not emitted
again until reset().
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .. import markup
from ..domain import SongInfo
from ..page import PageSnapshot

logger = logging.getLogger(__name__)

TitleStrategy = Callable[[PageSnapshot], Optional[SongInfo]]


def _from_surface(page: PageSnapshot, surface_selectors: Sequence[str]) -> Optional[SongInfo]:
    surface = page.select_first(surface_selectors)
    if surface is None:
        return None
    title = page.text_of(page.select_first(markup.TITLE_NODES, root=surface))
    if not title:
        return None
    artist = page.text_of(page.select_first(markup.ARTIST_NODES, root=surface))
    if artist == title:
        artist = ""
    return SongInfo(title=title, artist=artist)


def title_from_player(page: PageSnapshot) -> Optional[SongInfo]:
    return _from_surface(page, markup.PLAYER_SURFACE)


def title_from_mobile(page: PageSnapshot) -> Optional[SongInfo]:
    return _from_surface(page, markup.MOBILE_SURFACE)


def title_from_document(page: PageSnapshot) -> Optional[SongInfo]:
    """Parse the document title; "A - B - Neuro Karaoke" gives title A, artist B."""
    text = page.title
    if not text:
        return None
    for pattern in markup.DOCUMENT_TITLE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        captured = match.group(1).strip()
        parts = markup.TITLE_ARTIST_SEPARATOR.split(captured, maxsplit=1)
        if len(parts) == 2 and parts[0].strip():
            return SongInfo(title=parts[0].strip(), artist=parts[1].strip())
        if captured:
            return SongInfo(title=captured)
    return None


DEFAULT_TITLE_STRATEGIES: List[TitleStrategy] = [
    title_from_player,
    title_from_mobile,
    title_from_document,
]


@dataclass
class TitleState:
    last_title: Optional[str] = None


class TitleExtractor:
    """Emits SongInfo only when the title differs from the last emitted one."""

    def __init__(self, strategies: Optional[Sequence[TitleStrategy]] = None):
        self._strategies = list(strategies or DEFAULT_TITLE_STRATEGIES)
        self.state = TitleState()

    def detect(self, page: PageSnapshot) -> Optional[SongInfo]:
        """Current song without repeat suppression."""
        for strategy in self._strategies:
            info = strategy(page)
            if info and info.title:
                return info
        return None

    def extract(self, page: PageSnapshot) -> Optional[SongInfo]:
        info = self.detect(page)
        if info is None or info.title == self.state.last_title:
            return None
        self.state.last_title = info.title
        return info

    def reset(self) -> None:
        """Forget the last title so the next detection counts as a new song."""
        self.state.last_title = None
