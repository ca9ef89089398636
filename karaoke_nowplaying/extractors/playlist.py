"""
Playlist, artwork and song-url extraction.

Independent of title and timing state: these may change on passes where
the song did not.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

from .. import markup
from ..page import PageSnapshot

PlaylistStrategy = Callable[[PageSnapshot], Optional[str]]


# =============================================================================
# PLAYLIST ID STRATEGIES
# =============================================================================

def playlist_from_url(page: PageSnapshot) -> Optional[str]:
    match = markup.PLAYLIST_PATH.search(urlparse(page.url).path)
    return match.group(1) if match else None


def playlist_from_link(page: PageSnapshot) -> Optional[str]:
    for link in page.soup.select(markup.PLAYLIST_LINK):
        match = markup.PLAYLIST_PATH.search(urlparse(link.get("href", "")).path)
        if match:
            return match.group(1)
    return None


def playlist_from_attribute(page: PageSnapshot) -> Optional[str]:
    for attribute in markup.PLAYLIST_ATTRIBUTES:
        node = page.soup.find(attrs={attribute: True})
        if node is not None:
            value = str(node.get(attribute, "")).strip()
            if value:
                return value
    return None


def playlist_from_script(page: PageSnapshot) -> Optional[str]:
    for script in page.soup.find_all("script"):
        if script.get("src"):
            continue
        match = markup.PLAYLIST_SCRIPT_TOKEN.search(script.string or "")
        if match:
            return match.group(1)
    return None


DEFAULT_PLAYLIST_STRATEGIES: List[PlaylistStrategy] = [
    playlist_from_url,
    playlist_from_link,
    playlist_from_attribute,
    playlist_from_script,
]


class PlaylistExtractor:
    """First non-empty playlist id that differs from the last one emitted."""

    def __init__(self, strategies: Optional[Sequence[PlaylistStrategy]] = None):
        self._strategies = list(strategies or DEFAULT_PLAYLIST_STRATEGIES)
        self.last_id: Optional[str] = None

    def extract(self, page: PageSnapshot) -> Optional[str]:
        for strategy in self._strategies:
            playlist_id = strategy(page)
            if playlist_id:
                if playlist_id == self.last_id:
                    return None
                self.last_id = playlist_id
                return playlist_id
        return None


# =============================================================================
# ARTWORK / SONG URL
# =============================================================================

def artwork_url(page: PageSnapshot) -> Optional[str]:
    """src (or lazy src) of the first image inside the player bar."""
    surface = page.select_first(markup.PLAYER_SURFACE)
    if surface is None:
        return None
    for image in surface.select(markup.ARTWORK_IMAGE):
        for attribute in markup.ARTWORK_ATTRIBUTES:
            value = str(image.get(attribute, "") or "").strip()
            if value and not value.startswith("data:"):
                return urljoin(page.url, value) if page.url else value
    return None


def song_url(page: PageSnapshot) -> Optional[str]:
    """The current address, when it points at a single song."""
    if page.url and markup.SONG_PATH.search(urlparse(page.url).path):
        return page.url
    return None


@dataclass
class ArtworkState:
    last_image: Optional[str] = None
    last_song_url: Optional[str] = None


class ArtworkExtractor:
    """Artwork and song-url, each emitted only on change."""

    def __init__(self):
        self.state = ArtworkState()

    def extract_artwork(self, page: PageSnapshot) -> Optional[str]:
        url = artwork_url(page)
        if not url or url == self.state.last_image:
            return None
        self.state.last_image = url
        return url

    def extract_song_url(self, page: PageSnapshot) -> Optional[str]:
        url = song_url(page)
        if not url or url == self.state.last_song_url:
            return None
        self.state.last_song_url = url
        return url
