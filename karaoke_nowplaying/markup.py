"""
Markup Contract

Every selector, attribute name and text pattern the extractors and UI
actions depend on. The player's markup is not a stable API: when it
drifts, this module (and extractor internals) change, nothing else.

Selectors are tried in order; the first element found wins.
"""

import re

# =============================================================================
# PLAYER SURFACES
# =============================================================================

PLAYER_SURFACE = (
    "[class*='music-player']",
    "[class*='player-bar']",
    "[class*='now-playing']",
    "footer [class*='player']",
)

MOBILE_SURFACE = (
    "[class*='mobile-player']",
    "[class*='mini-player']",
    "[class*='player-mobile']",
)

TITLE_NODES = (
    "[class*='song-title']",
    "[class*='track-title']",
    "[class*='song-name']",
    ".title",
)

ARTIST_NODES = (
    "[class*='song-artist']",
    "[class*='track-artist']",
    "[class*='artist']",
    ".subtitle",
)

# =============================================================================
# DOCUMENT TITLE
# =============================================================================

# "<title> - Neuro Karaoke", then the looser "<title> - * Karaoke"
DOCUMENT_TITLE_PATTERNS = (
    re.compile(r"^\s*(.+?)\s+[-–—|]\s+Neuro[\s-]?Karaoke\s*$", re.IGNORECASE),
    re.compile(r"^\s*(.+?)\s+[-–—|]\s+.*Karaoke\s*$", re.IGNORECASE),
)

# Splits "Title - Artist" inside the captured group
TITLE_ARTIST_SEPARATOR = re.compile(r"\s+[-–—]\s+")

# =============================================================================
# PLAYLIST / SONG URL / ARTWORK
# =============================================================================

PLAYLIST_PATH = re.compile(r"/playlists?/([A-Za-z0-9_-]+)")
PLAYLIST_LINK = "a[href*='/playlist']"
PLAYLIST_ATTRIBUTES = (
    "data-playlist-id",
    "data-playlistid",
    "data-playlist",
    "aria-playlist-id",
)
PLAYLIST_SCRIPT_TOKEN = re.compile(
    r"""["']?playlist[_-]?id["']?\s*[:=]\s*["']([A-Za-z0-9_-]+)["']""",
    re.IGNORECASE,
)

SONG_PATH = re.compile(r"/(?:song|songs|track|tracks)/[^/?#]+")

ARTWORK_IMAGE = "img"
ARTWORK_ATTRIBUTES = ("src", "data-src", "data-lazy-src")

# =============================================================================
# PLAYBACK CONTROLS
# =============================================================================

CONTROL_NODES = ("button", "[role='button']")
LABEL_ATTRIBUTES = ("aria-label", "title", "data-tooltip")

PLAY_CONTROL = (
    "[class*='music-player'] button[aria-label*='lay']",
    "[class*='music-player'] button[aria-label*='ause']",
    "button[class*='play-pause']",
    "button[class*='play']",
)
NEXT_CONTROL = (
    "button[aria-label*='Next']",
    "button[aria-label*='next']",
    "button[class*='next']",
)
PREVIOUS_CONTROL = (
    "button[aria-label*='Previous']",
    "button[aria-label*='previous']",
    "button[class*='prev']",
)

# =============================================================================
# DURATION / PROGRESS
# =============================================================================

DURATION_NODES = (
    "[class*='duration']",
    "[class*='total-time']",
    "[class*='time-total']",
)

PROGRESS_CONTAINER = (
    "[class*='progress']",
    "[class*='seek']",
    "[class*='slider']",
    "[class*='timeline']",
)

# Elements exposing value/max, checked on the container and its descendants
SLIDER_NODES = (
    "[role='slider']",
    "input[type='range']",
    "[aria-valuenow]",
)
