"""
Playback-State Extractor

Priority chain, first decisive answer wins:
    1. media element paused flag (authoritative when present)
    2. icon shape inside the player's buttons: two bars = playing, triangle = paused
    3. accessibility label: "pause" without "play" = playing, otherwise paused
"""

import re
from typing import Callable, List, Optional, Sequence, Tuple

from .. import markup
from ..domain import PlaybackState
from ..page import PageSnapshot

PlaybackStrategy = Callable[[PageSnapshot], PlaybackState]
Point = Tuple[float, float]

_SEGMENT = re.compile(r"([A-Za-z])([^A-Za-z]*)")
_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_PLAY_WORD = re.compile(r"\bplay\b")
_PAUSE_WORD = re.compile(r"\bpause\b")


# =============================================================================
# ICON SHAPES
# =============================================================================

def path_outlines(d: str) -> Optional[List[List[Point]]]:
    """
    Walk an SVG path made of straight segments and return the vertices of
    each subpath. None when the path uses curves or arcs.
    """
    outlines: List[List[Point]] = []
    x = y = 0.0
    start = (0.0, 0.0)
    for command, raw in _SEGMENT.findall(d or ""):
        numbers = [float(n) for n in _NUMBER.findall(raw)]
        relative = command.islower()
        kind = command.upper()
        if kind == "Z":
            x, y = start
            continue
        if kind in ("M", "L"):
            if len(numbers) < 2 or len(numbers) % 2:
                return None
            for i in range(0, len(numbers), 2):
                dx, dy = numbers[i], numbers[i + 1]
                x, y = (x + dx, y + dy) if relative else (dx, dy)
                if kind == "M" and i == 0:
                    start = (x, y)
                    outlines.append([start])
                elif outlines:
                    outlines[-1].append((x, y))
        elif kind in ("H", "V"):
            if not numbers or not outlines:
                return None
            for value in numbers:
                if kind == "H":
                    x = x + value if relative else value
                else:
                    y = y + value if relative else value
                outlines[-1].append((x, y))
        else:
            return None

    cleaned = []
    for points in outlines:
        unique: List[Point] = []
        for point in points:
            if not unique or unique[-1] != point:
                unique.append(point)
        if len(unique) > 1 and unique[-1] == unique[0]:
            unique.pop()
        cleaned.append(unique)
    return cleaned


def _edges(points: List[Point]):
    return zip(points, points[1:] + points[:1])


def _is_vertical_bar(points: List[Point]) -> bool:
    if len(points) != 4:
        return False
    if not all(a[0] == b[0] or a[1] == b[1] for a, b in _edges(points)):
        return False
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return max(ys) - min(ys) > max(xs) - min(xs)


def _is_triangle(points: List[Point]) -> bool:
    if len(points) != 3:
        return False
    return any(a[0] != b[0] and a[1] != b[1] for a, b in _edges(points))


def classify_icon_path(d: str) -> Optional[str]:
    """
    Classify an SVG path as "pause" (two vertical bars) or "play" (a
    triangle). Returns None for anything else.
    """
    outlines = path_outlines(d)
    if not outlines:
        return None
    if len(outlines) == 2 and all(_is_vertical_bar(p) for p in outlines):
        return "pause"
    if len(outlines) == 1 and _is_triangle(outlines[0]):
        return "play"
    return None


# =============================================================================
# STRATEGIES
# =============================================================================

def playback_from_media(page: PageSnapshot) -> PlaybackState:
    if page.media is None or page.media.paused is None:
        return PlaybackState.UNKNOWN
    return PlaybackState.from_bool(not page.media.paused)


def playback_from_icon(page: PageSnapshot) -> PlaybackState:
    surface = page.select_first(markup.PLAYER_SURFACE)
    if surface is None:
        return PlaybackState.UNKNOWN
    for control in page.select_all(markup.CONTROL_NODES, root=surface):
        for path in control.select("svg path"):
            shape = classify_icon_path(path.get("d", ""))
            if shape == "pause":
                return PlaybackState.PLAYING
            if shape == "play":
                return PlaybackState.PAUSED
    return PlaybackState.UNKNOWN


def _control_label(control) -> str:
    for attribute in markup.LABEL_ATTRIBUTES:
        value = control.get(attribute)
        if value:
            return str(value).lower()
    return ""


def playback_from_label(page: PageSnapshot) -> PlaybackState:
    surface = page.select_first(markup.PLAYER_SURFACE)
    scope = surface if surface is not None else page.soup
    for control in page.select_all(markup.CONTROL_NODES, root=scope):
        label = _control_label(control)
        has_play = bool(_PLAY_WORD.search(label))
        if _PAUSE_WORD.search(label) and not has_play:
            return PlaybackState.PLAYING
        if has_play:
            return PlaybackState.PAUSED
    return PlaybackState.UNKNOWN


DEFAULT_PLAYBACK_STRATEGIES: List[PlaybackStrategy] = [
    playback_from_media,
    playback_from_icon,
    playback_from_label,
]


class PlaybackExtractor:
    """Reports playing/paused only when it differs from the last report."""

    def __init__(self, strategies: Optional[Sequence[PlaybackStrategy]] = None):
        self._strategies = list(strategies or DEFAULT_PLAYBACK_STRATEGIES)
        self.last_state = PlaybackState.UNKNOWN

    def detect(self, page: PageSnapshot) -> PlaybackState:
        for strategy in self._strategies:
            state = strategy(page)
            if state is not PlaybackState.UNKNOWN:
                return state
        return PlaybackState.UNKNOWN

    def extract(self, page: PageSnapshot) -> Optional[bool]:
        state = self.detect(page)
        if state is PlaybackState.UNKNOWN or state is self.last_state:
            return None
        self.last_state = state
        return state.as_bool()
