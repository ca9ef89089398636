"""
Duration / Elapsed Extractor

Duration: media element duration, else a duration text node (anything
under MIN_TEXT_DURATION seconds is taken to be the elapsed span and
rejected).

Elapsed: media element position, else the progress control:
    1. slider value/max, rescaled onto the known duration
    2. time tokens in the control's text; whether the display counts up
       (elapsed) or down (remaining) is inferred once per song from the
       trend of successive readings, or from an explicit minus sign

reset() is called by the detector whenever a new song is confirmed.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from bs4 import Tag

from .. import markup
from ..domain import ProgressMode, TimeValue
from ..page import PageSnapshot
from ..timetext import parse_times

logger = logging.getLogger(__name__)

MIN_TEXT_DURATION = 30
DIAGNOSTIC_INTERVAL = 30.0


@dataclass(frozen=True)
class ProgressReading:
    """One raw progress value, before mode is applied."""
    value: int
    source: str                      # "slider" or "text"
    negative: bool = False
    duration_hint: Optional[int] = None


@dataclass
class TimingState:
    duration: Optional[int] = None
    elapsed: Optional[int] = None
    last_progress: Optional[int] = None
    mode: ProgressMode = ProgressMode.UNSET


# =============================================================================
# PURE HELPERS
# =============================================================================

def _finite_positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _float_attr(node: Tag, *names: str) -> Optional[float]:
    for name in names:
        raw = node.get(name)
        if raw is None or raw == "":
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value):
            return value
    return None


def rescale_slider(value: float, maximum: float, duration: Optional[int]) -> Optional[float]:
    """
    Map a slider position onto seconds.

    max <= 1                      -> fraction of duration
    max <= 100 and max != duration -> percentage of duration
    max != duration               -> proportional to duration
    otherwise                     -> value is already seconds

    The fraction/percentage bands need a known duration; without one
    they give no reading.
    """
    if maximum <= 1:
        if not duration:
            return None
        return value * duration
    if maximum <= 100 and maximum != duration:
        if not duration:
            return None
        return value / 100 * duration
    if duration and maximum != duration:
        return value / maximum * duration
    return value


def choose_progress_token(
    tokens: List[TimeValue],
    known_duration: Optional[int] = None,
) -> Optional[ProgressReading]:
    """
    Pick the progress value out of the time tokens of a progress control.

    With two or more tokens the largest is the duration candidate. An
    ascending first pair means an elapsed-first layout, so the first token
    is progress; otherwise the smallest token is. A lone token is progress
    unless it equals the known duration.
    """
    if not tokens:
        return None
    if len(tokens) == 1:
        only = tokens[0]
        if known_duration is not None and only.seconds == known_duration and not only.negative:
            return None
        return ProgressReading(value=only.seconds, source="text", negative=only.negative)
    duration_hint = max(t.seconds for t in tokens)
    first, second = tokens[0], tokens[1]
    if second.seconds >= first.seconds:
        chosen = first
    else:
        chosen = min(tokens, key=lambda t: t.seconds)
    return ProgressReading(
        value=chosen.seconds,
        source="text",
        negative=chosen.negative,
        duration_hint=duration_hint,
    )


# =============================================================================
# EXTRACTOR
# =============================================================================

class TimingExtractor:
    """
    Owns duration, elapsed, the last raw progress value and the sticky
    progress mode for the current song.
    """

    def __init__(
        self,
        min_text_duration: int = MIN_TEXT_DURATION,
        diagnostic_interval: float = DIAGNOSTIC_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = TimingState()
        self._min_text_duration = min_text_duration
        self._diagnostic_interval = diagnostic_interval
        self._clock = clock
        self._last_diagnostic: Optional[float] = None

    @property
    def mode(self) -> ProgressMode:
        return self.state.mode

    def reset(self) -> None:
        self.state = TimingState()

    # -------------------------------------------------------------------------
    # Duration
    # -------------------------------------------------------------------------

    def detect_duration(self, page: PageSnapshot) -> Optional[int]:
        media = page.media
        if media is not None and _finite_positive(media.duration):
            return int(round(media.duration))
        for node in page.select_all(markup.DURATION_NODES):
            tokens = parse_times(page.text_of(node))
            if not tokens:
                continue
            seconds = tokens[-1].seconds
            if seconds < self._min_text_duration:
                logger.debug(f"Rejected implausible duration {seconds}s")
                continue
            return seconds
        return None

    def extract_duration(self, page: PageSnapshot) -> Optional[int]:
        duration = self.detect_duration(page)
        if duration is None or duration == self.state.duration:
            return None
        self.state.duration = duration
        return duration

    # -------------------------------------------------------------------------
    # Elapsed
    # -------------------------------------------------------------------------

    def read_progress(self, page: PageSnapshot) -> Optional[ProgressReading]:
        """Raw progress from the progress control (slider, then text)."""
        container = page.select_first(markup.PROGRESS_CONTAINER)
        if container is None:
            return None

        sliders = [container] if self._slider_values(container) else []
        sliders += page.select_all(markup.SLIDER_NODES, root=container)
        for slider in sliders:
            values = self._slider_values(slider)
            if values is None:
                continue
            seconds = rescale_slider(values[0], values[1], self.state.duration)
            if seconds is not None and seconds >= 0:
                return ProgressReading(value=int(round(seconds)), source="slider")

        return choose_progress_token(parse_times(page.text_of(container)), self.state.duration)

    @staticmethod
    def _slider_values(node: Tag):
        value = _float_attr(node, "aria-valuenow", "value", "data-value")
        maximum = _float_attr(node, "aria-valuemax", "max", "data-max")
        if value is None or maximum is None or maximum <= 0:
            return None
        return value, maximum

    def _update_mode(self, reading: ProgressReading) -> None:
        if self.state.mode is not ProgressMode.UNSET or reading.source != "text":
            return
        if reading.negative:
            self.state.mode = ProgressMode.REMAINING
        elif self.state.last_progress is not None:
            if reading.value > self.state.last_progress:
                self.state.mode = ProgressMode.ELAPSED
            elif reading.value < self.state.last_progress:
                self.state.mode = ProgressMode.REMAINING
        if self.state.mode is not ProgressMode.UNSET:
            logger.debug(f"Progress mode: {self.state.mode.value}")

    def detect_elapsed(self, page: PageSnapshot) -> Optional[int]:
        media = page.media
        if media is not None and media.current_time is not None and math.isfinite(media.current_time) \
                and media.current_time >= 0:
            position = int(media.current_time)
            self.state.last_progress = position
            return position

        reading = self.read_progress(page)
        if reading is None:
            self._diagnose(page)
            return None

        self._update_mode(reading)
        self.state.last_progress = reading.value

        if reading.source == "slider" or self.state.mode is not ProgressMode.REMAINING:
            return reading.value
        duration = self.state.duration or reading.duration_hint
        if not duration:
            return None
        return max(duration - reading.value, 0)

    def extract_elapsed(self, page: PageSnapshot) -> Optional[int]:
        elapsed = self.detect_elapsed(page)
        if elapsed is None or elapsed == self.state.elapsed:
            return None
        self.state.elapsed = elapsed
        return elapsed

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def _diagnose(self, page: PageSnapshot) -> None:
        """Rate-limited dump of what the progress control looked like."""
        now = self._clock()
        if self._last_diagnostic is not None and now - self._last_diagnostic < self._diagnostic_interval:
            return
        self._last_diagnostic = now

        container = page.select_first(markup.PROGRESS_CONTAINER)
        sliders = page.select_all(markup.SLIDER_NODES, root=container) if container is not None else []
        logger.info(
            "Elapsed detection found no progress source: "
            f"media={'yes' if page.media else 'no'} "
            f"container={container.name if container is not None else None} "
            f"classes={container.get('class') if container is not None else None} "
            f"sliders={len(sliders)} "
            f"text={page.text_of(container)[:80]!r} "
            f"duration={self.state.duration} mode={self.state.mode.value}"
        )
