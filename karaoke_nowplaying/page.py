"""
Page Abstraction

The live document tree is external and read-only from the detector's
point of view. Each detection pass captures a PageSnapshot and queries it;
nothing about the tree's shape is cached between passes.

Interface:
    PageSource.capture() -> PageSnapshot
    PageSource.observe(callback) -> Subscription
    PageSource.click(selector) -> bool
    PageSource.media_control(command, value) -> bool
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


class PageUnavailableError(Exception):
    """The page could not be read (browser gone, target closed, ...)."""


class MutationKind(str, Enum):
    TREE = "tree"
    TITLE = "title"
    MEDIA = "media"


MutationCallback = Callable[[MutationKind], None]


# =============================================================================
# SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class MediaState:
    """State of the page's first audio/video element."""
    paused: Optional[bool] = None
    duration: Optional[float] = None
    current_time: Optional[float] = None


class PageSnapshot:
    """
    One capture of the document tree.

    The HTML is parsed lazily; url, title and media state come from the
    capture itself since they are not part of the markup.
    """

    def __init__(
        self,
        html: str,
        url: str = "",
        title: Optional[str] = None,
        media: Optional[MediaState] = None,
    ):
        self.html = html or ""
        self.url = url or ""
        self.media = media
        self._title = title
        self._soup: Optional[BeautifulSoup] = None

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, "html.parser")
        return self._soup

    @property
    def title(self) -> str:
        """Document title; falls back to the <title> element."""
        if self._title is not None:
            return self._title
        node = self.soup.find("title")
        return node.get_text(strip=True) if node else ""

    def select_first(self, selectors: Iterable[str], root: Optional[Tag] = None) -> Optional[Tag]:
        """First element matching any selector, in selector priority order."""
        scope = root if root is not None else self.soup
        for selector in selectors:
            node = scope.select_one(selector)
            if node is not None:
                return node
        return None

    def select_all(self, selectors: Iterable[str], root: Optional[Tag] = None) -> List[Tag]:
        """All elements matching any selector, without duplicates."""
        scope = root if root is not None else self.soup
        found: List[Tag] = []
        seen = set()
        for selector in selectors:
            for node in scope.select(selector):
                if id(node) not in seen:
                    seen.add(id(node))
                    found.append(node)
        return found

    @staticmethod
    def text_of(node: Optional[Tag]) -> str:
        if node is None:
            return ""
        return " ".join(node.get_text(" ", strip=True).split())


# =============================================================================
# PAGE SOURCES
# =============================================================================

class Subscription(ABC):
    """Handle for a mutation observer. disconnect() must be idempotent."""

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @property
    @abstractmethod
    def connected(self) -> bool:
        pass


class PageSource(ABC):
    """The live page as seen by the detector and the OS adapter."""

    @abstractmethod
    def capture(self) -> PageSnapshot:
        """Capture the current tree. Raises PageUnavailableError."""

    @abstractmethod
    def observe(self, callback: MutationCallback) -> Subscription:
        """Deliver mutation notifications to callback until disconnected."""

    @abstractmethod
    def click(self, selector: str) -> bool:
        """Simulate a click on the first match. False when nothing matched."""

    @abstractmethod
    def media_control(self, command: str, value: Optional[float] = None) -> bool:
        """
        Drive the media element directly.

        Commands: "play", "pause", "seek_by" (value = delta seconds),
        "seek_to" (value = position). False when there is no media element.
        """

    def click_first(self, selectors: Iterable[str]) -> bool:
        for selector in selectors:
            if self.click(selector):
                return True
        return False


class _ListSubscription(Subscription):
    def __init__(self, callbacks: List[MutationCallback], callback: MutationCallback):
        self._callbacks = callbacks
        self._callback: Optional[MutationCallback] = callback
        callbacks.append(callback)

    @property
    def connected(self) -> bool:
        return self._callback is not None

    def disconnect(self) -> None:
        if self._callback is None:
            return
        if self._callback in self._callbacks:
            self._callbacks.remove(self._callback)
        self._callback = None


class StaticPage(PageSource):
    """
    In-memory page, used for offline replay of saved HTML.

    load() swaps the content and notifies observers the way a live page
    would: a tree mutation always, a title mutation when the title changed.
    load(..., notify=False) models a change the observer missed.
    Clicks and media commands are recorded rather than performed.
    """

    def __init__(self, html: str = "", url: str = "", title: Optional[str] = None,
                 media: Optional[MediaState] = None):
        self._snapshot = PageSnapshot(html, url=url, title=title, media=media)
        self._callbacks: List[MutationCallback] = []
        self.clicks: List[str] = []
        self.media_commands: List[tuple] = []

    @property
    def observer_count(self) -> int:
        return len(self._callbacks)

    def capture(self) -> PageSnapshot:
        return self._snapshot

    def load(self, html: str, url: Optional[str] = None, title: Optional[str] = None,
             media: Optional[MediaState] = None, notify: bool = True) -> None:
        old_title = self._snapshot.title
        self._snapshot = PageSnapshot(
            html,
            url=self._snapshot.url if url is None else url,
            title=title,
            media=media,
        )
        if not notify:
            return
        if self._snapshot.title != old_title:
            self.notify(MutationKind.TITLE)
        self.notify(MutationKind.TREE)

    def notify(self, kind: MutationKind) -> None:
        for callback in list(self._callbacks):
            callback(kind)

    def observe(self, callback: MutationCallback) -> Subscription:
        return _ListSubscription(self._callbacks, callback)

    def click(self, selector: str) -> bool:
        if self._snapshot.soup.select_one(selector) is None:
            return False
        self.clicks.append(selector)
        return True

    def media_control(self, command: str, value: Optional[float] = None) -> bool:
        if self._snapshot.media is None:
            return False
        self.media_commands.append((command, value))
        return True
