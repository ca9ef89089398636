"""
Karaoke Now-Playing - Host application and CLI

Wires the pieces together:
    ChromePage (CDP) -> NowPlayingDetector -> OSC / JSON lines / media session

Usage:
    karaoke-nowplaying run [--jsonl] [--no-media-session]
    karaoke-nowplaying inspect saved-page.html [--url URL]
    python -m karaoke_nowplaying ...
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from .cdp import BrowserMediaSession, CdpConnection, CdpError, ChromePage, find_page_ws_url
from .channels import EventChannel, JsonLinesChannel, OscEventChannel
from .config import AppConfig, load_config
from .detector import NowPlayingDetector
from .extractors import PlaybackExtractor, PlaylistExtractor, TimingExtractor, TitleExtractor
from .extractors.playlist import artwork_url, song_url
from .media_session import MediaSessionAdapter
from .page import StaticPage
from .timetext import format_seconds

logger = logging.getLogger(__name__)


class NowPlayingApp:
    """Owns the browser connection, the channels and the detector."""

    def __init__(self, config: AppConfig, loop: asyncio.AbstractEventLoop, jsonl: bool = False):
        self.config = config
        self._loop = loop
        self._jsonl = jsonl

        self.connection: Optional[CdpConnection] = None
        self.page: Optional[ChromePage] = None
        self.detector: Optional[NowPlayingDetector] = None
        self.adapter: Optional[MediaSessionAdapter] = None
        self.channels: List[EventChannel] = []
        self._pump_timer: Optional[asyncio.TimerHandle] = None
        self._started = False

        # Called once when the app stops on its own (browser went away)
        self.on_lost: Optional[Callable[[], None]] = None

    @property
    def is_started(self) -> bool:
        return self._started

    def start(self) -> bool:
        if self._started:
            return True
        browser = self.config.browser
        try:
            ws_url = find_page_ws_url(browser.cdp_url, browser.page_hint, browser.timeout)
            self.connection = CdpConnection(ws_url, timeout=browser.timeout)
            self.connection.connect()
        except CdpError as e:
            logger.error(f"Cannot attach to the browser: {e}")
            return False

        self.page = ChromePage(self.connection)
        self.channels = self._build_channels()
        self.detector = NowPlayingDetector(self.page, self.channels, self._loop, self.config.detector)

        if self.config.media_session.enabled:
            self.adapter = MediaSessionAdapter(
                BrowserMediaSession(self.page), self.page, seek_offset=self.config.detector.seek_offset
            )
            self.adapter.register_handlers()
            self.detector.add_channel(self.adapter)

        try:
            self.detector.start()
        except CdpError as e:
            logger.error(f"Cannot observe the page: {e}")
            self.stop()
            return False

        self._started = True
        self._schedule_pump()
        logger.info("Karaoke now-playing started")
        return True

    def _build_channels(self) -> List[EventChannel]:
        channels: List[EventChannel] = []
        if self.config.osc.enabled:
            osc = OscEventChannel(self.config.osc)
            if osc.start():
                channels.append(osc)
        if self._jsonl:
            channels.append(JsonLinesChannel())
        return channels

    def _schedule_pump(self) -> None:
        self._pump_timer = self._loop.call_later(self.config.browser.pump_interval, self._pump)

    def _pump(self) -> None:
        self._pump_timer = None
        if not self._started or self.page is None:
            return
        try:
            self.page.pump()
        except CdpError as e:
            logger.error(f"Lost the browser: {e}")
            self.stop()
            if self.on_lost:
                self.on_lost()
            return
        self._schedule_pump()

    def stop(self) -> None:
        if self._pump_timer is not None:
            self._pump_timer.cancel()
            self._pump_timer = None
        if self.detector is not None:
            self.detector.stop()
        for channel in self.channels:
            channel.close()
        self.channels = []
        if self.connection is not None:
            self.connection.close()
        if self._started:
            logger.info("Karaoke now-playing stopped")
        self._started = False

    def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "started": self._started,
            "connected": bool(self.connection and self.connection.is_connected),
            "channels": [type(c).__name__ for c in self.channels],
        }
        if self.detector is not None:
            status["detector"] = self.detector.get_status()
        return status


# =============================================================================
# COMMANDS
# =============================================================================

async def run_app(config: AppConfig, jsonl: bool = False) -> int:
    loop = asyncio.get_running_loop()
    stopped = asyncio.Event()

    app = NowPlayingApp(config, loop, jsonl=jsonl)
    app.on_lost = stopped.set

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopped.set)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(stopped.set))

    if not app.start():
        return 1
    try:
        await stopped.wait()
        logger.info("Shutting down...")
    finally:
        app.stop()
    return 0


def inspect_page(html: str, url: str = "") -> Dict[str, Any]:
    """Run every extractor once over a saved page."""
    page = StaticPage(html, url=url).capture()
    timing = TimingExtractor()
    timing.state.duration = timing.detect_duration(page)
    reading = timing.read_progress(page)
    info = TitleExtractor().detect(page)
    return {
        "title": info.title if info else None,
        "artist": info.artist if info else None,
        "playback": PlaybackExtractor().detect(page).value,
        "duration": timing.state.duration,
        "progress": reading.value if reading else None,
        "progress_source": reading.source if reading else None,
        "progress_negative": reading.negative if reading else None,
        "playlist_id": PlaylistExtractor().extract(page),
        "album_art": artwork_url(page),
        "song_url": song_url(page),
    }


def render_inspection(result: Dict[str, Any], console: Optional[Console] = None) -> Table:
    table = Table(title="Now playing (saved page)", box=box.ROUNDED, title_style="bold cyan")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    def show(value: Any) -> str:
        return "[dim]-[/dim]" if value is None or value == "" else str(value)

    table.add_row("Title", show(result["title"]))
    table.add_row("Artist", show(result["artist"]))
    table.add_row("Playback", show(result["playback"]))
    table.add_row("Duration", format_seconds(result["duration"]))
    progress = result["progress"]
    if progress is not None:
        sign = "-" if result["progress_negative"] else ""
        table.add_row("Progress", f"{sign}{format_seconds(progress)} ({result['progress_source']})")
    else:
        table.add_row("Progress", show(None))
    table.add_row("Playlist", show(result["playlist_id"]))
    table.add_row("Album art", show(result["album_art"]))
    table.add_row("Song URL", show(result["song_url"]))

    (console or Console()).print(table)
    return table


def _inspect_command(args) -> int:
    path = Path(args.file)
    try:
        html = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.error(f"Cannot read {path}: {e}")
        return 1
    render_inspection(inspect_page(html, url=args.url or ""))
    return 0


def _run_command(args) -> int:
    config = load_config(Path(args.config) if args.config else None)
    if args.cdp_url:
        config.browser.cdp_url = args.cdp_url
    if args.no_osc:
        config.osc.enabled = False
    if args.no_media_session:
        config.media_session.enabled = False
    try:
        return asyncio.run(run_app(config, jsonl=args.jsonl))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="karaoke-nowplaying",
        description="Karaoke Now-Playing - publish what the karaoke player is playing",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.set_defaults(command="run", config=None, cdp_url=None, jsonl=False, no_osc=False, no_media_session=False)
    commands = parser.add_subparsers(dest="command")

    run = commands.add_parser("run", help="Attach to the browser and publish changes (default)")
    run.add_argument("--config", help="YAML config file")
    run.add_argument("--cdp-url", help="DevTools endpoint, e.g. http://127.0.0.1:9222")
    run.add_argument("--jsonl", action="store_true", help="Also write events as JSON lines to stdout")
    run.add_argument("--no-osc", action="store_true", help="Do not send OSC")
    run.add_argument("--no-media-session", action="store_true", help="Do not mirror into the OS media session")

    inspect = commands.add_parser("inspect", help="Run the extractors over a saved page")
    inspect.add_argument("file", help="Saved HTML file")
    inspect.add_argument("--url", help="Address the page was saved from")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "inspect":
        return _inspect_command(args)
    return _run_command(args)


if __name__ == "__main__":
    sys.exit(main())
