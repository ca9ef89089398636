"""
Chrome DevTools Protocol page source

Attaches to a running Chrome/Electron instance started with
--remote-debugging-port and exposes the karaoke tab as a PageSource.

    targets:   GET <cdp_url>/json (requests)
    transport: synchronous websocket (websocket-client)
    capture:   Runtime.evaluate returning the serialized document
    mutations: an in-page MutationObserver calling a Runtime binding;
               binding calls arrive as Runtime.bindingCalled events and
               are delivered by pump()

Usage:
    connection = CdpConnection(find_page_ws_url("http://127.0.0.1:9222", "karaoke"))
    connection.connect()
    page = ChromePage(connection)
    page.observe(print)
    while True:
        page.pump()
"""

import json
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

import requests
import websocket

from .media_session import ActionHandler, MediaMetadata, MediaSession, TransportAction
from .page import (
    MediaState,
    MutationCallback,
    MutationKind,
    PageSnapshot,
    PageSource,
    PageUnavailableError,
    Subscription,
)

logger = logging.getLogger(__name__)

MUTATION_BINDING = "__knMutation"
MEDIA_ACTION_BINDING = "__knMediaAction"


class CdpError(Exception):
    """Protocol or transport failure talking to the browser."""


# =============================================================================
# PAGE SCRIPTS
# =============================================================================

# Clone the tree so live input values can be written into attributes
# without touching the page itself.
CAPTURE_SCRIPT = """
(() => {
  const root = document.documentElement.cloneNode(true);
  const live = document.querySelectorAll('input');
  const copies = root.querySelectorAll('input');
  live.forEach((el, i) => { if (copies[i]) copies[i].setAttribute('value', el.value); });
  const media = document.querySelector('audio, video');
  return {
    html: root.outerHTML,
    url: location.href,
    title: document.title,
    media: media ? {
      paused: media.paused,
      duration: isFinite(media.duration) ? media.duration : null,
      currentTime: isFinite(media.currentTime) ? media.currentTime : null
    } : null,
    observing: !!window.__knObserver
  };
})()
"""

OBSERVE_SCRIPT = """
(() => {
  if (window.__knObserver) return true;
  const send = (kind) => { try { window.%(binding)s(kind); } catch (e) {} };
  const inTitle = (node) => {
    for (let n = node; n; n = n.parentNode) { if (n.nodeName === 'TITLE') return true; }
    return false;
  };
  const observer = new MutationObserver((records) => {
    send(records.some((r) => inTitle(r.target)) ? 'title' : 'tree');
  });
  observer.observe(document, {subtree: true, childList: true, characterData: true, attributes: true});
  const onMedia = () => send('media');
  const events = ['play', 'pause', 'durationchange', 'loadedmetadata', 'seeked', 'ended'];
  events.forEach((name) => document.addEventListener(name, onMedia, true));
  window.__knObserver = {observer, onMedia, events};
  return true;
})()
""" % {"binding": MUTATION_BINDING}

DISCONNECT_SCRIPT = """
(() => {
  const state = window.__knObserver;
  if (!state) return false;
  state.observer.disconnect();
  state.events.forEach((name) => document.removeEventListener(name, state.onMedia, true));
  delete window.__knObserver;
  return true;
})()
"""

CLICK_SCRIPT = """
((selector) => {
  const el = document.querySelector(selector);
  if (!el) return false;
  el.click();
  return true;
})(%s)
"""

MEDIA_SCRIPT = """
((command, value) => {
  const media = document.querySelector('audio, video');
  if (!media) return false;
  if (command === 'play') { media.play(); }
  else if (command === 'pause') { media.pause(); }
  else if (command === 'seek_by') {
    const end = isFinite(media.duration) ? media.duration : Infinity;
    media.currentTime = Math.max(0, Math.min(media.currentTime + value, end));
  }
  else if (command === 'seek_to') { media.currentTime = Math.max(0, value); }
  else { return false; }
  return true;
})(%s, %s)
"""

ACTION_HANDLER_SCRIPT = """
(() => {
  navigator.mediaSession.setActionHandler(%(action)s, (details) => {
    window.%(binding)s(JSON.stringify({action: %(action)s, seekOffset: (details || {}).seekOffset || null}));
  });
  return true;
})()
"""

MEDIA_COMMANDS = ("play", "pause", "seek_by", "seek_to")


# =============================================================================
# DISCOVERY
# =============================================================================

def list_targets(cdp_url: str, timeout: float = 5.0) -> List[Dict[str, Any]]:
    try:
        response = requests.get(f"{cdp_url.rstrip('/')}/json", timeout=timeout)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as e:
        raise CdpError(f"Cannot list DevTools targets at {cdp_url}: {e}") from e


def find_page_ws_url(cdp_url: str, hint: str = "", timeout: float = 5.0) -> str:
    """
    WebSocket debugger URL of the page whose url or title contains hint,
    else of the first page.
    """
    pages = [t for t in list_targets(cdp_url, timeout) if t.get("type") == "page"]
    pages = [t for t in pages if t.get("webSocketDebuggerUrl")]
    if not pages:
        raise CdpError(f"No debuggable pages at {cdp_url}")
    needle = hint.lower()
    if needle:
        for target in pages:
            if needle in target.get("url", "").lower() or needle in target.get("title", "").lower():
                return target["webSocketDebuggerUrl"]
        logger.warning(f"No page matching '{hint}', using {pages[0].get('url')}")
    return pages[0]["webSocketDebuggerUrl"]


# =============================================================================
# CONNECTION
# =============================================================================

class CdpConnection:
    """
    Request/response over one DevTools websocket.

    Events received while waiting for a response are queued and handed
    out by poll().
    """

    def __init__(self, ws_url: str, timeout: float = 5.0, poll_timeout: float = 0.01):
        self.ws_url = ws_url
        self._timeout = timeout
        self._poll_timeout = poll_timeout
        self._ws = None
        self._next_id = 0
        self._events: Deque[Dict[str, Any]] = deque()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def connect(self) -> None:
        try:
            self._ws = websocket.create_connection(self.ws_url, timeout=self._timeout)
        except (websocket.WebSocketException, OSError) as e:
            raise CdpError(f"Cannot connect to {self.ws_url}: {e}") from e
        logger.info(f"Connected to {self.ws_url}")

    def close(self) -> None:
        if self._ws is None:
            return
        try:
            self._ws.close()
        except (websocket.WebSocketException, OSError) as e:
            logger.debug(f"Error closing websocket: {e}")
        self._ws = None

    def _require(self):
        if self._ws is None:
            raise CdpError("Not connected")
        return self._ws

    def _receive(self, timeout: float) -> Optional[Dict[str, Any]]:
        ws = self._require()
        try:
            ws.settimeout(timeout)
            raw = ws.recv()
        except websocket.WebSocketTimeoutException:
            return None
        except (websocket.WebSocketException, OSError) as e:
            self._ws = None
            raise CdpError(f"Connection lost: {e}") from e
        try:
            return json.loads(raw)
        except ValueError:
            logger.debug(f"Ignoring non-JSON frame: {raw!r:.80}")
            return None

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ws = self._require()
        self._next_id += 1
        message_id = self._next_id
        try:
            ws.send(json.dumps({"id": message_id, "method": method, "params": params or {}}))
        except (websocket.WebSocketException, OSError) as e:
            self._ws = None
            raise CdpError(f"Connection lost: {e}") from e

        while True:
            message = self._receive(self._timeout)
            if message is None:
                raise CdpError(f"Timed out waiting for {method}")
            if message.get("id") == message_id:
                if "error" in message:
                    raise CdpError(message["error"].get("message", str(message["error"])))
                return message.get("result", {})
            if "method" in message:
                self._events.append(message)

    def poll(self) -> List[Dict[str, Any]]:
        """Queued events plus whatever arrived since, without blocking."""
        while True:
            message = self._receive(self._poll_timeout)
            if message is None:
                break
            if "method" in message:
                self._events.append(message)
        events = list(self._events)
        self._events.clear()
        return events

    def evaluate(self, expression: str) -> Any:
        result = self.call("Runtime.evaluate", {"expression": expression, "returnByValue": True})
        if "exceptionDetails" in result:
            details = result["exceptionDetails"]
            text = details.get("exception", {}).get("description") or details.get("text", "error")
            raise CdpError(f"Script failed: {text}")
        return result.get("result", {}).get("value")


# =============================================================================
# PAGE SOURCE
# =============================================================================

class _PageSubscription(Subscription):
    def __init__(self, page: "ChromePage", callback: MutationCallback):
        self._page = page
        self._callback: Optional[MutationCallback] = callback

    @property
    def connected(self) -> bool:
        return self._callback is not None

    def disconnect(self) -> None:
        if self._callback is None:
            return
        self._page._remove_observer(self._callback)
        self._callback = None


class ChromePage(PageSource):
    """The live tab, read through CDP."""

    def __init__(self, connection: CdpConnection):
        self._connection = connection
        self._observers: List[MutationCallback] = []
        self._bindings: Dict[str, Callable[[str], None]] = {}
        self._reload_hooks: List[Callable[[], None]] = []

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    def capture(self) -> PageSnapshot:
        try:
            data = self._connection.evaluate(CAPTURE_SCRIPT)
        except CdpError as e:
            raise PageUnavailableError(str(e)) from e
        if not isinstance(data, dict):
            raise PageUnavailableError("Capture returned no document")

        if self._observers and not data.get("observing"):
            # fresh document after a reload or navigation
            logger.info("Page reloaded, re-installing observers")
            self._install_observer()
            for hook in list(self._reload_hooks):
                hook()

        media = data.get("media")
        return PageSnapshot(
            data.get("html", ""),
            url=data.get("url", ""),
            title=data.get("title"),
            media=MediaState(
                paused=media.get("paused"),
                duration=media.get("duration"),
                current_time=media.get("currentTime"),
            ) if isinstance(media, dict) else None,
        )

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def observe(self, callback: MutationCallback) -> Subscription:
        if not self._observers:
            self.bind(MUTATION_BINDING, self._on_mutation)
            self._install_observer()
        self._observers.append(callback)
        return _PageSubscription(self, callback)

    def _install_observer(self) -> None:
        try:
            self._connection.evaluate(OBSERVE_SCRIPT)
        except CdpError as e:
            logger.warning(f"Failed to install mutation observer: {e}")

    def _remove_observer(self, callback: MutationCallback) -> None:
        if callback in self._observers:
            self._observers.remove(callback)
        if self._observers or not self._connection.is_connected:
            return
        try:
            self._connection.evaluate(DISCONNECT_SCRIPT)
        except CdpError as e:
            logger.debug(f"Observer teardown in page failed: {e}")

    def _on_mutation(self, payload: str) -> None:
        try:
            kind = MutationKind(payload)
        except ValueError:
            kind = MutationKind.TREE
        for callback in list(self._observers):
            callback(kind)

    def bind(self, name: str, handler: Callable[[str], None]) -> None:
        """Expose window.<name>(payload) to the page; calls reach handler via pump()."""
        if name not in self._bindings:
            self._connection.call("Runtime.addBinding", {"name": name})
        self._bindings[name] = handler

    def add_reload_hook(self, hook: Callable[[], None]) -> None:
        self._reload_hooks.append(hook)

    def pump(self) -> int:
        """Deliver pending binding calls. Returns how many were delivered."""
        delivered = 0
        for event in self._connection.poll():
            if event.get("method") != "Runtime.bindingCalled":
                continue
            params = event.get("params", {})
            handler = self._bindings.get(params.get("name"))
            if handler is None:
                continue
            handler(params.get("payload", ""))
            delivered += 1
        return delivered

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def click(self, selector: str) -> bool:
        try:
            return bool(self._connection.evaluate(CLICK_SCRIPT % json.dumps(selector)))
        except CdpError as e:
            logger.warning(f"Click on {selector} failed: {e}")
            return False

    def media_control(self, command: str, value: Optional[float] = None) -> bool:
        if command not in MEDIA_COMMANDS:
            raise ValueError(f"Unknown media command: {command}")
        script = MEDIA_SCRIPT % (json.dumps(command), json.dumps(float(value or 0.0)))
        try:
            return bool(self._connection.evaluate(script))
        except CdpError as e:
            logger.warning(f"Media command {command} failed: {e}")
            return False

    def evaluate(self, expression: str) -> Any:
        return self._connection.evaluate(expression)


# =============================================================================
# MEDIA SESSION
# =============================================================================

class BrowserMediaSession(MediaSession):
    """
    navigator.mediaSession of the page; the browser forwards it to the OS.

    Action handlers call back through a binding, so they only fire while
    the host pumps the page. Handlers and metadata are re-applied after
    a reload.
    """

    def __init__(self, page: ChromePage):
        self._page = page
        self._handlers: Dict[TransportAction, ActionHandler] = {}
        self._metadata: Optional[MediaMetadata] = None
        self._bound = False
        page.add_reload_hook(self._restore)

    def set_action_handler(self, action: TransportAction, handler: ActionHandler) -> None:
        if not self._bound:
            self._page.bind(MEDIA_ACTION_BINDING, self._on_action)
            self._bound = True
        self._page.evaluate(ACTION_HANDLER_SCRIPT % {
            "action": json.dumps(action.value),
            "binding": MEDIA_ACTION_BINDING,
        })
        self._handlers[action] = handler

    def set_metadata(self, metadata: MediaMetadata) -> None:
        artwork = []
        for image in metadata.artwork:
            entry = {"src": image.src, "sizes": image.sizes}
            if image.type:
                entry["type"] = image.type
            artwork.append(entry)
        payload = {"title": metadata.title, "artist": metadata.artist, "artwork": artwork}
        self._page.evaluate(f"navigator.mediaSession.metadata = new MediaMetadata({json.dumps(payload)}); true")
        self._metadata = metadata

    def set_playback_state(self, playing: bool) -> None:
        state = "playing" if playing else "paused"
        self._page.evaluate(f"navigator.mediaSession.playbackState = {json.dumps(state)}; true")

    def set_position_state(self, duration: float, position: float) -> None:
        payload = {"duration": duration, "position": position, "playbackRate": 1.0}
        self._page.evaluate(f"navigator.mediaSession.setPositionState({json.dumps(payload)}); true")

    def _on_action(self, payload: str) -> None:
        try:
            data = json.loads(payload)
            action = TransportAction(data.get("action"))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Bad media action payload {payload!r}: {e}")
            return
        handler = self._handlers.get(action)
        if handler is None:
            return
        details = {"seekOffset": data["seekOffset"]} if data.get("seekOffset") else {}
        logger.debug(f"Media action: {action.value} {details}")
        handler(details)

    def _restore(self) -> None:
        for action, handler in list(self._handlers.items()):
            try:
                self.set_action_handler(action, handler)
            except CdpError as e:
                logger.warning(f"Failed to restore media action '{action.value}': {e}")
        if self._metadata is not None:
            try:
                self.set_metadata(self._metadata)
            except CdpError as e:
                logger.warning(f"Failed to restore media metadata: {e}")
