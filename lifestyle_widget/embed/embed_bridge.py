#=======================================================================================
# lifestyle_widget/embed/embed_bridge.py
# iframe ↔ parent height negotiation.
#
# Child side posts {type: "WIDGET_RESIZE", height} to the parent on load, on every view
# mutation and on resize. Parent side trusts only the widget's own origin and resizes the
# hosting iframe. There is no parent → child message.
#=======================================================================================
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlparse

from pydantic import ValidationError

from lifestyle_widget.config import settings
from lifestyle_widget.models.widget_models import RESIZE_MESSAGE_TYPE, WidgetResizeMessage
from lifestyle_widget.widget.widget_view import WidgetView

logger = logging.getLogger("uvicorn.error")

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_origin(url: str | None) -> str:
    """scheme://host[:port], lower-cased, default port dropped. '' when not an absolute URL."""
    try:
        p = urlparse((url or "").strip())
        port = p.port
    except ValueError:
        return ""
    if not p.scheme or not p.hostname:
        return ""
    scheme = p.scheme.lower()
    host = p.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is None or _DEFAULT_PORTS.get(scheme) == port:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


@dataclass(frozen=True)
class MessageEvent:
    origin: str
    data: Any


MessageListener = Callable[[MessageEvent], None]


class FrameWindow:
    """
    A window that can receive postMessage calls. Delivery follows browser rules:
    a message is dropped unless target_origin is "*" or matches this window's origin.
    """

    def __init__(self, origin: str):
        self.origin = normalize_origin(origin) or origin
        self._listeners: List[MessageListener] = []

    def add_message_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def post_message(self, data: Any, target_origin: str, source_origin: str) -> bool:
        if target_origin != "*" and normalize_origin(target_origin) != self.origin:
            logger.debug("[EMBED] message for %s not delivered to %s", target_origin, self.origin)
            return False
        event = MessageEvent(origin=source_origin, data=data)
        for listener in list(self._listeners):
            listener(event)
        return True


@dataclass
class IFrameElement:
    src: str
    style: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def height(self) -> Optional[str]:
        return self.style.get("height")


def build_embed_iframe(base_url: str | None, sku: str) -> IFrameElement:
    base = (base_url if base_url is not None else settings.WIDGET_BASE_URL).rstrip("/")
    return IFrameElement(
        src=f"{base}/widget?sku={quote(sku, safe='')}&embed=true",
        style={
            "width": "100%",
            "border": "none",
            "minHeight": "400px",
            "background": "transparent",
        },
        attributes={"scrolling": "no"},
    )


# ---------------------------------------------------------------------------
# Child side (inside the iframe)
# ---------------------------------------------------------------------------

class ChildFrameBridge:
    """
    Posts the widget root's height to the parent window.

    `post_message(message, target_origin)` delivers to the parent and
    `measure_height()` returns the root container's scroll height.
    With `coalesce=True` a burst of mutations inside one event-loop tick yields one post.
    """

    def __init__(
        self,
        post_message: Callable[[Dict[str, Any], str], Any],
        measure_height: Callable[[], float],
        target_origin: str = "*",
        coalesce: bool = False,
    ):
        self._post = post_message
        self._measure = measure_height
        self.target_origin = target_origin
        self.coalesce = coalesce
        self.last_height: Optional[float] = None
        self.posts = 0
        self._view: Optional[WidgetView] = None
        self._scheduled: Optional[asyncio.Handle] = None
        self._started = False

    def attach(self, view: WidgetView) -> None:
        """Observe a view the way a MutationObserver watches the document body."""
        self._view = view
        view.add_mutation_listener(self.on_mutation)

    def start(self) -> None:
        """The iframe finished loading: report the initial height."""
        self._started = True
        self.post_height()

    def stop(self) -> None:
        self._started = False
        if self._view is not None:
            self._view.remove_mutation_listener(self.on_mutation)
            self._view = None
        if self._scheduled is not None:
            self._scheduled.cancel()
            self._scheduled = None

    def on_mutation(self, kind: str = "childList") -> None:
        if not self._started:
            return
        if not self.coalesce:
            self.post_height()
            return
        if self._scheduled is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.post_height()
            return
        self._scheduled = loop.call_soon(self._flush)

    def on_resize(self) -> None:
        if self._started:
            self.post_height()

    def _flush(self) -> None:
        self._scheduled = None
        if self._started:
            self.post_height()

    def post_height(self) -> Optional[float]:
        try:
            height = float(self._measure())
        except Exception as e:
            logger.warning("[EMBED] could not measure widget height: %s", e)
            return None
        message = {"type": RESIZE_MESSAGE_TYPE, "height": height}
        try:
            self._post(message, self.target_origin)
        except Exception as e:
            logger.warning("[EMBED] postMessage to parent failed: %s", e)
            return None
        self.last_height = height
        self.posts += 1
        logger.debug("[EMBED] posted height=%s", height)
        return height


def child_resize_script(root_id: str = "widget-root") -> str:
    """
    Browser-side counterpart of ChildFrameBridge for the served embed document:
    posts the root's scrollHeight on load, on resize and on every DOM mutation.
    """
    message_type = json.dumps(RESIZE_MESSAGE_TYPE)
    root = json.dumps(root_id)
    return (
        "(function () {\n"
        "  function resizeFrame() {\n"
        f"    var root = document.getElementById({root});\n"
        "    if (!root || !window.parent || !window.parent.postMessage) return;\n"
        f"    window.parent.postMessage({{type: {message_type}, height: root.scrollHeight}}, \"*\");\n"
        "  }\n"
        "  window.addEventListener(\"load\", resizeFrame);\n"
        "  window.addEventListener(\"resize\", resizeFrame);\n"
        "  new MutationObserver(resizeFrame).observe(document.body, {\n"
        "    childList: true, subtree: true, attributes: true\n"
        "  });\n"
        "})();\n"
    )


# ---------------------------------------------------------------------------
# Parent side (host page)
# ---------------------------------------------------------------------------

class ParentFrameListener:
    """Resizes `iframe` on WIDGET_RESIZE messages from `widget_origin`; ignores everything else."""

    def __init__(self, iframe: IFrameElement, widget_origin: str | None = None):
        self.iframe = iframe
        self.widget_origin = normalize_origin(widget_origin if widget_origin is not None else settings.WIDGET_ORIGIN)

    def listen(self, window: FrameWindow) -> None:
        window.add_message_listener(self.handle_message)

    def handle_message(self, event: MessageEvent) -> bool:
        """Returns True when the iframe height was changed."""
        if not self.widget_origin or normalize_origin(event.origin) != self.widget_origin:
            logger.debug("[EMBED] rejected message from origin %r", event.origin)
            return False
        if not isinstance(event.data, dict) or event.data.get("type") != RESIZE_MESSAGE_TYPE:
            return False
        try:
            msg = WidgetResizeMessage.model_validate(event.data)
        except ValidationError as e:
            logger.debug("[EMBED] malformed resize message: %s", e)
            return False
        height = int(msg.height) if float(msg.height).is_integer() else msg.height
        self.iframe.style["height"] = f"{height}px"
        return True


def connect_frames(
    parent: FrameWindow,
    iframe: IFrameElement,
    widget_origin: str,
    view: WidgetView,
    coalesce: bool = False,
) -> tuple[ChildFrameBridge, ParentFrameListener]:
    """Wire a child bridge (running at `widget_origin`) to a listener on `parent`."""
    listener = ParentFrameListener(iframe, widget_origin)
    listener.listen(parent)
    source = normalize_origin(widget_origin) or widget_origin
    bridge = ChildFrameBridge(
        post_message=lambda message, target: parent.post_message(message, target, source),
        measure_height=view.scroll_height,
        target_origin="*",
        coalesce=coalesce,
    )
    bridge.attach(view)
    return bridge, listener
