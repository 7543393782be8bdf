#=======================================================================================
# lifestyle_widget/widget/widget_view.py
# The widget's DOM: renders loading / error / empty / grid markup into a container.
#=======================================================================================
from __future__ import annotations

import html
import logging
import math
from typing import Callable, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

from lifestyle_widget.models.widget_models import LikeState, Render

logger = logging.getLogger("uvicorn.error")

LOADING_MESSAGE = "Loading lifestyle images..."
ERROR_MESSAGE = "Failed to load lifestyle images"
EMPTY_MESSAGE = "No lifestyle images available"

HEART_PATH = (
    "M4.318 6.318a4.5 4.5 0 000 6.364L12 20.364l7.682-7.682a4.5 4.5 0 00-6.364-6.364"
    "L12 7.636l-1.318-1.318a4.5 4.5 0 00-6.364 0z"
)

# Layout constants of the widget stylesheet, used to estimate the rendered height
CONTAINER_WIDTH = 400
CONTAINER_PADDING = 16
GRID_GAP = 16
GRID_COLUMNS = 2
MESSAGE_PADDING = 40
LINE_HEIGHT = 20

# Listener signature: (kind) where kind is "childList" or "attributes"
MutationListener = Callable[[str], None]


def heart_icon(filled: bool = False) -> str:
    cls = "lifestyle-widget-heart filled" if filled else "lifestyle-widget-heart outline"
    return (
        f'<svg class="{cls}" viewBox="0 0 24 24" stroke="currentColor" stroke-width="2" '
        f'stroke-linecap="round" stroke-linejoin="round"><path d="{HEART_PATH}"></path></svg>'
    )


def _message(cls: str, text: str, testid: str) -> str:
    return f'<div class="{cls}" data-testid="{testid}">{html.escape(text)}</div>'


def _like_button(state: LikeState) -> str:
    rid = html.escape(state.render_id, quote=True)
    return (
        f'<button type="button" class="lifestyle-widget-like" data-render-id="{rid}" '
        f'aria-pressed="{"true" if state.liked else "false"}">'
        f'{heart_icon(state.liked)}'
        f'<span class="lifestyle-widget-count">{int(state.total)}</span>'
        f'</button>'
    )


def _item(render: Render, state: LikeState) -> str:
    rid = html.escape(render.id, quote=True)
    return (
        f'<div class="lifestyle-widget-item" data-render-id="{rid}">'
        f'<img src="{html.escape(render.image_url, quote=True)}" alt="{html.escape(render.alt_text, quote=True)}" '
        f'loading="lazy" data-render-id="{rid}"/>'
        f'{_like_button(state)}'
        f'</div>'
    )


class WidgetView:
    """
    What the state machine draws on. Subclasses only need `_render(markup)`.
    Every write notifies mutation listeners (the embed bridge watches these).
    """

    def __init__(self):
        self._listeners: List[MutationListener] = []
        self._disposed = False
        self.mode: Optional[str] = None
        self._rows = 0

    # ---- observation ----

    def add_mutation_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    def remove_mutation_listener(self, listener: MutationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, kind: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind)
            except Exception as e:
                logger.warning("[VIEW] mutation listener failed: %s", e)

    def dispose(self) -> None:
        self._disposed = True
        self._listeners.clear()

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ---- state renders ----

    def show_loading(self) -> None:
        self._write(_message("lifestyle-widget-loading", LOADING_MESSAGE, "loading-placeholder"), "loading")

    def show_error(self, message: str = ERROR_MESSAGE) -> None:
        self._write(_message("lifestyle-widget-error", message, "widget-error"), "error")

    def show_empty(self, message: str = EMPTY_MESSAGE) -> None:
        self._write(_message("lifestyle-widget-empty", message, "widget-empty"), "empty")

    def show_renders(self, renders: Iterable[Render], likes: Dict[str, LikeState]) -> None:
        renders = list(renders)
        items = "".join(_item(r, likes.get(r.id) or LikeState(r.id)) for r in renders)
        self._rows = math.ceil(len(renders) / GRID_COLUMNS)
        self._write(f'<div class="lifestyle-widget-grid" data-testid="widget-grid">{items}</div>', "ready")

    def update_like(self, state: LikeState) -> None:
        if self._disposed:
            return
        self._update_like(state)
        self._notify("attributes")

    # ---- hooks ----

    def _write(self, markup: str, mode: str) -> None:
        if self._disposed:
            logger.debug("[VIEW] write after dispose ignored (%s)", mode)
            return
        self.mode = mode
        self._render(markup)
        self._notify("childList")

    def _render(self, markup: str) -> None:
        raise NotImplementedError

    def _update_like(self, state: LikeState) -> None:
        raise NotImplementedError

    def scroll_height(self) -> int:
        """Estimated height of the rendered content in CSS pixels."""
        if self.mode is None:
            return 0
        if self.mode == "ready":
            rows = self._rows
            cell = (CONTAINER_WIDTH - 2 * CONTAINER_PADDING - GRID_GAP * (GRID_COLUMNS - 1)) // GRID_COLUMNS
            grid = rows * cell + max(rows - 1, 0) * GRID_GAP
            return grid + 2 * CONTAINER_PADDING
        return 2 * MESSAGE_PADDING + LINE_HEIGHT + 2 * CONTAINER_PADDING


class HtmlWidgetView(WidgetView):
    """
    Renders into a BeautifulSoup container element (when given) and keeps the
    container's inner HTML in `self.html`.
    """

    def __init__(self, container: Optional[Tag] = None):
        super().__init__()
        self.container = container
        self.html = ""

    def _render(self, markup: str) -> None:
        self.html = markup
        if self.container is not None:
            self.container.clear()
            fragment = BeautifulSoup(markup, "html.parser")
            for node in list(fragment.contents):
                self.container.append(node.extract())

    def _update_like(self, state: LikeState) -> None:
        if self.container is not None:
            button = self.container.find("button", attrs={"data-render-id": state.render_id})
            if isinstance(button, Tag):
                button.replace_with(BeautifulSoup(_like_button(state), "html.parser").button)
            self.html = self.container.decode_contents()
            return
        soup = BeautifulSoup(self.html, "html.parser")
        button = soup.find("button", attrs={"data-render-id": state.render_id})
        if isinstance(button, Tag):
            button.replace_with(BeautifulSoup(_like_button(state), "html.parser").button)
        self.html = str(soup)

    def like_count(self, render_id: str) -> Optional[int]:
        """Displayed like count for a render (None when not on screen)."""
        soup = BeautifulSoup(self.html, "html.parser")
        button = soup.find("button", attrs={"data-render-id": render_id})
        if not isinstance(button, Tag):
            return None
        span = button.find("span", class_="lifestyle-widget-count")
        try:
            return int(span.get_text(strip=True)) if isinstance(span, Tag) else None
        except ValueError:
            return None

    def is_liked(self, render_id: str) -> Optional[bool]:
        soup = BeautifulSoup(self.html, "html.parser")
        button = soup.find("button", attrs={"data-render-id": render_id})
        if not isinstance(button, Tag):
            return None
        return button.get("aria-pressed") == "true"

    def text(self) -> str:
        return BeautifulSoup(self.html, "html.parser").get_text(" ", strip=True)
