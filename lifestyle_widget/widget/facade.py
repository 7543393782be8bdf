#=======================================================================================
# lifestyle_widget/widget/facade.py
# Host integration handle: init() auto-mounts on a product page, load() mounts a given
# SKU into a given container. Passed around explicitly instead of living on `window`.
#=======================================================================================
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from bs4 import Tag

from lifestyle_widget.api.widget_api import WidgetApiClient
from lifestyle_widget.config import settings
from lifestyle_widget.session.session_identity import get_session_id
from lifestyle_widget.session.storage import Storage
from lifestyle_widget.sku.sku_resolver import (
    HostPage,
    MOUNT_ATTR,
    MOUNT_SKU_ATTR,
    SKU_SOURCES,
    clean_sku,
    detect_sku,
)
from lifestyle_widget.widget.lifestyle_widget import LifestyleWidget
from lifestyle_widget.widget.widget_view import HtmlWidgetView

logger = logging.getLogger("uvicorn.error")

DEFAULT_CONTAINER_ID = "lifestyle-widget"


def container_id_for(sku: str) -> str:
    return f"lifestyle-widget-{sku}"


class LifestyleWidgetFacade:
    def __init__(
        self,
        page: HostPage,
        api: Optional[WidgetApiClient] = None,
        storage: Optional[Storage] = None,
        target_selectors: Optional[List[str]] = None,
        **widget_options,
    ):
        self.page = page
        self.api = api or WidgetApiClient()
        self.storage = storage
        self.target_selectors = target_selectors or list(settings.WIDGET_TARGET_SELECTORS)
        self.widget_options = widget_options
        self.mounted: Dict[str, LifestyleWidget] = {}

    def _find_target(self) -> Optional[Tag]:
        for selector in self.target_selectors:
            try:
                el = self.page.soup.select_one(selector)
            except Exception as e:
                logger.debug("[WIDGET] bad target selector %r: %s", selector, e)
                continue
            if isinstance(el, Tag):
                return el
        return None

    async def init(self) -> List[LifestyleWidget]:
        """
        Auto-mount on the host page.

        Explicit `[data-lifestyle-widget]` containers each get a widget (their own data-sku
        wins over the detected SKU). Otherwise an existing #lifestyle-widget element is used,
        and failing that a container is appended to the first matching target element.
        Returns the widgets that were mounted (possibly none).
        """
        containers = [c for c in self.page.soup.find_all(attrs={MOUNT_ATTR: True}) if isinstance(c, Tag)]
        if containers:
            return await self._init_containers(containers)

        widgets: List[LifestyleWidget] = []
        sku, source = detect_sku(self.page)
        if not sku:
            logger.warning("[WIDGET] Could not detect SKU for lifestyle widget")
            return widgets

        if isinstance(self.page.soup.find(id=DEFAULT_CONTAINER_ID), Tag):
            logger.info("[WIDGET] mounting sku=%s (via %s) into #%s", sku, source, DEFAULT_CONTAINER_ID)
            widget = await self.load(sku, DEFAULT_CONTAINER_ID)
            return [widget] if widget is not None else widgets

        target = self._find_target()
        if target is None:
            logger.warning("[WIDGET] Could not find suitable element to insert lifestyle widget")
            return widgets

        cid = container_id_for(sku)
        if self.page.soup.find(id=cid) is None:
            container = self.page.soup.new_tag("div", attrs={"id": cid, "class": "lifestyle-widget-container"})
            target.append(container)
        logger.info("[WIDGET] mounting sku=%s (via %s) into #%s", sku, source, cid)
        widget = await self.load(sku, cid)
        if widget is not None:
            widgets.append(widget)
        return widgets

    async def _init_containers(self, containers: List[Tag]) -> List[LifestyleWidget]:
        # one container's data-sku must not leak into its siblings
        page_sku = (self.page.explicit_sku or "").strip() or detect_sku(self.page, SKU_SOURCES[1:])[0]
        widgets: List[LifestyleWidget] = []
        for n, container in enumerate(containers):
            container_sku = clean_sku(container.get(MOUNT_SKU_ATTR)) or page_sku
            if not container_sku:
                logger.warning("[WIDGET] Could not detect SKU for lifestyle widget container #%d", n)
                continue
            if not container.get("id"):
                container["id"] = f"{container_id_for(container_sku)}-{n}"
            widget = await self.load(container_sku, container["id"])
            if widget is not None:
                widgets.append(widget)
        return widgets

    async def load(self, sku: str, container_id: str) -> Optional[LifestyleWidget]:
        """Mount a fresh widget for `sku` into the element with id `container_id`."""
        if not sku:
            logger.warning("[WIDGET] load called without a SKU")
            return None
        container = self.page.soup.find(id=container_id)
        if not isinstance(container, Tag):
            logger.error("[WIDGET] Widget container not found: %s", container_id)
            return None

        previous = self.mounted.pop(container_id, None)
        if previous is not None:
            previous.unmount()

        widget = LifestyleWidget(
            sku=sku,
            view=HtmlWidgetView(container),
            session_id=get_session_id(self.storage),
            api=self.api,
            **self.widget_options,
        )
        self.mounted[container_id] = widget
        await widget.mount()
        return widget

    def unmount_all(self) -> None:
        for widget in self.mounted.values():
            widget.unmount()
        self.mounted.clear()
