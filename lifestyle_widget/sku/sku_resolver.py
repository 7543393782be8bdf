#=======================================================================================
# lifestyle_widget/sku/sku_resolver.py
# Works out which product SKU a host page is showing.
#
# The host page is not ours: every source below is a best-effort heuristic over
# untrusted markup. Sources are tried in a fixed order (strongest signal first) and
# the first non-empty value wins. A source that blows up counts as "no signal".
#=======================================================================================
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Iterable, Iterator, Optional
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger("uvicorn.error")

MOUNT_ATTR = "data-lifestyle-widget"
MOUNT_SKU_ATTR = "data-sku"

# Inline <script> patterns, tried in this order
_SCRIPT_SKU_KEY_RE = re.compile(r"""["']?\bsku["']?\s*:\s*["']([^"'\\]*)["']""")
_SCRIPT_VARIANT_SKU_RE = re.compile(r"""variants\s*\[\s*0\s*\]\s*\.\s*sku\s*=\s*["']([^"'\\]*)["']""")

RETAILER_ITEM_META = ("product:retailer_item_id", "og:retailer_item_id")  # primary, legacy
PRODUCT_DATA_ATTRS = ("data-product-handle", "data-product-id")


@dataclass
class HostPage:
    """A host document the widget is embedded in: its markup, its URL and any mount config."""
    html: str = ""
    url: str = ""
    explicit_sku: Optional[str] = None      # e.g. the embed script's ?sku= parameter
    mount_id: Optional[str] = None          # id of the widget's own mount element

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html or "", "html.parser")

    @property
    def path(self) -> str:
        try:
            return urlparse(self.url or "").path or ""
        except ValueError:
            return ""

    def mount_element(self) -> Optional[Tag]:
        if self.mount_id:
            el = self.soup.find(id=self.mount_id)
            if isinstance(el, Tag):
                return el
        el = self.soup.find(attrs={MOUNT_ATTR: True})
        return el if isinstance(el, Tag) else None

    def to_html(self) -> str:
        return str(self.soup)


def clean_sku(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    s = str(value).strip()
    try:
        # lone surrogates from JSON escapes cannot go on the wire
        s.encode("utf-8")
    except UnicodeError:
        logger.debug("[SKU] dropping candidate that is not valid UTF-8: %r", s)
        return None
    return s or None


def _scripts(page: HostPage, ld_json: bool) -> Iterator[Tag]:
    for script in page.soup.find_all("script"):
        stype = (script.get("type") or "").strip().lower()
        is_ld = stype == "application/ld+json"
        if is_ld != ld_json:
            continue
        if not ld_json and script.get("src"):
            continue
        yield script


# ---------------------------------------------------------------------------
# Sources (strongest first). Each: HostPage -> Optional[str]
# ---------------------------------------------------------------------------

def sku_from_mount_override(page: HostPage) -> Optional[str]:
    mount = page.mount_element()
    if mount is not None:
        sku = clean_sku(mount.get(MOUNT_SKU_ATTR))
        if sku:
            return sku
    return clean_sku(page.explicit_sku)


def sku_from_url_path(page: HostPage) -> Optional[str]:
    segments = page.path.split("/")
    for i, seg in enumerate(segments[:-1]):
        if seg == "products":
            return clean_sku(unquote(segments[i + 1]))
    return None


def sku_from_inline_script(page: HostPage) -> Optional[str]:
    bodies = [s.string or s.get_text() or "" for s in _scripts(page, ld_json=False)]
    for pattern in (_SCRIPT_SKU_KEY_RE, _SCRIPT_VARIANT_SKU_RE):
        for body in bodies:
            for m in pattern.finditer(body):
                sku = clean_sku(m.group(1))
                if sku:
                    return sku
    return None


def sku_from_meta_tag(page: HostPage) -> Optional[str]:
    for name in RETAILER_ITEM_META:
        for attr in ("property", "name"):
            meta = page.soup.find("meta", attrs={attr: name})
            if isinstance(meta, Tag):
                sku = clean_sku(meta.get("content"))
                if sku:
                    return sku
    return None


def sku_from_form_input(page: HostPage) -> Optional[str]:
    for el in page.soup.find_all(["input", "select"], attrs={"name": "id"}):
        if el.name == "input":
            sku = clean_sku(el.get("value"))
        else:
            opt = el.find("option", selected=True) or el.find("option")
            sku = clean_sku(opt.get("value") if isinstance(opt, Tag) else None)
        if sku:
            return sku
    return None


def _ld_nodes(data: Any) -> Iterable[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _ld_nodes(item)
    elif isinstance(data, dict):
        yield data
        graph = data.get("@graph")
        if isinstance(graph, list):
            yield from _ld_nodes(graph)


def _offers_sku(node: dict) -> Optional[str]:
    offers = node.get("offers")
    if isinstance(offers, dict):
        return clean_sku(offers.get("sku"))
    if isinstance(offers, list):
        for offer in offers:
            if isinstance(offer, dict):
                sku = clean_sku(offer.get("sku"))
                if sku:
                    return sku
    return None


def sku_from_json_ld(page: HostPage) -> Optional[str]:
    nodes: list[dict] = []
    for script in _scripts(page, ld_json=True):
        raw = script.string or script.get_text() or ""
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("[SKU] skipping unparseable JSON-LD block (%d chars)", len(raw))
            continue
        nodes.extend(_ld_nodes(data))

    pickers: tuple[Callable[[dict], Optional[str]], ...] = (
        lambda n: clean_sku(n.get("sku")),
        lambda n: clean_sku(n.get("productID")),
        _offers_sku,
    )
    for pick in pickers:
        for node in nodes:
            sku = pick(node)
            if sku:
                return sku
    return None


def sku_from_data_attribute(page: HostPage) -> Optional[str]:
    for attr in PRODUCT_DATA_ATTRS:
        for el in page.soup.find_all(attrs={attr: True}):
            sku = clean_sku(el.get(attr))
            if sku:
                return sku
    return None


SKU_SOURCES: tuple[tuple[str, Callable[[HostPage], Optional[str]]], ...] = (
    ("mount_override", sku_from_mount_override),
    ("url_path", sku_from_url_path),
    ("inline_script", sku_from_inline_script),
    ("meta_tag", sku_from_meta_tag),
    ("form_input", sku_from_form_input),
    ("json_ld", sku_from_json_ld),
    ("data_attribute", sku_from_data_attribute),
)


def detect_sku(page: HostPage, sources=SKU_SOURCES) -> tuple[Optional[str], Optional[str]]:
    """
    Run the cascade and return (sku, source_name), or (None, None) when nothing matched.
    Never raises on malformed host markup.
    """
    for name, source in sources:
        try:
            sku = source(page)
        except Exception as e:
            logger.debug("[SKU] source %s failed: %s", name, e)
            continue
        if sku:
            logger.info("[SKU] resolved sku=%s via %s", sku, name)
            return sku, name
    logger.warning("[SKU] could not detect SKU for %s", page.url or "<no url>")
    return None, None


def resolve_sku(page: HostPage) -> Optional[str]:
    return detect_sku(page)[0]
