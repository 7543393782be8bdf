#=======================================================================================
# lifestyle_widget/routes.py
# HTTP surface for the widget runtime.
#
#   GET  /widget                   → server-rendered widget (embed=true → iframe document)
#   POST /api/widget/detect-sku    → run the SKU cascade over a posted host page
#   POST /api/widget/inject        → host page with the widget mounted by init()
#
# IMPORTANT: In main_app.py, include with NO extra prefix:
#   from lifestyle_widget.routes import router as widget_router
#   app.include_router(widget_router)
#=======================================================================================
from __future__ import annotations

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from lifestyle_widget.api.widget_api import WidgetApiClient
from lifestyle_widget.embed.embed_bridge import child_resize_script
from lifestyle_widget.session.session_identity import is_session_id, new_session_id
from lifestyle_widget.sku.sku_resolver import HostPage, detect_sku
from lifestyle_widget.widget.facade import LifestyleWidgetFacade
from lifestyle_widget.widget.lifestyle_widget import LifestyleWidget
from lifestyle_widget.widget.widget_view import HtmlWidgetView

logger = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["Lifestyle Widget"])

WIDGET_CSS = """
body { margin: 0; padding: 0; background: transparent;
       font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; }
#widget-root { max-width: 400px; margin: 0 auto; padding: 16px; }
.lifestyle-widget-loading, .lifestyle-widget-empty { text-align: center; color: #666; padding: 40px 0; }
.lifestyle-widget-error { text-align: center; color: #ef4444; padding: 40px 0; font-size: 14px; }
.lifestyle-widget-grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
.lifestyle-widget-item { position: relative; }
.lifestyle-widget-item img { width: 100%; aspect-ratio: 1; object-fit: cover; border-radius: 8px; }
.lifestyle-widget-like { position: absolute; top: 8px; right: 8px; border: none; border-radius: 9999px;
                         background: rgba(255, 255, 255, 0.9); padding: 8px; cursor: pointer;
                         display: flex; align-items: center; gap: 4px; }
.lifestyle-widget-heart { width: 20px; height: 20px; }
.lifestyle-widget-heart.filled { color: #ef4444; fill: currentColor; }
.lifestyle-widget-heart.outline { color: #666; fill: none; }
.lifestyle-widget-count { font-size: 12px; color: #666; }
"""


class HostPagePayload(BaseModel):
    url: str = Field("", description="URL the host page was served from")
    html: str = Field("", description="Host page markup")
    sku: Optional[str] = Field(None, description="Explicit SKU override")
    mount_id: Optional[str] = Field(None, description="Id of the widget mount element")

    def to_page(self) -> HostPage:
        return HostPage(html=self.html, url=self.url, explicit_sku=self.sku, mount_id=self.mount_id)


def get_api_client() -> WidgetApiClient:
    return WidgetApiClient()


def _embed_document(sku: str, inner: str, height: int) -> str:
    return (
        "<!DOCTYPE html><html><head>"
        '<meta charset="utf-8"/>'
        '<meta name="viewport" content="width=device-width, initial-scale=1"/>'
        f"<style>{WIDGET_CSS}</style>"
        "</head><body>"
        f'<div id="widget-root" data-widget-sku="{html.escape(sku, quote=True)}" data-widget-height="{height}">'
        f"{inner}</div>"
        f"<script>{child_resize_script('widget-root')}</script>"
        "</body></html>"
    )


@router.get("/widget")
async def widget_page(
    sku: Optional[str] = Query(None),
    embed: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
    api: WidgetApiClient = Depends(get_api_client),
):
    sku = (sku or "").strip()
    if not sku:
        return JSONResponse(status_code=400, content={"ok": False, "reason": "missing_sku"})

    # Server side has no durable storage: trust a well-formed id from the caller, else mint one
    sid = session_id if is_session_id(session_id) else new_session_id()

    view = HtmlWidgetView()
    widget = LifestyleWidget(sku=sku, view=view, session_id=sid, api=api)
    state = await widget.mount()
    logger.info("[WIDGET-PAGE] sku=%s state=%s embed=%s", sku, state.status.value, embed)

    if (embed or "").lower() == "true":
        body = _embed_document(sku, view.html, view.scroll_height())
    else:
        body = f'<div class="lifestyle-widget-container" id="lifestyle-widget-{html.escape(sku, quote=True)}">{view.html}</div>'
    # errored/empty still render a visible, inert widget
    return HTMLResponse(content=body)


@router.post("/api/widget/detect-sku")
async def detect_sku_endpoint(payload: HostPagePayload):
    sku, source = detect_sku(payload.to_page())
    return {"ok": True, "sku": sku, "source": source}


@router.post("/api/widget/inject")
async def inject_widget(payload: HostPagePayload, api: WidgetApiClient = Depends(get_api_client)):
    page = payload.to_page()
    facade = LifestyleWidgetFacade(page, api=api)
    widgets = await facade.init()
    if not widgets:
        sku, _ = detect_sku(page)
        reason = "sku_not_detected" if not sku else "no_target_element"
        return JSONResponse(status_code=422, content={"ok": False, "reason": reason})
    return HTMLResponse(content=page.to_html())
