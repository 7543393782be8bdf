#==========================================================================================
# lifestyle_widget/api/widget_api.py
# Remote widget API interface module.
# Talks to the renders / likes / events endpoints. Every call returns an ActionResponse and
# never raises: transport errors, non-2xx statuses and unusable payloads become `error`.
#==========================================================================================
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from lifestyle_widget.config import settings
from lifestyle_widget.models.widget_models import (
    ActionResponse,
    EventPayload,
    LikeState,
    LikeStateEntry,
    LikeToggleResponse,
    Render,
    get_action_response,
)

logger = logging.getLogger("uvicorn.error")

# Raised before anything reaches the wire (e.g. a lone surrogate in a URL or JSON body)
_UNSENDABLE = (httpx.InvalidURL, UnicodeError)


def _error_detail(resp: httpx.Response) -> str:
    """Pull an `error` string out of a JSON error body, else fall back to the status."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"].strip():
        return f"HTTP {resp.status_code}: {body['error'].strip()}"
    return f"HTTP {resp.status_code}"


def parse_renders(payload: Any, limit: int) -> Optional[List[Render]]:
    """
    Coerce a GET /renders body into Render objects.
    Returns None when the body is not a list at all; skips items that are not usable.
    """
    if not isinstance(payload, list):
        return None
    renders: List[Render] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            render = Render.model_validate(item)
        except ValidationError:
            continue
        if not render.id:
            continue
        renders.append(render)
        if len(renders) >= limit:
            break
    return renders


def parse_like_states(payload: Any, render_ids: List[str]) -> Dict[str, LikeState]:
    if not isinstance(payload, dict):
        return {}
    out: Dict[str, LikeState] = {}
    for rid in render_ids:
        raw = payload.get(rid)
        if not isinstance(raw, dict):
            continue
        try:
            entry = LikeStateEntry.model_validate(raw)
        except ValidationError:
            continue
        out[rid] = LikeState(render_id=rid, liked=entry.liked, total=entry.total)
    return out


class WidgetApiClient:
    """
    Thin async client for the widget API.

    `transport` is passed straight to httpx (tests use httpx.MockTransport).
    A new AsyncClient is opened per call; calls on different renders share nothing.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_renders: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.WIDGET_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.WIDGET_REQUEST_TIMEOUT
        self.max_renders = max_renders if max_renders is not None else settings.WIDGET_MAX_RENDERS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with self._client() as client:
            return await client.request(method, self._url(path), **kwargs)

    # ---- Renders ----

    async def get_renders(self, sku: str) -> ActionResponse[List[Render]]:
        """GET /renders?sku=<code> → up to `max_renders` renders."""
        try:
            resp = await self._request("GET", "/renders", params={"sku": sku})
        except httpx.TimeoutException as e:
            logger.warning("[API] renders fetch timed out for sku=%r: %s", sku, e)
            return get_action_response(error="timeout")
        except (httpx.HTTPError, *_UNSENDABLE) as e:
            logger.warning("[API] renders fetch failed for sku=%r: %s", sku, e)
            return get_action_response(error=f"transport error: {e}")

        if not resp.is_success:
            detail = _error_detail(resp)
            logger.warning("[API] renders fetch for sku=%s returned %s", sku, detail)
            return get_action_response(error=f"Failed to fetch renders ({detail})", status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            return get_action_response(error="Failed to fetch renders (invalid JSON)", status_code=resp.status_code)

        renders = parse_renders(body, self.max_renders)
        if renders is None:
            logger.warning("[API] renders payload for sku=%s is not a list: %r", sku, type(body).__name__)
            return get_action_response(error="Failed to fetch renders (unexpected payload)", status_code=resp.status_code)
        return get_action_response(data=renders, status_code=resp.status_code)

    # ---- Likes ----

    async def toggle_like(self, render_id: str, session_id: str) -> ActionResponse[LikeToggleResponse]:
        """POST /likes {sku_id, session_id}. Flips server state; never retried here."""
        payload = {"sku_id": render_id, "session_id": session_id}
        try:
            resp = await self._request("POST", "/likes", json=payload)
        except _UNSENDABLE as e:
            logger.warning("[API] like toggle for render=%r not sent: %s", render_id, e)
            return get_action_response(error=f"Failed to toggle like (request not sent: {e})")
        except httpx.HTTPError as e:
            # The request may or may not have reached the server: outcome unknown.
            logger.warning("[API] like toggle for render=%r has unknown outcome: %s", render_id, e)
            return get_action_response(error=f"toggle outcome unknown: {e}")

        if not resp.is_success:
            detail = _error_detail(resp)
            logger.warning("[API] like toggle for render=%r returned %s", render_id, detail)
            return get_action_response(error=f"Failed to toggle like ({detail})", status_code=resp.status_code)

        try:
            body = resp.json()
            result = LikeToggleResponse.model_validate(body if isinstance(body, dict) else {})
        except (ValueError, ValidationError) as e:
            return get_action_response(error=f"Failed to toggle like (bad payload: {e})", status_code=resp.status_code)
        return get_action_response(data=result, status_code=resp.status_code)

    async def get_like_states(self, render_ids: List[str], session_id: str) -> ActionResponse[Dict[str, LikeState]]:
        """GET /likes?sku_ids=<csv>&session_id=<id> → {render_id: LikeState}."""
        ids = [r for r in render_ids if r]
        if not ids:
            return get_action_response(data={})
        params = {"sku_ids": ",".join(ids), "session_id": session_id}
        try:
            resp = await self._request("GET", "/likes", params=params)
        except (httpx.HTTPError, *_UNSENDABLE) as e:
            return get_action_response(error=f"transport error: {e}")
        if not resp.is_success:
            return get_action_response(error=f"Failed to fetch like states ({_error_detail(resp)})",
                                       status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError:
            return get_action_response(error="Failed to fetch like states (invalid JSON)", status_code=resp.status_code)
        return get_action_response(data=parse_like_states(body, ids), status_code=resp.status_code)

    # ---- Events ----

    async def log_event(self, target_id: str, event_type: str, session_id: str) -> ActionResponse[Dict[str, Any]]:
        """POST /events {sku_id, event_type, session_id}."""
        try:
            payload = EventPayload(sku_id=target_id, event_type=event_type, session_id=session_id)
        except ValidationError as e:
            return get_action_response(error=f"invalid event: {e}")
        try:
            resp = await self._request("POST", "/events", json=payload.model_dump(mode="json"))
        except (httpx.HTTPError, *_UNSENDABLE) as e:
            return get_action_response(error=f"transport error: {e}")
        if not resp.is_success:
            return get_action_response(error=f"Failed to log event ({_error_detail(resp)})",
                                       status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        return get_action_response(data=body if isinstance(body, dict) else {}, status_code=resp.status_code)
