#=======================================================================================
# lifestyle_widget/widget/lifestyle_widget.py
# One widget mount for one SKU: Idle → Loading → {Ready, Empty, Errored}.
#
# - view event: exactly one per successful load, for the first render, awaited before
#   any like can be processed
# - likes: confirm-then-update; the LikeState is replaced wholesale by the server answer
# - unmount: pending results are discarded, the view is never written afterwards
#=======================================================================================
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

from lifestyle_widget.api.analytics import AnalyticsClient
from lifestyle_widget.api.likes import LikeToggleClient
from lifestyle_widget.api.widget_api import WidgetApiClient
from lifestyle_widget.config import settings
from lifestyle_widget.models.widget_models import (
    EventType,
    LikeState,
    LoadStatus,
    Render,
    WidgetLoadState,
)
from lifestyle_widget.widget.widget_view import ERROR_MESSAGE, EMPTY_MESSAGE, WidgetView

logger = logging.getLogger("uvicorn.error")

LIKE_POLICY_ALWAYS = "always"
LIKE_POLICY_LIKED_ONLY = "liked_only"


class LifestyleWidget:
    def __init__(
        self,
        sku: str,
        view: WidgetView,
        session_id: str,
        api: Optional[WidgetApiClient] = None,
        analytics: Optional[AnalyticsClient] = None,
        likes: Optional[LikeToggleClient] = None,
        like_event_policy: Optional[str] = None,
        prehydrate_likes: Optional[bool] = None,
    ):
        if not sku:
            raise ValueError("LifestyleWidget needs a resolved SKU")
        self.sku = sku
        self.view = view
        self.session_id = session_id
        self.api = api or WidgetApiClient()
        self.analytics = analytics or AnalyticsClient(self.api)
        self.likes = likes or LikeToggleClient(self.api)
        self.like_event_policy = (like_event_policy or settings.LIKE_EVENT_POLICY or LIKE_POLICY_ALWAYS).lower()
        if self.like_event_policy not in (LIKE_POLICY_ALWAYS, LIKE_POLICY_LIKED_ONLY):
            logger.warning("[WIDGET] unknown like event policy %r; using %r", self.like_event_policy, LIKE_POLICY_ALWAYS)
            self.like_event_policy = LIKE_POLICY_ALWAYS
        self.prehydrate_likes = settings.WIDGET_PREHYDRATE_LIKES if prehydrate_likes is None else prehydrate_likes

        self.state: WidgetLoadState = WidgetLoadState.idle()
        self.like_states: Dict[str, LikeState] = {}
        self._pending_toggles: Set[str] = set()
        self._confirmed: Set[str] = set()   # renders whose state came from a toggle response
        self._disposed = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def disposed(self) -> bool:
        return self._disposed

    def unmount(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.view.dispose()
        logger.debug("[WIDGET] sku=%s unmounted in state %s", self.sku, self.state.status.value)

    def _set_state(self, state: WidgetLoadState) -> None:
        logger.info("[WIDGET] sku=%s %s → %s", self.sku, self.state.status.value, state.status.value)
        self.state = state

    async def mount(self) -> WidgetLoadState:
        """Load renders for the SKU and draw them. Never raises; returns the resulting state."""
        if self._disposed or self.state.status is not LoadStatus.IDLE:
            logger.warning("[WIDGET] mount ignored for sku=%s (state=%s, disposed=%s)",
                           self.sku, self.state.status.value, self._disposed)
            return self.state

        self._set_state(WidgetLoadState.loading())
        self.view.show_loading()

        res = await self.api.get_renders(self.sku)
        if self._disposed:
            logger.debug("[WIDGET] discarding renders for sku=%s after unmount", self.sku)
            return self.state

        if not res.ok:
            self._set_state(WidgetLoadState.errored(res.error))
            self.view.show_error(ERROR_MESSAGE)
            return self.state

        renders = list(res.data or [])
        if not renders:
            self._set_state(WidgetLoadState.empty())
            self.view.show_empty(EMPTY_MESSAGE)
            return self.state

        self.like_states = {r.id: LikeState(render_id=r.id) for r in renders}
        self._set_state(WidgetLoadState.ready(renders))
        self.view.show_renders(renders, self.like_states)

        tasks = [self.analytics.log_event(renders[0].id, EventType.VIEW, self.session_id)]
        if self.prehydrate_likes:
            tasks.append(self._prehydrate([r.id for r in renders]))
        await asyncio.gather(*tasks)
        return self.state

    async def _prehydrate(self, render_ids: list[str]) -> None:
        try:
            res = await self.api.get_like_states(render_ids, self.session_id)
        except Exception as e:
            logger.info("[WIDGET] like-state lookup failed for sku=%s: %s", self.sku, e)
            return
        if not res.ok:
            logger.info("[WIDGET] like-state lookup failed for sku=%s: %s", self.sku, res.error)
            return
        if self._disposed:
            return
        for rid, state in (res.data or {}).items():
            # a confirmed or in-flight toggle is newer than this lookup
            if rid not in self.like_states or rid in self._confirmed or rid in self._pending_toggles:
                continue
            self.like_states[rid] = state
            self.view.update_like(state)

    # ------------------------------------------------------------------
    # interactions
    # ------------------------------------------------------------------

    def _render(self, render_id: str) -> Optional[Render]:
        if self.state.status is not LoadStatus.READY:
            return None
        for r in self.state.renders:
            if r.id == render_id:
                return r
        return None

    async def handle_like(self, render_id: str) -> Optional[LikeState]:
        """
        User clicked the like control of a render. Returns the new LikeState, or None
        when nothing changed (not ready, unknown render, toggle in flight, failure).
        """
        if self._disposed or self._render(render_id) is None:
            logger.debug("[WIDGET] like on %r ignored (state=%s)", render_id, self.state.status.value)
            return None
        if render_id in self._pending_toggles:
            logger.debug("[WIDGET] like on %r ignored: toggle already in flight", render_id)
            return None

        self._pending_toggles.add(render_id)
        try:
            res = await self.likes.toggle_like(render_id, self.session_id)
        finally:
            self._pending_toggles.discard(render_id)

        if self._disposed:
            return None
        if not res.ok:
            logger.info("[WIDGET] like on %r failed; display unchanged: %s", render_id, res.error)
            return None

        state: LikeState = res.data
        self.like_states[render_id] = state
        self._confirmed.add(render_id)
        self.view.update_like(state)

        if self.like_event_policy == LIKE_POLICY_ALWAYS or state.liked:
            await self.analytics.log_event(render_id, EventType.LIKE, self.session_id)
        return state

    async def handle_image_click(self, render_id: str) -> bool:
        if self._disposed or self._render(render_id) is None:
            return False
        return await self.analytics.log_event(render_id, EventType.CLICK, self.session_id)
