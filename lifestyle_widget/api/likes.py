# lifestyle_widget/api/likes.py
from __future__ import annotations

import logging

from lifestyle_widget.api.widget_api import WidgetApiClient
from lifestyle_widget.models.widget_models import ActionResponse, LikeState, get_action_response

logger = logging.getLogger("uvicorn.error")


class LikeToggleClient:
    """
    Flips one session's like on one render and returns the server's answer.

    Never retries. A repeated call flips the like again, and after a timeout the
    first call may or may not have landed.
    """

    def __init__(self, api: WidgetApiClient):
        self.api = api

    async def toggle_like(self, render_id: str, session_id: str) -> ActionResponse[LikeState]:
        if not render_id or not session_id:
            return get_action_response(error="render_id and session_id are required")
        res = await self.api.toggle_like(render_id, session_id)
        if not res.ok:
            logger.info("[LIKES] toggle failed for render=%r: %s", render_id, res.error)
            return get_action_response(error=res.error, status_code=res.status_code)
        state = LikeState(render_id=render_id, liked=res.data.liked, total=res.data.total_likes)
        logger.info("[LIKES] render=%r liked=%s total=%d", render_id, state.liked, state.total)
        return get_action_response(data=state, status_code=res.status_code)
