# lifestyle_widget/api/analytics.py
# Fire-and-forget analytics: view / like / click.
from __future__ import annotations

import logging

from lifestyle_widget.api.widget_api import WidgetApiClient
from lifestyle_widget.models.widget_models import EventType

logger = logging.getLogger("uvicorn.error")


class AnalyticsClient:
    def __init__(self, api: WidgetApiClient):
        self.api = api

    async def log_event(self, target_id: str, event_type: EventType | str, session_id: str) -> bool:
        """
        Emit one event. Returns True if the server accepted it.
        Never raises and never retries; failures are only logged.
        """
        try:
            etype = EventType(event_type)
        except ValueError:
            logger.error("[ANALYTICS] unknown event type %r for target=%s; dropped", event_type, target_id)
            return False
        if not target_id or not session_id:
            logger.error("[ANALYTICS] %s event missing target/session; dropped", etype.value)
            return False

        try:
            res = await self.api.log_event(target_id, etype.value, session_id)
        except Exception as e:
            logger.error("[ANALYTICS] Failed to log %s event for %s: %s", etype.value, target_id, e)
            return False
        if not res.ok:
            logger.error("[ANALYTICS] Failed to log %s event for %s: %s", etype.value, target_id, res.error)
            return False
        logger.debug("[ANALYTICS] %s event logged for %s", etype.value, target_id)
        return True
