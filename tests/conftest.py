import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from lifestyle_widget.api.widget_api import WidgetApiClient

API_BASE = "https://widget.test/api"


class FakeWidgetServer:
    """
    In-memory stand-in for the renders / likes / events endpoints.
    Plug into WidgetApiClient through httpx.MockTransport.
    """

    def __init__(self, renders=None):
        # sku_code -> list of render dicts; a non-list value is served verbatim
        self.renders = renders if renders is not None else {}
        self.likes = set()          # {(render_id, session_id)}
        self.events = []            # [{sku_id, event_type, session_id}]
        self.requests = []          # [(method, path)]
        self.fail = {}              # (method, path) -> (status, body) or Exception
        self.last_query = None

    @property
    def render_ids(self):
        ids = set()
        for items in self.renders.values():
            if isinstance(items, list):
                ids.update(i.get("id") for i in items if isinstance(i, dict))
        return ids

    def events_of(self, event_type):
        return [e for e in self.events if e["event_type"] == event_type]

    def total(self, render_id):
        return sum(1 for rid, _ in self.likes if rid == render_id)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = urlparse(str(request.url)).path
        if path.startswith("/api"):
            path = path[len("/api"):]
        key = (request.method, path)
        self.requests.append(key)

        if key in self.fail:
            failure = self.fail[key]
            if isinstance(failure, Exception):
                raise failure
            status, body = failure
            return httpx.Response(status, json=body)

        query = parse_qs(urlparse(str(request.url)).query)
        self.last_query = query

        if key == ("GET", "/renders"):
            sku = (query.get("sku") or [""])[0]
            if not sku:
                return httpx.Response(400, json={"error": "SKU parameter is required"})
            if sku not in self.renders:
                return httpx.Response(404, json={"error": "SKU not found"})
            return httpx.Response(200, json=self.renders[sku])

        if key == ("POST", "/likes"):
            body = json.loads(request.content or b"{}")
            rid, sid = body.get("sku_id"), body.get("session_id")
            if not rid or not sid:
                return httpx.Response(400, json={"error": "sku_id and session_id are required"})
            if rid not in self.render_ids:
                return httpx.Response(404, json={"error": "SKU not found"})
            if (rid, sid) in self.likes:
                self.likes.discard((rid, sid))
                liked = False
            else:
                self.likes.add((rid, sid))
                liked = True
            return httpx.Response(200, json={"liked": liked, "total_likes": self.total(rid)})

        if key == ("GET", "/likes"):
            ids = (query.get("sku_ids") or [""])[0].split(",")
            sid = (query.get("session_id") or [""])[0]
            return httpx.Response(200, json={
                rid: {"liked": (rid, sid) in self.likes, "total": self.total(rid)} for rid in ids
            })

        if key == ("POST", "/events"):
            body = json.loads(request.content or b"{}")
            if not all(body.get(k) for k in ("sku_id", "event_type", "session_id")):
                return httpx.Response(400, json={"error": "sku_id, event_type, and session_id are required"})
            if body["sku_id"] not in self.render_ids:
                return httpx.Response(404, json={"error": "SKU not found"})
            self.events.append(body)
            return httpx.Response(200, json={"success": True, "event_id": f"evt{len(self.events)}"})

        return httpx.Response(404, json={"error": "not found"})

    def client(self, **kwargs) -> WidgetApiClient:
        return WidgetApiClient(base_url=API_BASE, transport=httpx.MockTransport(self.handler), **kwargs)


TWO_RENDERS = [
    {"id": "render1", "image_url": "https://example.com/image1.jpg", "alt_text": "Test product lifestyle shot 1"},
    {"id": "render2", "image_url": "https://example.com/image2.jpg", "alt_text": "Test product lifestyle shot 2"},
]


@pytest.fixture
def server():
    return FakeWidgetServer(renders={"ABC123": [dict(r) for r in TWO_RENDERS], "EMPTY1": []})


@pytest.fixture
def api(server):
    return server.client()
