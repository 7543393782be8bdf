import asyncio

import httpx
import pytest

from lifestyle_widget.models.widget_models import LikeState, LoadStatus
from lifestyle_widget.widget.lifestyle_widget import LifestyleWidget
from lifestyle_widget.widget.widget_view import EMPTY_MESSAGE, ERROR_MESSAGE, HtmlWidgetView

SESSION = "33333333-3333-4333-a333-333333333333"


def make_widget(api, sku="ABC123", **kwargs):
    view = HtmlWidgetView()
    kwargs.setdefault("prehydrate_likes", False)
    return LifestyleWidget(sku=sku, view=view, session_id=SESSION, api=api, **kwargs), view


def slow_client(server, delay):
    """Client whose requests stay in flight for `delay` seconds."""

    async def handler(request):
        await asyncio.sleep(delay)
        return server.handler(request)

    api = server.client()
    api._transport = httpx.MockTransport(handler)
    return api


def test_requires_sku(api):
    with pytest.raises(ValueError):
        LifestyleWidget(sku="", view=HtmlWidgetView(), session_id=SESSION, api=api)


def test_starts_idle(api):
    widget, view = make_widget(api)
    assert widget.state.status is LoadStatus.IDLE
    assert view.html == ""


def test_end_to_end_ready_then_like(server, api):
    widget, view = make_widget(api)

    state = asyncio.run(widget.mount())

    assert state.status is LoadStatus.READY
    assert [r.id for r in state.renders] == ["render1", "render2"]
    assert server.events == [{"sku_id": "render1", "event_type": "view", "session_id": SESSION}]
    assert 'alt="Test product lifestyle shot 1"' in view.html
    assert view.like_count("render1") == 0

    server.fail[("POST", "/likes")] = (200, {"liked": True, "total_likes": 5})
    result = asyncio.run(widget.handle_like("render1"))

    assert result == LikeState("render1", liked=True, total=5)
    assert widget.like_states["render1"] == result
    assert view.like_count("render1") == 5
    assert view.is_liked("render1") is True
    assert view.like_count("render2") == 0
    assert server.events_of("like") == [{"sku_id": "render1", "event_type": "like", "session_id": SESSION}]
    assert len(server.events_of("view")) == 1


def test_end_to_end_api_error(server, api):
    server.fail[("GET", "/renders")] = (500, {"error": "API Error"})
    widget, view = make_widget(api)

    state = asyncio.run(widget.mount())

    assert state.status is LoadStatus.ERRORED
    assert "API Error" in state.reason
    assert view.text() == ERROR_MESSAGE
    assert server.events == []
    assert ("POST", "/events") not in server.requests


def test_zero_renders_is_empty_not_errored(server, api):
    widget, view = make_widget(api, sku="EMPTY1")
    state = asyncio.run(widget.mount())
    assert state.status is LoadStatus.EMPTY
    assert view.text() == EMPTY_MESSAGE
    assert server.events == []


def test_network_error_is_errored_with_zero_views(server, api):
    server.fail[("GET", "/renders")] = httpx.ConnectError("offline")
    widget, view = make_widget(api)
    state = asyncio.run(widget.mount())
    assert state.status is LoadStatus.ERRORED
    assert server.events_of("view") == []


def test_timeout_is_errored(server, api):
    server.fail[("GET", "/renders")] = httpx.ReadTimeout("hung")
    widget, _ = make_widget(api)
    state = asyncio.run(widget.mount())
    assert state.status is LoadStatus.ERRORED
    assert state.reason == "timeout"


def test_no_retry_after_fetch_failure(server, api):
    server.fail[("GET", "/renders")] = (503, {})
    widget, _ = make_widget(api)
    asyncio.run(widget.mount())
    asyncio.run(widget.mount())
    assert server.requests.count(("GET", "/renders")) == 1
    assert widget.state.status is LoadStatus.ERRORED


def test_mount_twice_emits_one_view(server, api):
    widget, _ = make_widget(api)
    asyncio.run(widget.mount())
    asyncio.run(widget.mount())
    assert len(server.events_of("view")) == 1
    assert server.requests.count(("GET", "/renders")) == 1


def test_loading_is_shown_while_fetching(server, api):
    seen = []
    widget, view = make_widget(api)
    view.add_mutation_listener(lambda kind: seen.append(view.mode))
    asyncio.run(widget.mount())
    assert seen[:2] == ["loading", "ready"]


def test_failed_toggle_leaves_display_unchanged(server, api):
    widget, view = make_widget(api)
    asyncio.run(widget.mount())
    before = view.html
    server.fail[("POST", "/likes")] = httpx.ReadTimeout("no answer")

    assert asyncio.run(widget.handle_like("render1")) is None

    assert view.html == before
    assert widget.like_states["render1"] == LikeState("render1")
    assert server.events_of("like") == []
    assert server.requests.count(("POST", "/likes")) == 1


def test_toggle_twice_restores_total(server, api):
    server.likes.add(("render2", "someone-else"))
    widget, view = make_widget(api)
    asyncio.run(widget.mount())

    first = asyncio.run(widget.handle_like("render2"))
    second = asyncio.run(widget.handle_like("render2"))

    assert (first.liked, first.total) == (True, 2)
    assert (second.liked, second.total) == (False, 1)
    assert view.like_count("render2") == 1


def test_like_event_policy_always(server, api):
    widget, _ = make_widget(api, like_event_policy="always")
    asyncio.run(widget.mount())
    asyncio.run(widget.handle_like("render1"))   # → liked
    asyncio.run(widget.handle_like("render1"))   # → unliked
    assert len(server.events_of("like")) == 2


def test_like_event_policy_liked_only(server, api):
    widget, _ = make_widget(api, like_event_policy="liked_only")
    asyncio.run(widget.mount())
    asyncio.run(widget.handle_like("render1"))   # → liked
    asyncio.run(widget.handle_like("render1"))   # → unliked
    assert len(server.events_of("like")) == 1


def test_unknown_policy_falls_back_to_always(api):
    widget, _ = make_widget(api, like_event_policy="sometimes")
    assert widget.like_event_policy == "always"


def test_like_ignored_unless_ready(server, api):
    widget, _ = make_widget(api, sku="EMPTY1")
    asyncio.run(widget.mount())
    assert asyncio.run(widget.handle_like("render1")) is None
    assert ("POST", "/likes") not in server.requests


def test_like_on_unknown_render_ignored(server, api):
    widget, _ = make_widget(api)
    asyncio.run(widget.mount())
    assert asyncio.run(widget.handle_like("render-from-elsewhere")) is None
    assert ("POST", "/likes") not in server.requests


def test_view_event_precedes_like_event(server, api):
    widget, _ = make_widget(api)
    asyncio.run(widget.mount())
    asyncio.run(widget.handle_like("render2"))
    assert [e["event_type"] for e in server.events] == ["view", "like"]


def test_image_click_event(server, api):
    widget, _ = make_widget(api)
    asyncio.run(widget.mount())
    assert asyncio.run(widget.handle_image_click("render2")) is True
    assert server.events_of("click") == [{"sku_id": "render2", "event_type": "click", "session_id": SESSION}]


def test_concurrent_toggles_on_different_renders(server, api):
    widget, view = make_widget(api)

    async def scenario():
        await widget.mount()
        return await asyncio.gather(widget.handle_like("render1"), widget.handle_like("render2"))

    a, b = asyncio.run(scenario())
    assert (a.render_id, a.liked) == ("render1", True)
    assert (b.render_id, b.liked) == ("render2", True)
    assert view.is_liked("render1") and view.is_liked("render2")


def test_double_click_same_render_while_in_flight(server):
    widget, _ = make_widget(slow_client(server, delay=0.01))

    async def scenario():
        await widget.mount()
        return await asyncio.gather(widget.handle_like("render1"), widget.handle_like("render1"))

    first, second = asyncio.run(scenario())
    assert first.liked is True
    assert second is None
    assert server.requests.count(("POST", "/likes")) == 1


def test_prehydrate_populates_like_states(server):
    server.likes.update({("render1", SESSION), ("render1", "x"), ("render2", "y")})
    widget, view = make_widget(server.client(), prehydrate_likes=True)
    asyncio.run(widget.mount())
    assert widget.like_states["render1"] == LikeState("render1", liked=True, total=2)
    assert widget.like_states["render2"] == LikeState("render2", liked=False, total=1)
    assert view.like_count("render1") == 2
    assert view.is_liked("render1") is True


def test_prehydrate_failure_is_swallowed(server):
    server.fail[("GET", "/likes")] = (500, {"error": "boom"})
    widget, view = make_widget(server.client(), prehydrate_likes=True)
    state = asyncio.run(widget.mount())
    assert state.status is LoadStatus.READY
    assert view.like_count("render1") == 0


def test_unmount_during_fetch_discards_result(server):
    release = {}

    async def gated(request):
        await release["event"].wait()
        return server.handler(request)

    api = server.client()
    api._transport = httpx.MockTransport(gated)
    widget, view = make_widget(api)

    async def scenario():
        release["event"] = asyncio.Event()
        task = asyncio.create_task(widget.mount())
        await asyncio.sleep(0)
        assert widget.state.status is LoadStatus.LOADING
        loading_html = view.html
        widget.unmount()
        release["event"].set()
        await task
        return loading_html

    loading_html = asyncio.run(scenario())
    assert widget.state.status is LoadStatus.LOADING
    assert view.html == loading_html
    assert server.events == []


def test_unmount_during_toggle_discards_result(server):
    widget, view = make_widget(server.client())
    asyncio.run(widget.mount())
    before = view.html

    real_toggle = widget.likes.toggle_like

    async def toggle_then_unmount(render_id, session_id):
        res = await real_toggle(render_id, session_id)
        widget.unmount()
        return res

    widget.likes.toggle_like = toggle_then_unmount
    assert asyncio.run(widget.handle_like("render1")) is None
    assert view.html == before
    assert server.events_of("like") == []


def raw_renders_client(server, body):
    """Client whose GET /renders answers with `body` bytes verbatim."""

    def handler(request):
        if request.method == "GET" and request.url.path.endswith("/renders"):
            server.requests.append(("GET", "/renders"))
            return httpx.Response(200, content=body, headers={"content-type": "application/json"})
        return server.handler(request)

    api = server.client()
    api._transport = httpx.MockTransport(handler)
    return api


def test_unsendable_sku_is_errored_not_raised(server, api):
    widget, view = make_widget(api, sku="\ud800")

    state = asyncio.run(widget.mount())

    assert state.status is LoadStatus.ERRORED
    assert view.text() == ERROR_MESSAGE
    assert server.events == []


def test_unsendable_render_id_toggle_fails_cleanly(server):
    api = raw_renders_client(server, b'[{"id": "r\\ud800", "image_url": "a.jpg", "alt_text": "a"}]')
    widget, view = make_widget(api)

    state = asyncio.run(widget.mount())
    assert state.status is LoadStatus.READY
    assert state.renders[0].id == "r\ud800"
    before = view.html

    assert asyncio.run(widget.handle_like("r\ud800")) is None

    assert view.html == before
    assert widget.like_states["r\ud800"] == LikeState("r\ud800")
    assert ("POST", "/likes") not in server.requests
