import asyncio
import base64
import time

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from examples.echo_service.app import app as echo_app
from goalgate.app import create_app
from goalgate.gateway import ClientDisconnected, RouteTarget, forward
from goalgate.routing import Route, RouteTable


ORIGIN = "http://localhost:3000"


@pytest.mark.parametrize(
    "path,service",
    [
        ("/api/users/42", "user-service"),
        ("/api/friend-requests/3", "user-service"),
        ("/api/goals/7", "goal-service"),
        ("/api/points/42", "points-service"),
        ("/api/notifications/1", "notification-service"),
        ("/api/challenges/5", "challenge-service"),
    ],
)
def test_forwards_to_route_upstream(cfg, upstream, path, service):
    app = create_app(cfg, transport=upstream.transport)
    body = b'{"title": "ship it"}\x00\xff'
    with TestClient(app) as client:
        r = client.post(
            f"{path}?page=2&sort=asc",
            content=body,
            headers={"X-Trace-Id": "abc123", "Content-Type": "application/octet-stream"},
        )

    assert r.status_code == 200
    assert r.text == f"POST {path}"
    assert r.headers["x-upstream"] == cfg.service_urls()[service].split("//")[1]

    assert len(upstream.requests) == 1
    sent = upstream.requests[0]
    assert str(sent.url) == f"{cfg.service_urls()[service]}{path}?page=2&sort=asc"
    assert sent.method == "POST"
    assert sent.content == body
    assert sent.headers["x-trace-id"] == "abc123"
    assert sent.headers["content-type"] == "application/octet-stream"


def test_host_and_hop_by_hop_headers_not_forwarded(cfg, upstream):
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        client.get("/api/goals/1", headers={"Connection": "keep-alive", "Keep-Alive": "timeout=5"})

    sent = upstream.requests[0]
    assert sent.headers["host"] == "goal.test"
    assert "keep-alive" not in sent.headers
    # inbound headers win over httpx client defaults
    assert sent.headers["user-agent"] == "testclient"


@pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
def test_method_is_preserved(cfg, upstream, method):
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.request(method, "/api/goals/1")
    assert r.status_code == 200
    assert upstream.requests[0].method == method


@pytest.mark.parametrize("path", ["/", "/api", "/api/unknown/1", "/api/usersettings", "/health"])
def test_unmatched_path_is_not_found(cfg, upstream, path):
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get(path)
    assert r.status_code == 404
    assert r.json()["detail"] == f"No route for {path}"
    assert upstream.requests == []


def test_upstream_error_is_passed_through(cfg, upstream):
    upstream.respond = lambda req: httpx.Response(
        404, headers={"X-Reason": "missing"}, json={"message": "User not found"}
    )
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/users/999")
    assert r.status_code == 404
    assert r.json() == {"message": "User not found"}
    assert r.headers["x-reason"] == "missing"


def test_unreachable_upstream_is_bad_gateway(cfg, upstream):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    upstream.respond = refuse
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/points/1")
    assert r.status_code == 502
    assert "points-service" in r.json()["detail"]
    # exactly one attempt
    assert len(upstream.requests) == 1


def test_slow_upstream_is_gateway_timeout(cfg, upstream):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    upstream.respond = slow
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/notifications/1")
    assert r.status_code == 504
    assert len(upstream.requests) == 1


def test_route_to_unregistered_service_is_bad_gateway(cfg, upstream):
    table = RouteTable([Route("ghost", ("/api/ghosts/**",), "ghost-service")])
    app = create_app(cfg, routes=table, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/ghosts/1")
    assert r.status_code == 502
    assert upstream.requests == []


def test_overlapping_routes_first_declared_wins(cfg, upstream):
    table = RouteTable(
        [
            Route("a", ("/api/a/**",), "goal-service"),
            Route("catch-all", ("/api/**",), "points-service"),
        ]
    )
    app = create_app(cfg, routes=table, transport=upstream.transport)
    with TestClient(app) as client:
        assert client.get("/api/a/1").headers["x-upstream"] == "goal.test"
        assert client.get("/api/b/1").headers["x-upstream"] == "points.test"


def _cors_headers(response):
    return {k: v for k, v in response.headers.items() if k.startswith("access-control-")}


def test_cors_headers_identical_for_every_outcome(cfg, upstream):
    def respond(request):
        if request.url.path.startswith("/api/points"):
            raise httpx.ConnectError("down", request=request)
        return httpx.Response(200, json={"ok": True})

    upstream.respond = respond
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        matched = client.get("/api/goals/1", headers={"Origin": ORIGIN})
        unmatched = client.get("/nowhere", headers={"Origin": ORIGIN})
        failed = client.get("/api/points/1", headers={"Origin": ORIGIN})

    assert (matched.status_code, unmatched.status_code, failed.status_code) == (200, 404, 502)
    expected = {
        "access-control-allow-origin": ORIGIN,
        "access-control-allow-credentials": "true",
    }
    assert _cors_headers(matched) == expected
    assert _cors_headers(unmatched) == expected
    assert _cors_headers(failed) == expected


def test_cors_allows_any_origin(cfg, upstream):
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/goals/1", headers={"Origin": "https://goals.example.org"})
    assert r.headers["access-control-allow-origin"] == "https://goals.example.org"


def test_cors_preflight_answered_by_gateway(cfg, upstream):
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.options(
            "/api/challenges/1",
            headers={
                "Origin": ORIGIN,
                "Access-Control-Request-Method": "DELETE",
                "Access-Control-Request-Headers": "X-Custom-Header",
            },
        )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == ORIGIN
    assert r.headers["access-control-allow-credentials"] == "true"
    assert "DELETE" in r.headers["access-control-allow-methods"]
    assert "x-custom-header" in r.headers["access-control-allow-headers"].lower()
    assert upstream.requests == []


def test_preloaded_upstream_body_arrives_intact(cfg, upstream):
    upstream.respond = lambda req: httpx.Response(200, json={"id": 42, "name": "Alice"})
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/users/42", headers={"Origin": ORIGIN})
    assert r.status_code == 200
    assert r.json() == {"id": 42, "name": "Alice"}
    assert r.headers["content-type"] == "application/json"
    assert r.headers["content-length"] == str(len(r.content))
    assert r.headers["access-control-allow-origin"] == ORIGIN


def test_upstream_cors_headers_replaced_by_gateway_policy(cfg, upstream):
    upstream.respond = lambda req: httpx.Response(
        200,
        headers={"Access-Control-Allow-Origin": "https://elsewhere.test", "Access-Control-Max-Age": "60"},
        json={},
    )
    app = create_app(cfg, transport=upstream.transport)
    with TestClient(app) as client:
        r = client.get("/api/goals/1", headers={"Origin": ORIGIN})
    assert r.headers["access-control-allow-origin"] == ORIGIN
    assert "access-control-max-age" not in r.headers


def test_body_round_trips_through_echo_upstream(cfg):
    app = create_app(cfg, transport=httpx.ASGITransport(app=echo_app))
    body = bytes(range(256))

    async def run():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://gateway") as client:
            return await client.put("/api/goals/9?x=1", content=body, headers={"X-Goal": "g-9"})

    r = asyncio.run(run())
    assert r.status_code == 200
    echoed = r.json()
    assert echoed["method"] == "PUT"
    assert echoed["path"] == "/api/goals/9"
    assert echoed["query"] == "x=1"
    assert ["x-goal", "g-9"] in echoed["headers"]
    assert base64.b64decode(echoed["body_b64"]) == body


def test_concurrent_requests_resolve_independently(cfg):
    async def handler(request):
        # Interleave the in-flight calls.
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"host": request.url.host, "path": request.url.path})

    app = create_app(cfg, transport=httpx.MockTransport(handler))
    cases = [
        ("/api/users/1", "user.test"),
        ("/api/friend-requests/2", "user.test"),
        ("/api/goals/3", "goal.test"),
        ("/api/points/4", "points.test"),
        ("/api/notifications/5", "notification.test"),
        ("/api/challenges/6", "challenge.test"),
    ] * 4

    async def run():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://gateway") as client:
            return await asyncio.gather(*(client.get(path) for path, _ in cases))

    start = time.time()
    responses = asyncio.run(run())
    elapsed = time.time() - start

    for (path, host), r in zip(cases, responses):
        assert r.status_code == 200
        assert r.json() == {"host": host, "path": path}
    # parallel, not one after another
    assert elapsed < 0.05 * len(cases)


def _request(receive):
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/api/goals/1",
        "raw_path": b"/api/goals/1",
        "query_string": b"",
        "headers": [],
    }
    return Request(scope, receive)


def test_client_disconnect_cancels_upstream_call():
    messages = [{"type": "http.request", "body": b"", "more_body": False}, {"type": "http.disconnect"}]

    async def receive():
        return messages.pop(0)

    async def never_answers(request):
        await asyncio.sleep(30)
        return httpx.Response(200)

    async def run():
        target = RouteTarget(route_id="goal-service", service="goal-service", base_url="http://goal.test")
        async with httpx.AsyncClient(transport=httpx.MockTransport(never_answers)) as http:
            with pytest.raises(ClientDisconnected):
                await forward(_request(receive), target, http, timeout_s=60)

    start = time.time()
    asyncio.run(run())
    assert time.time() - start < 5
