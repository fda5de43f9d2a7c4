from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from .registry import ServiceResolver
from .routing import RouteTable


# RFC 7230 section 6.1, plus Host which httpx derives from the upstream URL.
HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "host",
    }
)


class NoRouteMatched(Exception):
    pass


class ClientDisconnected(Exception):
    pass


@dataclass(frozen=True)
class RouteTarget:
    route_id: str
    service: str
    base_url: str


def select_upstream(path: str, table: RouteTable, resolver: ServiceResolver) -> RouteTarget:
    """Map a request path to exactly one upstream.

    Raises NoRouteMatched when no route applies and UnknownService (from the
    resolver) when the route points at an unregistered service.
    """
    route = table.match(path)
    if route is None:
        raise NoRouteMatched(f"No route for {path}")
    base_url = resolver.resolve(route.target_service)
    return RouteTarget(route_id=route.id, service=route.target_service, base_url=base_url)


def upstream_url(target: RouteTarget, raw_path: str, query: str) -> str:
    url = f"{target.base_url}{raw_path}"
    if query:
        url = f"{url}?{query}"
    return url


def request_headers(raw: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
    return [(k, v) for k, v in raw if k.decode("latin-1").lower() not in HOP_BY_HOP]


def response_headers(raw: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
    # upstream CORS headers are dropped, the gateway policy is the only one
    out = []
    for k, v in raw:
        name = k.decode("latin-1").lower()
        if name in HOP_BY_HOP or name.startswith("access-control-"):
            continue
        out.append((k, v))
    return out


async def _wait_for_disconnect(request: Request) -> None:
    # Body is fully read before this runs, so the next message is the disconnect.
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def forward(
    request: Request,
    target: RouteTarget,
    http: httpx.AsyncClient,
    timeout_s: float,
) -> Response:
    """Proxy the request to the target upstream and stream its answer back.

    Method, headers (minus hop-by-hop) and body go out unchanged; status,
    headers and raw body bytes come back unchanged. There is no retry.

    Raises httpx.TransportError subclasses for unreachable or slow upstreams
    and ClientDisconnected if the caller goes away before the upstream answers.
    """
    raw_path = request.scope.get("raw_path") or request.url.path.encode()
    raw_path = raw_path.split(b"?", 1)[0]
    url = upstream_url(target, raw_path.decode("latin-1"), request.url.query)
    body = await request.body()
    # Built directly rather than via http.build_request, which would mix in
    # the client's default User-Agent/Accept headers.
    outbound = httpx.Request(
        request.method,
        url,
        headers=request_headers(request.headers.raw),
        content=body,
        extensions={"timeout": httpx.Timeout(timeout_s).as_dict()},
    )

    send_task = asyncio.ensure_future(http.send(outbound, stream=True))
    watch_task = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({send_task, watch_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watch_task.cancel()
    if send_task not in done:
        send_task.cancel()
        raise ClientDisconnected(f"Client went away during {request.method} {url}")

    upstream = send_task.result()
    if upstream.is_stream_consumed:
        # Body already loaded by the transport (e.g. httpx.MockTransport); it
        # cannot be streamed again.
        await upstream.aclose()
        response = Response(content=upstream.content, status_code=upstream.status_code)
        response.raw_headers.extend(
            (k, v)
            for k, v in response_headers(upstream.headers.raw)
            if k.lower() not in (b"content-length", b"content-encoding")
        )
        return response

    response = StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    response.raw_headers.extend(response_headers(upstream.headers.raw))
    return response
