from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from . import db
from .api_models import GatewayHealth, RouteOut, UpstreamHealth
from .cors import CorsPolicy, install_cors
from .gateway import ClientDisconnected, NoRouteMatched, forward, select_upstream
from .health import check_health
from .registry import ServiceResolver, UnknownService, registry_from_settings
from .routing import RouteTable, default_table, load_routes
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_app(
    settings: Settings | None = None,
    routes: RouteTable | None = None,
    resolver: ServiceResolver | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    health_transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """Build the gateway process: CORS filter in front of the router, one port.

    `routes`, `resolver` and the transports default to the configured route
    table, the static registry and real network I/O; tests pass stubs.
    """
    cfg = settings or default_settings
    if routes is None:
        routes = load_routes(cfg.routes_path) if cfg.routes_path else default_table()
    table = routes
    registry = resolver or registry_from_settings(cfg)
    http = httpx.AsyncClient(transport=transport, follow_redirects=False, timeout=cfg.gateway_timeout_s)

    if cfg.enable_event_log:
        db.init_db(cfg.db_path)

    async def record(level: str, message: str, service_name: str | None = None, route_id: str | None = None) -> None:
        if not cfg.enable_event_log:
            return
        try:
            await run_in_threadpool(db.log_event, cfg.db_path, level, message, service_name, route_id)
        except sqlite3.Error:
            logger.exception("Could not write gateway event: %s", message)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Gateway starting with %d routes", len(table))
        await record("INFO", f"Gateway started with {len(table)} routes")
        try:
            yield
        finally:
            await http.aclose()

    app = FastAPI(title="Goal App API Gateway", lifespan=lifespan)
    install_cors(app, CorsPolicy.from_settings(cfg))

    if cfg.expose_admin:

        @app.get("/gateway/routes", response_model=list[RouteOut])
        def list_routes():
            out = []
            for r in table:
                try:
                    upstream = registry.resolve(r.target_service)
                except UnknownService:
                    upstream = None
                out.append(RouteOut(id=r.id, paths=list(r.path_prefixes), service=r.target_service, upstream=upstream))
            return out

        @app.get("/gateway/health", response_model=GatewayHealth)
        def gateway_health():
            upstreams = []
            for service in dict.fromkeys(r.target_service for r in table):
                try:
                    base = registry.resolve(service)
                except UnknownService as e:
                    upstreams.append(UpstreamHealth(service=service, url="", healthy=False, message=str(e)))
                    continue
                url = f"{base}{cfg.health_path}"
                ok, msg, latency = check_health(url, timeout_s=cfg.health_timeout_s, transport=health_transport)
                upstreams.append(UpstreamHealth(service=service, url=url, healthy=ok, message=msg, latency_ms=latency))
            return GatewayHealth(status="UP", upstreams=upstreams)

        @app.get("/gateway/events")
        def gateway_events(limit: int = Query(100, ge=1, le=1000)):
            if not cfg.enable_event_log:
                return []
            return db.latest_events(cfg.db_path, limit)

    @app.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy(request: Request):
        path = request.url.path
        try:
            target = select_upstream(path, table, registry)
        except NoRouteMatched as e:
            logger.info("%s %s -> no route", request.method, path)
            raise HTTPException(status_code=404, detail=str(e))
        except UnknownService as e:
            logger.error("%s %s -> %s", request.method, path, e)
            await record("ERROR", str(e))
            raise HTTPException(status_code=502, detail=str(e))

        start = time.time()
        try:
            resp = await forward(request, target, http, cfg.gateway_timeout_s)
        except httpx.TimeoutException:
            msg = f"Upstream {target.service} timed out after {cfg.gateway_timeout_s}s"
            logger.warning("%s %s -> %s", request.method, path, msg)
            await record("WARN", msg, service_name=target.service, route_id=target.route_id)
            raise HTTPException(status_code=504, detail=msg)
        except httpx.TransportError as e:
            msg = f"Upstream {target.service} unavailable: {type(e).__name__}"
            logger.warning("%s %s -> %s: %s", request.method, path, msg, e)
            await record("ERROR", msg, service_name=target.service, route_id=target.route_id)
            raise HTTPException(status_code=502, detail=msg)
        except ClientDisconnected as e:
            logger.info("%s", e)
            return Response(status_code=499)

        latency_ms = round((time.time() - start) * 1000.0, 2)
        logger.info(
            "%s %s -> %s (%s) %d %.2fms",
            request.method,
            path,
            target.service,
            target.base_url,
            resp.status_code,
            latency_ms,
        )
        return resp

    return app
