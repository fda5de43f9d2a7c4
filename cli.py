from __future__ import annotations

import argparse
import json
import sys

import requests

from goalgate.client import UserClient
from goalgate.gateway import NoRouteMatched, select_upstream
from goalgate.registry import StaticRegistry, UnknownService, registry_from_settings
from goalgate.routing import default_table, load_routes
from goalgate.settings import settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Goal App gateway CLI")
    p.add_argument("--api", default=f"http://localhost:{settings.port}", help="Gateway base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("routes", help="Show the gateway route table")
    sub.add_parser("health", help="Probe upstream health through the gateway")

    s_ev = sub.add_parser("events", help="Show gateway events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_res = sub.add_parser("resolve", help="Resolve a path against the local route table (no network)")
    s_res.add_argument("path")
    s_res.add_argument("--routes-file", default=settings.routes_path, help="JSON route file (default: built-in table)")

    s_user = sub.add_parser("user", help="Fetch a user by id from the user service")
    s_user.add_argument("id", type=int)
    s_user.add_argument("--via-gateway", action="store_true", help="Call through --api instead of USER_SERVICE_URL")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "routes":
        _print(requests.get(f"{base}/gateway/routes", timeout=10).json())
        return 0

    if args.cmd == "health":
        r = requests.get(f"{base}/gateway/health", timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        _print(requests.get(f"{base}/gateway/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "resolve":
        table = load_routes(args.routes_file) if args.routes_file else default_table()
        try:
            target = select_upstream(args.path, table, registry_from_settings(settings))
        except (NoRouteMatched, UnknownService) as e:
            _print({"path": args.path, "error": str(e)})
            return 1
        _print({"path": args.path, "route": target.route_id, "service": target.service, "upstream": target.base_url})
        return 0

    if args.cmd == "user":
        resolver = StaticRegistry({"user-service": base}) if args.via_gateway else registry_from_settings(settings)
        with UserClient(resolver) as client:
            result = client.get_user_by_id(args.id)
        if not result.ok:
            _print({"error": result.failure.kind, "message": result.failure.message, "status": result.failure.status_code})
            return 1
        _print(result.value.model_dump())
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
