"""Ordered path-prefix route table.

Patterns ending in ``/**`` match the base path and everything below it
(``/api/users/**`` matches ``/api/users`` and ``/api/users/42`` but not
``/api/usersettings``). Other patterns match the path exactly.

Routes are tried in declaration order and the first match wins. This is not
longest-prefix matching, so the order of the table is part of its meaning.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable

from .api_models import RouteSpec, RoutesFile


WILDCARD = "/**"


def pattern_matches(pattern: str, path: str) -> bool:
    if pattern.endswith(WILDCARD):
        base = pattern[: -len(WILDCARD)]
        return path == base or path.startswith(base + "/")
    return path == pattern


@dataclass(frozen=True)
class Route:
    id: str
    path_prefixes: tuple[str, ...]
    target_service: str

    def matches(self, path: str) -> bool:
        return any(pattern_matches(p, path) for p in self.path_prefixes)


class RouteTable:
    def __init__(self, routes: Iterable[Route]) -> None:
        self._routes: tuple[Route, ...] = tuple(routes)
        seen: set[str] = set()
        for r in self._routes:
            if not r.path_prefixes:
                raise ValueError(f"Route '{r.id}' has no path patterns.")
            for p in r.path_prefixes:
                if not p.startswith("/"):
                    raise ValueError(f"Route '{r.id}': pattern {p!r} must start with '/'.")
            if r.id in seen:
                raise ValueError(f"Duplicate route id '{r.id}'.")
            seen.add(r.id)

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self):
        return iter(self._routes)

    def match(self, path: str) -> Route | None:
        for r in self._routes:
            if r.matches(path):
                return r
        return None


DEFAULT_ROUTES: tuple[Route, ...] = (
    Route("user-service", ("/api/users/**", "/api/friend-requests/**"), "user-service"),
    Route("goal-service", ("/api/goals/**",), "goal-service"),
    Route("points-service", ("/api/points/**",), "points-service"),
    Route("notification-service", ("/api/notifications/**",), "notification-service"),
    Route("challenge-service", ("/api/challenges/**",), "challenge-service"),
)


def route_from_spec(spec: RouteSpec) -> Route:
    return Route(id=spec.id, path_prefixes=tuple(spec.paths), target_service=spec.service)


def load_routes(path: str) -> RouteTable:
    """Read an ordered route list from a JSON file.

    Expected shape::

        {"routes": [{"id": "user-service",
                     "paths": ["/api/users/**"],
                     "service": "user-service"}]}
    """
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()
    data = json.loads(content) if content.strip() else {}
    parsed = RoutesFile.model_validate(data)
    return RouteTable(route_from_spec(s) for s in parsed.routes)


def default_table() -> RouteTable:
    return RouteTable(DEFAULT_ROUTES)
