from __future__ import annotations

import re
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .settings import Settings


@dataclass(frozen=True)
class CorsPolicy:
    allow_credentials: bool = True
    allowed_origin_patterns: tuple[str, ...] = ("*",)
    allowed_methods: tuple[str, ...] = ("*",)
    allowed_headers: tuple[str, ...] = ("*",)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "CorsPolicy":
        return cls(
            allow_credentials=cfg.cors_allow_credentials,
            allowed_origin_patterns=cfg.cors_allowed_origin_patterns,
            allowed_methods=cfg.cors_allowed_methods,
            allowed_headers=cfg.cors_allowed_headers,
        )


def origin_regex(patterns: tuple[str, ...]) -> str:
    """Turn origin patterns like ``*`` or ``https://*.example.com`` into one regex."""
    parts = [".*".join(re.escape(chunk) for chunk in p.split("*")) for p in patterns]
    return "|".join(f"(?:{p})" for p in parts) if parts else "(?!)"


def install_cors(app: FastAPI, policy: CorsPolicy) -> None:
    """Apply one policy to every response of the app, errors included.

    Origins are matched by regex, so the concrete request origin is echoed
    back instead of a literal ``*``.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=origin_regex(policy.allowed_origin_patterns),
        allow_credentials=policy.allow_credentials,
        allow_methods=list(policy.allowed_methods),
        allow_headers=list(policy.allowed_headers),
    )
