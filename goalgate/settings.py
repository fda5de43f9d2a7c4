from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    # Gateway process
    host: str = os.getenv("GOALAPP_GATEWAY_HOST", "0.0.0.0")
    port: int = _env_int("GOALAPP_GATEWAY_PORT", 8080)
    log_level: str = os.getenv("GOALAPP_LOG_LEVEL", "INFO")
    gateway_timeout_s: float = _env_float("GOALAPP_GATEWAY_TIMEOUT_S", 30.0)
    routes_path: str | None = os.getenv("GOALAPP_ROUTES_PATH")
    expose_admin: bool = _env_bool("GOALAPP_EXPOSE_ADMIN", True)
    health_path: str = os.getenv("GOALAPP_HEALTH_PATH", "/actuator/health")
    health_timeout_s: float = _env_float("GOALAPP_HEALTH_TIMEOUT_S", 2.0)

    # Event log
    db_path: str = os.getenv("GOALAPP_DB_PATH", "gateway.db")
    enable_event_log: bool = _env_bool("GOALAPP_ENABLE_EVENT_LOG", True)

    # Service-to-service calls
    client_timeout_s: float = _env_float("GOALAPP_CLIENT_TIMEOUT_S", 10.0)

    # Upstreams (fixed for the life of the process)
    user_service_url: str = os.getenv("USER_SERVICE_URL", "http://localhost:8081")
    goal_service_url: str = os.getenv("GOAL_SERVICE_URL", "http://localhost:8082")
    points_service_url: str = os.getenv("POINTS_SERVICE_URL", "http://localhost:8083")
    notification_service_url: str = os.getenv("NOTIFICATION_SERVICE_URL", "http://localhost:8084")
    challenge_service_url: str = os.getenv("CHALLENGE_SERVICE_URL", "http://localhost:8085")

    # CORS (development policy: everything allowed)
    cors_allow_credentials: bool = _env_bool("GOALAPP_CORS_ALLOW_CREDENTIALS", True)
    cors_allowed_origin_patterns: tuple[str, ...] = _env_list("GOALAPP_CORS_ALLOWED_ORIGIN_PATTERNS", "*")
    cors_allowed_methods: tuple[str, ...] = _env_list("GOALAPP_CORS_ALLOWED_METHODS", "*")
    cors_allowed_headers: tuple[str, ...] = _env_list("GOALAPP_CORS_ALLOWED_HEADERS", "*")

    def service_urls(self) -> dict[str, str]:
        return {
            "user-service": self.user_service_url,
            "goal-service": self.goal_service_url,
            "points-service": self.points_service_url,
            "notification-service": self.notification_service_url,
            "challenge-service": self.challenge_service_url,
        }


settings = Settings()
