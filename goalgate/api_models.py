from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RouteSpec(BaseModel):
    id: str = Field(..., min_length=1, description="Route id, e.g. user-service")
    paths: list[str] = Field(..., min_length=1, description="Path patterns, e.g. /api/users/**")
    service: str = Field(..., min_length=1, description="Logical upstream service name")


class RoutesFile(BaseModel):
    routes: list[RouteSpec] = Field(default_factory=list)


class RouteOut(BaseModel):
    id: str
    paths: list[str]
    service: str
    upstream: str | None = Field(None, description="Resolved base URL, null if unregistered")


class UpstreamHealth(BaseModel):
    service: str
    url: str
    healthy: bool
    message: str
    latency_ms: float | None = None


class GatewayHealth(BaseModel):
    status: str = "UP"
    upstreams: list[UpstreamHealth] = Field(default_factory=list)


class UserDto(BaseModel):
    """User payload owned by the user service. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: str | None = None
    username: str | None = None
    email: str | None = None
