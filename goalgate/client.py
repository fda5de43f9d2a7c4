"""Blocking service-to-service client.

Every call returns a CallResult: either a typed value or a CallFailure.
Nothing is retried, cached or defaulted; a failure here is meant to become a
failure of the caller's own request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from .api_models import UserDto
from .registry import ServiceResolver, UnknownService
from .settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

UNKNOWN_SERVICE = "unknown_service"
UNAVAILABLE = "unavailable"
TIMEOUT = "timeout"
UPSTREAM_ERROR = "upstream_error"
DESERIALIZATION = "deserialization"


@dataclass(frozen=True)
class CallFailure:
    kind: str
    message: str
    status_code: int | None = None
    body: str | None = None

    def http_status(self) -> int:
        """Status a calling service should answer with for this failure."""
        if self.kind == UPSTREAM_ERROR and self.status_code == 404:
            return 404
        if self.kind == UNAVAILABLE:
            return 503
        if self.kind == TIMEOUT:
            return 504
        return 502


@dataclass(frozen=True)
class CallResult(Generic[T]):
    value: T | None = None
    failure: CallFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class ServiceClient:
    """Calls one named upstream service.

    `call` blocks until the upstream answers or `timeout_s` elapses.
    """

    def __init__(
        self,
        service: str,
        resolver: ServiceResolver,
        timeout_s: float | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.service = service
        self.resolver = resolver
        self.timeout_s = settings.client_timeout_s if timeout_s is None else timeout_s
        self._http = http or httpx.Client(timeout=self.timeout_s, follow_redirects=False)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ServiceClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def call(self, method: str, path_template: str, response_model: Type[T], **path_params: Any) -> CallResult[T]:
        try:
            base_url = self.resolver.resolve(self.service)
        except UnknownService as e:
            return CallResult(failure=CallFailure(UNKNOWN_SERVICE, str(e)))

        path = path_template.format(**{k: quote(str(v), safe="") for k, v in path_params.items()})
        url = f"{base_url}{path}"
        try:
            resp = self._http.request(method, url, timeout=self.timeout_s)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out: %s", method, url, e)
            return CallResult(failure=CallFailure(TIMEOUT, f"{self.service} timed out"))
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s: %s", method, url, type(e).__name__, e)
            return CallResult(failure=CallFailure(UNAVAILABLE, f"{self.service} unreachable: {type(e).__name__}"))

        if not resp.is_success:
            return CallResult(
                failure=CallFailure(
                    UPSTREAM_ERROR,
                    f"{self.service} answered HTTP {resp.status_code}",
                    status_code=resp.status_code,
                    body=resp.text,
                )
            )

        try:
            value = response_model.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.warning("%s %s returned an unexpected body: %s", method, url, e)
            return CallResult(
                failure=CallFailure(
                    DESERIALIZATION,
                    f"{self.service} returned a body that is not a {response_model.__name__}",
                    status_code=resp.status_code,
                    body=resp.text,
                )
            )
        return CallResult(value=value)


class UserClient(ServiceClient):
    def __init__(self, resolver: ServiceResolver, timeout_s: float | None = None, http: httpx.Client | None = None) -> None:
        super().__init__("user-service", resolver, timeout_s=timeout_s, http=http)

    def get_user_by_id(self, user_id: int) -> CallResult[UserDto]:
        return self.call("GET", "/api/users/{id}", UserDto, id=user_id)
