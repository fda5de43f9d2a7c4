from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol

from .settings import Settings


class UnknownService(Exception):
    pass


@dataclass(frozen=True)
class ServiceAddress:
    name: str
    base_url: str


class ServiceResolver(Protocol):
    def resolve(self, service: str) -> str:
        """Return the base URL for a logical service name."""
        ...


class StaticRegistry:
    """Fixed service name -> base URL mapping, built once at startup."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._addresses: dict[str, ServiceAddress] = {}
        for name, url in mapping.items():
            url = (url or "").strip().rstrip("/")
            if not name or not url:
                raise ValueError(f"Invalid registry entry {name!r} -> {url!r}")
            self._addresses[name] = ServiceAddress(name=name, base_url=url)

    def resolve(self, service: str) -> str:
        addr = self._addresses.get(service)
        if addr is None:
            raise UnknownService(f"Service '{service}' is not registered.")
        return addr.base_url

    def names(self) -> list[str]:
        return list(self._addresses)

    def addresses(self) -> list[ServiceAddress]:
        return list(self._addresses.values())


def registry_from_settings(cfg: Settings) -> StaticRegistry:
    return StaticRegistry(cfg.service_urls())
