from __future__ import annotations

import time

import httpx


def check_health(url: str, timeout_s: float = 2.0, transport: httpx.BaseTransport | None = None) -> tuple[bool, str, float | None]:
    """Call an upstream health endpoint.

    Expected JSON: {"status": "UP"} (Spring actuator) or {"status": "healthy"}.
    Returns (is_healthy, message, latency_ms).
    """
    start = time.time()
    try:
        with httpx.Client(timeout=timeout_s, follow_redirects=False, transport=transport) as client:
            resp = client.get(url)
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if resp.status_code != 200:
            return False, f"HTTP {resp.status_code}", latency_ms
        try:
            data = resp.json()
        except ValueError:
            return False, "Invalid JSON", latency_ms
        if isinstance(data, dict) and str(data.get("status", "")).lower() in {"up", "healthy"}:
            return True, "Healthy", latency_ms
        return False, f"Unhealthy payload: {data!r}", latency_ms
    except httpx.TimeoutException:
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, "Timeout", latency_ms
    except httpx.TransportError as e:
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, f"No response: {type(e).__name__}", latency_ms
