import os
import sys

# Ensure project root is importable (so `import services...` works reliably across environments)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import httpx
import pytest

from goalgate.settings import Settings


UPSTREAMS = {
    "user-service": "http://user.test",
    "goal-service": "http://goal.test",
    "points-service": "http://points.test",
    "notification-service": "http://notification.test",
    "challenge-service": "http://challenge.test",
}


class Upstream:
    """Stub upstream for httpx.MockTransport that records what reached it.

    By default every request is answered with 200, an X-Upstream header
    naming the host and a body of "<METHOD> <path>".
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.respond = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.respond is not None:
            return self.respond(request)
        return httpx.Response(
            200,
            headers={"X-Upstream": request.url.host},
            content=f"{request.method} {request.url.path}".encode(),
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def cfg(tmp_path):
    return Settings(
        db_path=str(tmp_path / "gateway.db"),
        gateway_timeout_s=5.0,
        user_service_url=UPSTREAMS["user-service"],
        goal_service_url=UPSTREAMS["goal-service"],
        points_service_url=UPSTREAMS["points-service"],
        notification_service_url=UPSTREAMS["notification-service"],
        challenge_service_url=UPSTREAMS["challenge-service"],
    )


@pytest.fixture
def upstream():
    return Upstream()
