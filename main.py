"""Gateway process entry point.

    python main.py                # listens on GOALAPP_GATEWAY_HOST:GOALAPP_GATEWAY_PORT
    uvicorn main:app --port 8080
"""
from __future__ import annotations

import logging

import uvicorn

from goalgate.app import create_app
from goalgate.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
