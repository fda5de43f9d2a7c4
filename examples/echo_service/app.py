from __future__ import annotations

import base64
import os

from fastapi import FastAPI, Request


NAME = os.getenv("ECHO_NAME", "echo")

app = FastAPI(title=f"Echo Service {NAME}")


@app.get("/actuator/health")
def health() -> dict[str, str]:
    return {"status": "UP"}


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def echo(path: str, request: Request):
    # Reflects what arrived so gateway pass-through can be checked by eye.
    body = await request.body()
    return {
        "service": NAME,
        "method": request.method,
        "path": request.url.path,
        "query": request.url.query,
        "headers": [[k, v] for k, v in request.headers.items()],
        "body_b64": base64.b64encode(body).decode("ascii"),
    }
