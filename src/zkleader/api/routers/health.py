"""Health check endpoints for zkleader.

- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (session connected and peer registered)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from zkleader.election.state import ConnectionStatus

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/ready")
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe.

    Ready once the coordination session is connected and this process
    holds a peer identity. Returns 503 otherwise.
    """
    node = getattr(request.app.state, "node", None)
    if node is None:
        return JSONResponse(status_code=503, content={"ready": False, "reason": "not started"})

    snapshot = node.snapshot()
    body: dict[str, Any] = {
        "zookeeper": snapshot.connection.value,
        "myid": snapshot.self_id,
        "status": snapshot.status.value,
    }
    if snapshot.connection is not ConnectionStatus.CONNECTED or snapshot.self_id is None:
        return JSONResponse(status_code=503, content={"ready": False, **body})
    return JSONResponse(status_code=200, content={"ready": True, **body})
