"""Shared FastAPI dependencies for zkleader routers."""

from __future__ import annotations

from fastapi import Request

from zkleader.api.errors import ServiceUnavailableError
from zkleader.election.node import ElectionNode


def get_node(request: Request) -> ElectionNode:
    """FastAPI dependency returning the election node started by the lifespan."""
    node: ElectionNode | None = getattr(request.app.state, "node", None)
    if node is None:
        raise ServiceUnavailableError("Election node is not running")
    return node
