"""Leader status and control endpoints.

- GET  /leader        - election status, leader and peers
- POST /leader/watch  - stop contending (relinquishing leadership if held)
- POST /leader/lead   - start contending
"""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from zkleader.api.deps import get_node
from zkleader.election.node import ElectionNode

router = APIRouter(prefix="/leader", tags=["leader"])

WATCHING_TEXT = "Now watching (not trying to lead)"
LEADING_TEXT = "Now trying to become leader"


class LeaderResponse(BaseModel):
    """Election view of this process."""

    status: str
    zookeeper: str
    leader: str | None
    myid: str | None
    description: str
    peers: list[str]


@router.get("", response_model=LeaderResponse, summary="Election status")
async def get_leader(node: Annotated[ElectionNode, Depends(get_node)]) -> LeaderResponse:
    snapshot = node.snapshot()
    return LeaderResponse(
        status=snapshot.status.value,
        zookeeper=snapshot.connection.value,
        leader=snapshot.leader_id,
        myid=snapshot.self_id,
        description=snapshot.description,
        peers=list(snapshot.peers),
    )


@router.post("/watch", response_class=PlainTextResponse, summary="Stop contending")
async def watch(node: Annotated[ElectionNode, Depends(get_node)]) -> PlainTextResponse:
    """Withdraw from the election, giving up leadership if held."""
    await asyncio.to_thread(node.stop_leading)
    return PlainTextResponse(WATCHING_TEXT)


@router.post("/lead", response_class=PlainTextResponse, summary="Start contending")
async def lead(node: Annotated[ElectionNode, Depends(get_node)]) -> PlainTextResponse:
    """Join the election. A no-op while leading or waiting on a known leader."""
    await asyncio.to_thread(node.start_leading)
    return PlainTextResponse(LEADING_TEXT)
