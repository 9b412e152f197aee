"""Tagged events delivered from a coordination session.

Every event carries the generation number of the session that produced
it, so consumers can discard anything left over from a session they have
already abandoned.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConnectionState(str, Enum):
    """Session connection states as seen by the election client."""

    CONNECTED = "CONNECTED"
    # Connection dropped; the session (and its ephemeral nodes) may survive
    SUSPENDED = "SUSPENDED"
    # Session is gone along with all of its ephemeral nodes
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class SessionEvent:
    generation: int


@dataclass(frozen=True)
class ConnectionEvent(SessionEvent):
    state: ConnectionState


@dataclass(frozen=True)
class PathEvent(SessionEvent):
    path: str


@dataclass(frozen=True)
class ChildrenChanged(PathEvent):
    pass


@dataclass(frozen=True)
class DataChanged(PathEvent):
    pass


@dataclass(frozen=True)
class NodeCreated(PathEvent):
    pass


@dataclass(frozen=True)
class NodeDeleted(PathEvent):
    pass
