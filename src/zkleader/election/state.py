"""Election state types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ElectionStatus(str, Enum):
    """Derived election status of this process."""

    WATCHING = "WATCHING"  # Not contending, or cannot tell (disconnected)
    WAITING = "WAITING"  # Contending, someone else holds the leader record
    LEADING = "LEADING"  # The leader record carries this process's id


class ConnectionStatus(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"


class PathRole(str, Enum):
    PEERS = "peers"
    LEADER = "leader"


@dataclass(frozen=True)
class ElectionPaths:
    """Well-known paths, optionally under a namespace prefix."""

    peers: str
    leader: str

    @classmethod
    def for_namespace(cls, namespace: str = "") -> ElectionPaths:
        namespace = namespace.strip("/")
        prefix = f"/{namespace}" if namespace else ""
        return cls(peers=f"{prefix}/peers", leader=f"{prefix}/leader")

    def role_of(self, path: str) -> PathRole | None:
        if path == self.peers:
            return PathRole.PEERS
        if path == self.leader:
            return PathRole.LEADER
        return None


@dataclass(frozen=True)
class LeaderClaim:
    """Identity of the leader record this process created.

    ``czxid`` pins the record to one epoch; ``version`` is what a
    conditional delete must present.
    """

    czxid: int
    version: int


@dataclass(frozen=True)
class ElectionSnapshot:
    """Consistent, read-only view of election state."""

    status: ElectionStatus
    connection: ConnectionStatus
    leader_id: str | None
    self_id: str | None
    description: str
    peers: tuple[str, ...]
    wants_to_lead: bool
    generation: int
