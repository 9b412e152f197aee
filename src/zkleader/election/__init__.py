"""Leader election for zkleader.

- PeerRegistry: ephemeral sequential peer registration and peer list
- ElectionEngine: the leader-record protocol and status state machine
- ReconnectionManager: session expiry policies
- ElectionNode: all of the above wired to one session
"""

from zkleader.election.engine import ElectionEngine
from zkleader.election.node import ElectionNode, NodeConfig
from zkleader.election.reconnect import ReconnectionManager, ReconnectPolicy
from zkleader.election.registry import PeerRegistry
from zkleader.election.state import (
    ConnectionStatus,
    ElectionPaths,
    ElectionSnapshot,
    ElectionStatus,
    LeaderClaim,
)

__all__ = [
    "ConnectionStatus",
    "ElectionEngine",
    "ElectionNode",
    "ElectionPaths",
    "ElectionSnapshot",
    "ElectionStatus",
    "LeaderClaim",
    "NodeConfig",
    "PeerRegistry",
    "ReconnectPolicy",
    "ReconnectionManager",
]
