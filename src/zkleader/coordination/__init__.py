"""Coordination-service plumbing for zkleader.

- CoordinationSession: one kazoo-backed ZooKeeper session
- DeliveryLoop: the single thread every notification is handled on
- Tagged events produced by sessions
"""

from zkleader.coordination.dispatch import DeliveryLoop
from zkleader.coordination.events import (
    ChildrenChanged,
    ConnectionEvent,
    ConnectionState,
    DataChanged,
    NodeCreated,
    NodeDeleted,
    PathEvent,
    SessionEvent,
)
from zkleader.coordination.session import CoordinationSession, CreatedNode, NodeStat

__all__ = [
    "ChildrenChanged",
    "ConnectionEvent",
    "ConnectionState",
    "CoordinationSession",
    "CreatedNode",
    "DataChanged",
    "DeliveryLoop",
    "NodeCreated",
    "NodeDeleted",
    "NodeStat",
    "PathEvent",
    "SessionEvent",
]
