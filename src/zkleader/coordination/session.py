"""ZooKeeper session adapter.

Wraps a kazoo client and exposes the handful of primitives the election
protocol needs. Kazoo exceptions are translated into the zkleader error
hierarchy, and kazoo's connection-state listener and watch callbacks are
turned into tagged events pushed into a sink (normally the delivery
loop's ``post``). Callbacks never perform remote calls themselves.

Watches are one-shot: every call made with ``watch=True`` registers
interest in at most one future notification for that path.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from kazoo import exceptions as kz
from kazoo.client import KazooClient
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType, KazooState, WatchedEvent

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
from zkleader.errors import (
    ConnectionTimeoutError,
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    NoParentError,
    SessionExpiredError,
    VersionMismatchError,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[SessionEvent], None]
ClientFactory = Callable[..., Any]

_PATH_EVENTS: dict[str, type[PathEvent]] = {
    EventType.CHILD: ChildrenChanged,
    EventType.CHANGED: DataChanged,
    EventType.CREATED: NodeCreated,
    EventType.DELETED: NodeDeleted,
}


@dataclass(frozen=True)
class NodeStat:
    """The parts of a znode stat the election protocol relies on."""

    czxid: int
    version: int
    ephemeral_owner: int

    @classmethod
    def from_znode(cls, stat: Any) -> NodeStat:
        return cls(czxid=stat.czxid, version=stat.version, ephemeral_owner=stat.ephemeralOwner)


@dataclass(frozen=True)
class CreatedNode:
    path: str
    stat: NodeStat


class CoordinationSession:
    """One ZooKeeper session and its event stream.

    Args:
        hosts: Ensemble connect string (e.g. "zk1:2181,zk2:2181")
        generation: Monotonic number tagging every event from this session
        sink: Receives ConnectionEvent and PathEvent instances
        session_timeout: Session timeout in seconds
        client_factory: Builds the kazoo client (KazooClient by default)
    """

    def __init__(
        self,
        hosts: str,
        *,
        generation: int,
        sink: EventSink,
        session_timeout: float = 5.0,
        client_factory: ClientFactory = KazooClient,
    ) -> None:
        self.hosts = hosts
        self.generation = generation
        self._sink = sink
        self._live = threading.Event()
        self._closing = False
        self._client = client_factory(hosts=hosts, timeout=session_timeout)
        self._client.add_listener(self._on_state_change)

    @property
    def connected(self) -> bool:
        return self._live.is_set()

    @property
    def session_id(self) -> int | None:
        client_id = self._client.client_id
        return client_id[0] if client_id else None

    def connect(self, timeout: float) -> None:
        """Open the session, blocking until CONNECTED or the timeout elapses.

        Raises:
            ConnectionTimeoutError: The session never reached CONNECTED.
        """
        logger.info(f"Connecting to ZooKeeper at {self.hosts} (session {self.generation})")
        try:
            self._client.start(timeout=timeout)
        except KazooTimeoutError as e:
            raise ConnectionTimeoutError(self.hosts, timeout) from e

        # The listener may run on kazoo's connection thread after start() returns
        if not self._live.wait(timeout):
            raise ConnectionTimeoutError(self.hosts, timeout)

    def close(self) -> None:
        """Stop and close the client. Idempotent.

        Closing ends the session, so every ephemeral node it owns is removed.
        """
        if self._closing:
            return
        self._closing = True
        self._live.clear()
        try:
            self._client.stop()
            self._client.close()
        except (kz.KazooException, KazooTimeoutError) as e:
            logger.warning(f"Error closing ZooKeeper session {self.generation}: {e}")
        logger.info(f"ZooKeeper session {self.generation} closed")

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    def create(
        self,
        path: str,
        data: bytes = b"",
        *,
        ephemeral: bool = False,
        sequential: bool = False,
    ) -> CreatedNode:
        """Create a node, returning the assigned path and its initial stat.

        Raises:
            NodeExistsError: A node already exists at the path.
            NoParentError: The parent path does not exist.
        """
        try:
            created_path, stat = self._client.create(
                path,
                data,
                ephemeral=ephemeral,
                sequence=sequential,
                include_data=True,
            )
        except kz.NodeExistsError as e:
            raise NodeExistsError(path) from e
        except kz.NoNodeError as e:
            raise NoParentError(path) from e
        except (kz.KazooException, KazooTimeoutError) as e:
            raise self._translate("create", path, e) from e
        return CreatedNode(path=created_path, stat=NodeStat.from_znode(stat))

    def delete(self, path: str, version: int) -> None:
        """Delete a node only if its data version still equals ``version``.

        Raises:
            VersionMismatchError: The node's version has moved on.
            NoNodeError: The node does not exist.
        """
        try:
            self._client.delete(path, version=version)
        except kz.BadVersionError as e:
            raise VersionMismatchError(path, version) from e
        except kz.NoNodeError as e:
            raise NoNodeError("delete", path) from e
        except (kz.KazooException, KazooTimeoutError) as e:
            raise self._translate("delete", path, e) from e

    def exists(self, path: str, watch: bool = False) -> NodeStat | None:
        try:
            stat = self._client.exists(path, watch=self._watcher(watch))
        except (kz.KazooException, KazooTimeoutError) as e:
            raise self._translate("exists", path, e) from e
        return NodeStat.from_znode(stat) if stat is not None else None

    def get_data(self, path: str, watch: bool = False) -> tuple[bytes, NodeStat]:
        """Read a node's payload.

        Raises:
            NoNodeError: The node does not exist.
        """
        try:
            data, stat = self._client.get(path, watch=self._watcher(watch))
        except kz.NoNodeError as e:
            raise NoNodeError("get_data", path) from e
        except (kz.KazooException, KazooTimeoutError) as e:
            raise self._translate("get_data", path, e) from e
        return data or b"", NodeStat.from_znode(stat)

    def get_children(self, path: str, watch: bool = False) -> list[str]:
        """List a node's children, sorted.

        Raises:
            NoNodeError: The node does not exist.
        """
        try:
            children = self._client.get_children(path, watch=self._watcher(watch))
        except kz.NoNodeError as e:
            raise NoNodeError("get_children", path) from e
        except (kz.KazooException, KazooTimeoutError) as e:
            raise self._translate("get_children", path, e) from e
        return sorted(children)

    # -------------------------------------------------------------------------
    # Callbacks (run on kazoo's threads)
    # -------------------------------------------------------------------------

    def _watcher(self, watch: bool) -> Callable[[WatchedEvent], None] | None:
        return self._on_watch if watch else None

    def _on_state_change(self, state: str) -> None:
        if state == KazooState.CONNECTED:
            # Queue CONNECTED before connect() can return
            self._emit(ConnectionEvent(generation=self.generation, state=ConnectionState.CONNECTED))
            self._live.set()
        elif state == KazooState.SUSPENDED:
            self._live.clear()
            logger.warning(f"Disconnected from ZooKeeper (session {self.generation})")
            self._emit(ConnectionEvent(generation=self.generation, state=ConnectionState.SUSPENDED))
        elif state == KazooState.LOST:
            self._live.clear()
            if self._closing:
                return
            logger.error(f"ZooKeeper session {self.generation} expired")
            self._emit(ConnectionEvent(generation=self.generation, state=ConnectionState.EXPIRED))

    def _on_watch(self, event: WatchedEvent) -> None:
        event_cls = _PATH_EVENTS.get(event.type)
        if event_cls is None or event.path is None:
            # Kazoo fires NONE events at pending watchers when a session ends
            return
        self._emit(event_cls(generation=self.generation, path=event.path))

    def _emit(self, event: SessionEvent) -> None:
        if self._closing:
            return
        self._sink(event)

    def _translate(self, operation: str, path: str, error: Exception) -> CoordinationError:
        if isinstance(error, kz.SessionExpiredError):
            return SessionExpiredError(operation, path)
        return CoordinationError(operation, path, f"{type(error).__name__}: {error}")
