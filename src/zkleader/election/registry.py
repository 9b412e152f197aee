"""Peer registration and the live peer list."""

from __future__ import annotations

import logging

from zkleader.coordination.session import CoordinationSession
from zkleader.errors import NodeExistsError, NoNodeError, NoParentError, NotConnectedError

logger = logging.getLogger(__name__)

PEER_PREFIX = "peer-"


class PeerRegistry:
    """Registers this process under the peers path and tracks live peers.

    The peer list is always replaced wholesale from a fresh children
    listing, never patched incrementally.
    """

    def __init__(self, peers_path: str, description: str):
        self.peers_path = peers_path
        self.description = description
        self._session: CoordinationSession | None = None
        self._self_id: str | None = None
        self._peers: tuple[str, ...] = ()

    @property
    def self_id(self) -> str | None:
        return self._self_id

    @property
    def peers(self) -> tuple[str, ...]:
        return self._peers

    def attach(self, session: CoordinationSession) -> None:
        """Bind to a new session, forgetting everything tied to the old one."""
        self._session = session
        self.reset()

    def reset(self) -> None:
        self._self_id = None
        self._peers = ()

    def register_self(self) -> str:
        """Create this process's ephemeral sequential peer node.

        Returns:
            The assigned identity, e.g. "peer-0000000003".

        Raises:
            NotConnectedError: No live session.
        """
        session = self._require_session()
        created = session.create(
            f"{self.peers_path}/{PEER_PREFIX}",
            self.description.encode("utf-8"),
            ephemeral=True,
            sequential=True,
        )
        self._self_id = created.path[len(self.peers_path) + 1 :]
        logger.info(f"Registered as peer: {self._self_id}")
        return self._self_id

    def refresh(self) -> tuple[str, ...]:
        """Re-list live peers and re-arm the children watch."""
        session = self._require_session()
        try:
            children = session.get_children(self.peers_path, watch=True)
        except NoNodeError:
            logger.warning(f"Peers path {self.peers_path} does not exist")
            children = []
        self._peers = tuple(sorted(children))
        logger.info(f"Updated peers list: {list(self._peers)}")
        return self._peers

    def describe(self, peer_id: str) -> bytes | None:
        """Read one peer's description payload, or None if it has left."""
        session = self._require_session()
        try:
            data, _ = session.get_data(f"{self.peers_path}/{peer_id}")
        except NoNodeError:
            return None
        return data

    def ensure_path_exists(self, path: str) -> None:
        """Create a persistent node at ``path`` unless one exists.

        Losing a creation race to another process counts as success. A
        missing parent is created first, recursively, and the child is then
        retried; the recursion ends at the namespace root, which always
        exists.
        """
        session = self._require_session()
        if session.exists(path) is not None:
            return
        try:
            session.create(path)
            logger.info(f"Created path: {path}")
        except NodeExistsError:
            logger.debug(f"Path already exists: {path}")
        except NoParentError:
            parent = path.rsplit("/", 1)[0]
            if not parent:
                raise
            self.ensure_path_exists(parent)
            self.ensure_path_exists(path)

    def _require_session(self) -> CoordinationSession:
        if self._session is None or not self._session.connected:
            raise NotConnectedError("No connected coordination session")
        return self._session
