"""One election participant: session, registry, engine and expiry handling wired together."""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass, field

from kazoo.client import KazooClient

from zkleader.config import ExpiryPolicy, Settings
from zkleader.coordination.dispatch import DeliveryLoop
from zkleader.coordination.session import ClientFactory, CoordinationSession
from zkleader.election.engine import ElectionEngine
from zkleader.election.reconnect import ReconnectionManager, ReconnectPolicy, Terminate
from zkleader.election.registry import PeerRegistry
from zkleader.election.state import ElectionPaths, ElectionSnapshot

logger = logging.getLogger(__name__)


@dataclass
class NodeConfig:
    """Runtime configuration for an ElectionNode. Timeouts are in seconds."""

    hosts: str
    description: str
    paths: ElectionPaths = field(default_factory=ElectionPaths.for_namespace)
    session_timeout: float = 5.0
    connection_timeout: float = 5.0
    request_timeout: float = 10.0
    wants_to_lead: bool = True
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    @classmethod
    def from_settings(cls, settings: Settings) -> NodeConfig:
        settings.validate_required()
        assert settings.zk_connect_string is not None
        assert settings.my_description is not None
        connection_timeout = settings.connection_timeout / 1000
        return cls(
            hosts=settings.zk_connect_string,
            description=settings.my_description,
            paths=ElectionPaths.for_namespace(settings.zk_namespace),
            session_timeout=settings.session_timeout / 1000,
            connection_timeout=connection_timeout,
            request_timeout=settings.request_timeout,
            wants_to_lead=settings.wants_to_lead,
            reconnect=ReconnectPolicy(
                policy=ExpiryPolicy(settings.expiry_policy),
                delay_initial=settings.reconnect_delay_initial,
                delay_max=settings.reconnect_delay_max,
                multiplier=settings.reconnect_delay_multiplier,
                max_attempts=settings.max_reconnect_attempts,
                connect_timeout=connection_timeout,
            ),
        )


class ElectionNode:
    """Owns every component of one election participant.

    Args:
        config: Node configuration
        client_factory: Builds kazoo clients (tests pass an in-memory fake)
        terminate: Process exit hook used by the fail-fast path
    """

    def __init__(
        self,
        config: NodeConfig,
        client_factory: ClientFactory = KazooClient,
        terminate: Terminate = os._exit,
    ):
        self.config = config
        self._client_factory = client_factory
        self._generations = itertools.count(1)

        self.registry = PeerRegistry(config.paths.peers, config.description)
        self.loop = DeliveryLoop(self._handle)
        self.engine = ElectionEngine(
            config.paths,
            self.registry,
            self.loop,
            wants_to_lead=config.wants_to_lead,
            request_timeout=config.request_timeout,
        )
        self.reconnection = ReconnectionManager(
            self.engine,
            self._new_session,
            config.reconnect,
            terminate=terminate,
        )
        self.engine.set_expiry_handler(self.reconnection.handle_expired)

    def _handle(self, event: object) -> None:
        self.engine.handle(event)  # type: ignore[arg-type]

    def _new_session(self) -> CoordinationSession:
        return CoordinationSession(
            self.config.hosts,
            generation=next(self._generations),
            sink=self.loop.post,
            session_timeout=self.config.session_timeout,
            client_factory=self._client_factory,
        )

    def start(self) -> None:
        """Connect and wait for registration to be processed.

        Raises:
            ConnectionTimeoutError: The ensemble could not be reached in time.
        """
        self.loop.start()
        session = self._new_session()
        self.loop.submit(lambda: self.engine.attach(session), name="attach").result(
            timeout=self.config.request_timeout
        )
        try:
            session.connect(self.config.connection_timeout)
        except Exception:
            session.close()
            self.loop.stop()
            raise
        self.loop.flush(timeout=self.config.request_timeout)
        logger.info(f"Election node started as {self.engine.snapshot().self_id}")

    def stop(self) -> None:
        """Close the session (removing our ephemeral nodes) and stop delivery."""
        self.reconnection.shutdown()
        session = self.engine.session
        if session is not None:
            session.close()
        self.loop.stop()
        logger.info("Election node stopped")

    def snapshot(self) -> ElectionSnapshot:
        return self.engine.snapshot()

    def start_leading(self) -> None:
        self.engine.start_leading()

    def stop_leading(self) -> None:
        self.engine.stop_leading()
