"""Leader election protocol.

Whoever creates the ephemeral leader record first is the leader. Everyone
else watches that record and re-runs the evaluation whenever a watch
fires; when the record disappears (voluntary relinquish, crash, session
expiry), every contender races to create it again and exactly one wins.

Status is always derived from the leader record and this process's
identity:

    LEADING   record payload == our peer id
    WAITING   we want to lead and someone else's record exists
    WATCHING  otherwise (including while disconnected)

All methods that touch state run on the delivery loop thread. The public
``start_leading``/``stop_leading`` commands may be called from any thread;
they are queued onto the loop and waited for.

Example:
    engine = ElectionEngine(paths, registry, loop, wants_to_lead=True)
    engine.attach(session)
    loop.start()
    session.connect(timeout=5)   # CONNECTED event drives registration

    engine.status()              # ElectionStatus.LEADING / WAITING / WATCHING
    engine.stop_leading()        # relinquish and keep observing
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable

from zkleader.coordination.dispatch import DeliveryLoop
from zkleader.coordination.events import (
    ChildrenChanged,
    ConnectionEvent,
    ConnectionState,
    PathEvent,
    SessionEvent,
)
from zkleader.coordination.session import CoordinationSession
from zkleader.election.registry import PeerRegistry
from zkleader.election.state import (
    ConnectionStatus,
    ElectionPaths,
    ElectionSnapshot,
    ElectionStatus,
    LeaderClaim,
    PathRole,
)
from zkleader.errors import (
    CommandTimeoutError,
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    NotConnectedError,
    VersionMismatchError,
)
from zkleader.observability.logging import peer_id_var, session_generation_var
from zkleader.observability.metrics import (
    record_leadership_acquired,
    record_race_lost,
    set_election_status,
)

logger = logging.getLogger(__name__)

ExpiryHandler = Callable[[int], None]


class ElectionEngine:
    """Election protocol and status state machine for one process.

    Args:
        paths: Peers and leader paths
        registry: Peer registry sharing this engine's session
        loop: Delivery loop all events and commands run on
        wants_to_lead: Initial intent
        request_timeout: How long control commands wait for the loop
    """

    def __init__(
        self,
        paths: ElectionPaths,
        registry: PeerRegistry,
        loop: DeliveryLoop,
        *,
        wants_to_lead: bool = True,
        request_timeout: float = 10.0,
    ):
        self.paths = paths
        self.registry = registry
        self._loop = loop
        self._request_timeout = request_timeout

        self._session: CoordinationSession | None = None
        self._generation = 0
        self._registered = False

        self._wants_to_lead = wants_to_lead
        self._status = ElectionStatus.WATCHING
        self._connection = ConnectionStatus.DISCONNECTED
        self._leader_id: str | None = None
        self._claim: LeaderClaim | None = None

        self._expiry_handler: ExpiryHandler | None = None
        self._lock = threading.Lock()
        self._snapshot = self._build_snapshot()

    # -------------------------------------------------------------------------
    # Read side (any thread)
    # -------------------------------------------------------------------------

    def snapshot(self) -> ElectionSnapshot:
        with self._lock:
            return self._snapshot

    def status(self) -> ElectionStatus:
        return self.snapshot().status

    def connection_status(self) -> ConnectionStatus:
        return self.snapshot().connection

    def current_leader_id(self) -> str | None:
        return self.snapshot().leader_id

    @property
    def session(self) -> CoordinationSession | None:
        return self._session

    @property
    def claim(self) -> LeaderClaim | None:
        return self._claim

    # -------------------------------------------------------------------------
    # Control commands (any thread)
    # -------------------------------------------------------------------------

    def start_leading(self) -> None:
        """Declare intent to lead and contend if connected."""
        self._run_command("start_leading", self._start_leading)

    def stop_leading(self) -> None:
        """Withdraw intent, relinquishing leadership if held."""
        self._run_command("stop_leading", self._stop_leading)

    def _run_command(self, name: str, fn: Callable[[], None]) -> None:
        if self._loop.in_loop():
            fn()
            return
        future = self._loop.submit(fn, name=name)
        try:
            future.result(timeout=self._request_timeout)
        except FutureTimeoutError as e:
            raise CommandTimeoutError(name, self._request_timeout) from e

    # -------------------------------------------------------------------------
    # Session wiring (delivery loop)
    # -------------------------------------------------------------------------

    def attach(self, session: CoordinationSession) -> None:
        """Adopt a new session; events from any earlier session are ignored."""
        self._session = session
        self._generation = session.generation
        self._registered = False
        self.registry.attach(session)
        session_generation_var.set(session.generation)
        self._publish()

    def set_expiry_handler(self, handler: ExpiryHandler) -> None:
        self._expiry_handler = handler

    def reset(self) -> None:
        """Drop everything tied to the current session. Intent is kept."""
        self._registered = False
        self._connection = ConnectionStatus.DISCONNECTED
        self._status = ElectionStatus.WATCHING
        self._leader_id = None
        self._claim = None
        self.registry.reset()
        peer_id_var.set("")
        self._publish()

    def handle(self, event: SessionEvent) -> None:
        """Dispatch one session event. Runs on the delivery loop."""
        if event.generation != self._generation:
            logger.debug(f"Dropping {event!r} from stale session {event.generation}")
            return

        if isinstance(event, ConnectionEvent):
            self._on_connection_state(event.state)
        elif isinstance(event, PathEvent):
            self._on_path_event(event)
        else:
            logger.warning(f"Unknown event type: {event!r}")

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state is ConnectionState.CONNECTED:
            self._connection = ConnectionStatus.CONNECTED
            logger.info("Connected to ZooKeeper")
            self.on_connected()
        elif state is ConnectionState.SUSPENDED:
            # Cannot vouch for the leader record until the connection is back
            self._connection = ConnectionStatus.DISCONNECTED
            self._status = ElectionStatus.WATCHING
            self._publish()
        elif state is ConnectionState.EXPIRED:
            generation = self._generation
            self.reset()
            if self._expiry_handler is not None:
                self._expiry_handler(generation)

    def _on_path_event(self, event: PathEvent) -> None:
        if not self._registered:
            logger.debug(f"Ignoring {event!r} before registration")
            return

        role = self.paths.role_of(event.path)
        if role is PathRole.PEERS:
            if not isinstance(event, ChildrenChanged):
                logger.warning(f"Peers path event {type(event).__name__}, re-listing")
            self._refresh_peers()
        elif role is PathRole.LEADER:
            self.evaluate_leader()
        else:
            logger.debug(f"Ignoring event for unknown path {event.path}")

    # -------------------------------------------------------------------------
    # Protocol (delivery loop)
    # -------------------------------------------------------------------------

    def on_connected(self) -> None:
        """Register on the first connection of a session, else re-arm watches."""
        if not self._registered:
            self._register()
            return
        self._refresh_peers()
        self.evaluate_leader()

    def _register(self) -> None:
        try:
            self.registry.ensure_path_exists(self.paths.peers)
            self_id = self.registry.register_self()
        except (CoordinationError, NotConnectedError) as e:
            # Retried on the next CONNECTED of this session
            logger.error(f"Registration failed: {e}")
            self._publish()
            return

        peer_id_var.set(self_id)
        self._registered = True
        self._refresh_peers()
        self.evaluate_leader()

    def _refresh_peers(self) -> None:
        try:
            self.registry.refresh()
        except (CoordinationError, NotConnectedError) as e:
            logger.error(f"Error updating peers list: {e}")
        self._publish()

    def evaluate_leader(self) -> None:
        """Read the leader record with a fresh watch and derive status."""
        if not self._can_act():
            self._publish()
            return

        session = self._session
        assert session is not None
        try:
            stat = session.exists(self.paths.leader, watch=True)
            if stat is None:
                self._on_vacancy()
                return
            try:
                data, stat = session.get_data(self.paths.leader, watch=True)
            except NoNodeError:
                # Deleted between exists and get; the exists watch will also fire
                logger.info("Leader record vanished while reading it")
                self._on_vacancy()
                return
        except CoordinationError as e:
            logger.error(f"Error watching leader: {e}")
            self._publish()
            return

        leader_id = data.decode("utf-8")
        self._leader_id = leader_id
        logger.info(f"Current leader is: {leader_id}")

        if leader_id == self.registry.self_id:
            if self._claim is None or self._claim.czxid != stat.czxid:
                # Our create succeeded but its reply was lost
                self._claim = LeaderClaim(czxid=stat.czxid, version=stat.version)
            if not self._wants_to_lead:
                # A record we no longer want; the delete fires our watch
                self._relinquish()
                self._status = ElectionStatus.WATCHING
                self._leader_id = None
                self._claim = None
            else:
                self._status = ElectionStatus.LEADING
        elif self._wants_to_lead:
            self._claim = None
            self._status = ElectionStatus.WAITING
        else:
            self._claim = None
            self._status = ElectionStatus.WATCHING
        self._publish()

    def _on_vacancy(self) -> None:
        self._leader_id = None
        self._claim = None
        logger.info("No current leader")
        if self._wants_to_lead:
            self.try_become_leader()
        else:
            self._status = ElectionStatus.WATCHING
            self._publish()

    def try_become_leader(self) -> None:
        """Race to create the leader record with our id as payload."""
        session = self._session
        self_id = self.registry.self_id
        if session is None or self_id is None:
            return

        try:
            created = session.create(
                self.paths.leader,
                self_id.encode("utf-8"),
                ephemeral=True,
            )
        except NodeExistsError:
            logger.info("Failed to become leader, node already exists")
            record_race_lost()
            self._status = ElectionStatus.WAITING
            self.evaluate_leader()
            return
        except CoordinationError as e:
            logger.error(f"Error trying to become leader: {e}")
            self._status = ElectionStatus.WAITING
            self._leader_id = None
            self._publish()
            return

        self._claim = LeaderClaim(czxid=created.stat.czxid, version=created.stat.version)
        self._leader_id = self_id
        self._status = ElectionStatus.LEADING
        record_leadership_acquired()
        logger.info("Successfully became leader!")
        self._publish()

    def _start_leading(self) -> None:
        # WAITING without a known leader means the last create failed; try again
        if self._status is ElectionStatus.LEADING or (
            self._status is ElectionStatus.WAITING and self._leader_id is not None
        ):
            self._wants_to_lead = True
            logger.debug(f"Already contending ({self._status.value})")
            return

        self._wants_to_lead = True
        logger.info("Now trying to become leader")
        if self._can_act():
            self.evaluate_leader()
        else:
            # Honoured by the registration sequence once connected
            self._publish()

    def _stop_leading(self) -> None:
        self._wants_to_lead = False
        logger.info("Now watching (not trying to lead)")

        if self._status is ElectionStatus.LEADING:
            self._relinquish()

        self._status = ElectionStatus.WATCHING
        self._leader_id = None
        self._claim = None
        self._publish()

        # Keep observing without contending; an in-flight outcome is re-derived here
        if self._can_act():
            self.evaluate_leader()

    def _relinquish(self) -> None:
        """Delete the leader record, but only the one this process created."""
        session = self._session
        claim = self._claim
        if session is None or claim is None:
            logger.warning("No leader claim held, leaving leader record in place")
            return

        try:
            stat = session.exists(self.paths.leader)
            if stat is None:
                logger.info("Leader record already gone")
                return
            if stat.czxid != claim.czxid:
                logger.warning("Leader record belongs to a later epoch, not deleting it")
                return
            session.delete(self.paths.leader, version=claim.version)
            logger.info("Gave up leadership")
        except VersionMismatchError:
            logger.warning("Leader record version moved on, not deleting it")
        except NoNodeError:
            logger.info("Leader record already gone")
        except CoordinationError as e:
            logger.error(f"Error giving up leadership: {e}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _can_act(self) -> bool:
        return (
            self._session is not None
            and self._registered
            and self._connection is ConnectionStatus.CONNECTED
        )

    def _build_snapshot(self) -> ElectionSnapshot:
        return ElectionSnapshot(
            status=self._status,
            connection=self._connection,
            leader_id=self._leader_id,
            self_id=self.registry.self_id,
            description=self.registry.description,
            peers=self.registry.peers,
            wants_to_lead=self._wants_to_lead,
            generation=self._generation,
        )

    def _publish(self) -> None:
        snapshot = self._build_snapshot()
        with self._lock:
            self._snapshot = snapshot
        set_election_status(
            snapshot.status.value,
            snapshot.connection is ConnectionStatus.CONNECTED,
            len(snapshot.peers),
        )
