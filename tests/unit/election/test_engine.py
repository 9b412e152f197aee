"""Tests for the election engine against a scripted session."""

from __future__ import annotations

from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from zkleader.coordination.events import (
    ConnectionEvent,
    ConnectionState,
    DataChanged,
    NodeDeleted,
)
from zkleader.coordination.session import CreatedNode, NodeStat
from zkleader.election.engine import ElectionEngine
from zkleader.election.registry import PeerRegistry
from zkleader.election.state import ConnectionStatus, ElectionPaths, ElectionStatus, LeaderClaim
from zkleader.errors import (
    CommandTimeoutError,
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    VersionMismatchError,
)

SELF_ID = "peer-0000000001"
OTHER_ID = "peer-0000000000"


class ScriptedZooKeeper:
    """Backs a MagicMock session with a single, directly editable leader record."""

    def __init__(self) -> None:
        self.leader: tuple[bytes, NodeStat] | None = None
        self.next_czxid = 10
        self.hide_leader_once = False

    def install(self, session: MagicMock) -> None:
        session.exists.side_effect = self.exists
        session.create.side_effect = self.create
        session.get_data.side_effect = self.get_data
        session.get_children.side_effect = lambda path, watch=False: [OTHER_ID, SELF_ID]

    def set_leader(self, peer_id: str, czxid: int = 5, version: int = 0) -> None:
        self.leader = (peer_id.encode(), NodeStat(czxid=czxid, version=version, ephemeral_owner=1))

    def exists(self, path: str, watch: bool = False) -> NodeStat | None:
        if path == "/peers":
            return NodeStat(czxid=1, version=0, ephemeral_owner=0)
        if self.hide_leader_once:
            self.hide_leader_once = False
            return None
        return self.leader[1] if self.leader else None

    def create(self, path: str, data: bytes = b"", *, ephemeral=False, sequential=False):
        if path.startswith("/peers/"):
            return CreatedNode(f"/peers/{SELF_ID}", NodeStat(czxid=2, version=0, ephemeral_owner=7))
        if self.leader is not None:
            raise NodeExistsError(path)
        stat = NodeStat(czxid=self.next_czxid, version=0, ephemeral_owner=7)
        self.leader = (data, stat)
        return CreatedNode(path, stat)

    def get_data(self, path: str, watch: bool = False) -> tuple[bytes, NodeStat]:
        if self.leader is None:
            raise NoNodeError("get_data", path)
        return self.leader


class TestElectionEngine:
    """Protocol behaviour of ElectionEngine."""

    @pytest.fixture
    def zk(self) -> ScriptedZooKeeper:
        return ScriptedZooKeeper()

    @pytest.fixture
    def session(self, zk: ScriptedZooKeeper) -> MagicMock:
        session = MagicMock()
        session.generation = 1
        session.connected = True
        zk.install(session)
        return session

    @pytest.fixture
    def loop(self) -> MagicMock:
        loop = MagicMock()
        loop.in_loop.return_value = True
        return loop

    def build(self, session: MagicMock, loop: MagicMock, wants_to_lead: bool = True) -> ElectionEngine:
        registry = PeerRegistry("/peers", "test node")
        engine = ElectionEngine(
            ElectionPaths.for_namespace(),
            registry,
            loop,
            wants_to_lead=wants_to_lead,
            request_timeout=0.05,
        )
        engine.attach(session)
        return engine

    def connect(self, engine: ElectionEngine, generation: int = 1) -> None:
        engine.handle(ConnectionEvent(generation=generation, state=ConnectionState.CONNECTED))

    def test_initial_snapshot(self, session: MagicMock, loop: MagicMock) -> None:
        """Before connecting the engine is WATCHING and disconnected."""
        engine = self.build(session, loop)
        snapshot = engine.snapshot()
        assert snapshot.status is ElectionStatus.WATCHING
        assert snapshot.connection is ConnectionStatus.DISCONNECTED
        assert snapshot.self_id is None
        assert snapshot.wants_to_lead is True

    def test_registration_takes_vacant_leadership(
        self, session: MagicMock, loop: MagicMock
    ) -> None:
        engine = self.build(session, loop)
        self.connect(engine)

        snapshot = engine.snapshot()
        assert snapshot.status is ElectionStatus.LEADING
        assert snapshot.self_id == SELF_ID
        assert snapshot.leader_id == SELF_ID
        assert snapshot.peers == (OTHER_ID, SELF_ID)
        assert engine.claim == LeaderClaim(czxid=10, version=0)
        session.create.assert_any_call("/leader", SELF_ID.encode(), ephemeral=True)

    def test_waits_on_existing_leader(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        zk.set_leader(OTHER_ID)
        engine = self.build(session, loop)
        self.connect(engine)

        assert engine.status() is ElectionStatus.WAITING
        assert engine.current_leader_id() == OTHER_ID

    def test_race_lost_waits_on_winner(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        """The leader record appears between the existence check and the create."""
        zk.set_leader(OTHER_ID)
        zk.hide_leader_once = True
        engine = self.build(session, loop)
        self.connect(engine)

        assert engine.status() is ElectionStatus.WAITING
        assert engine.current_leader_id() == OTHER_ID
        assert engine.claim is None

    def test_create_failure_leaves_waiting(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        def failing_create(path, data=b"", *, ephemeral=False, sequential=False):
            if path == "/leader":
                raise CoordinationError("create", path, "ConnectionLoss")
            return zk.create(path, data, ephemeral=ephemeral, sequential=sequential)

        session.create.side_effect = failing_create
        engine = self.build(session, loop)
        self.connect(engine)

        assert engine.status() is ElectionStatus.WAITING
        assert engine.current_leader_id() is None

    @staticmethod
    def fail_leader_create(session: MagicMock, zk: ScriptedZooKeeper) -> None:
        def failing_create(path, data=b"", *, ephemeral=False, sequential=False):
            if path == "/leader":
                raise CoordinationError("create", path, "OperationTimeout")
            return zk.create(path, data, ephemeral=ephemeral, sequential=sequential)

        session.create.side_effect = failing_create

    def test_start_leading_retries_after_failed_create(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        """WAITING with no known leader is not a reason to skip contending."""
        self.fail_leader_create(session, zk)
        engine = self.build(session, loop)
        self.connect(engine)
        assert engine.status() is ElectionStatus.WAITING

        session.create.side_effect = zk.create
        engine.start_leading()

        assert engine.status() is ElectionStatus.LEADING
        assert engine.current_leader_id() == SELF_ID
        assert engine.claim == LeaderClaim(czxid=10, version=0)

    def test_start_leading_after_failed_create_finds_other_leader(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        self.fail_leader_create(session, zk)
        engine = self.build(session, loop)
        self.connect(engine)

        session.create.side_effect = zk.create
        zk.set_leader(OTHER_ID)
        engine.start_leading()

        assert engine.status() is ElectionStatus.WAITING
        assert engine.current_leader_id() == OTHER_ID
        assert engine.claim is None

    def test_start_leading_while_waiting_on_leader_is_noop(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        zk.set_leader(OTHER_ID)
        engine = self.build(session, loop)
        self.connect(engine)
        session.reset_mock()

        engine.start_leading()

        session.create.assert_not_called()
        session.exists.assert_not_called()
        assert engine.status() is ElectionStatus.WAITING

    def test_adopts_own_record_without_claim(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        """A record carrying our id is ours even if the create reply was lost."""
        zk.set_leader(SELF_ID, czxid=42, version=0)
        engine = self.build(session, loop)
        self.connect(engine)

        assert engine.status() is ElectionStatus.LEADING
        assert engine.claim == LeaderClaim(czxid=42, version=0)

    def test_passive_engine_does_not_create(self, session: MagicMock, loop: MagicMock) -> None:
        engine = self.build(session, loop, wants_to_lead=False)
        self.connect(engine)

        assert engine.status() is ElectionStatus.WATCHING
        leader_creates = [c for c in session.create.call_args_list if c.args[0] == "/leader"]
        assert leader_creates == []

    def test_stale_events_are_dropped(self, session: MagicMock, loop: MagicMock) -> None:
        engine = self.build(session, loop)
        self.connect(engine)
        session.reset_mock()

        engine.handle(NodeDeleted(generation=0, path="/leader"))
        engine.handle(ConnectionEvent(generation=0, state=ConnectionState.EXPIRED))

        session.exists.assert_not_called()
        assert engine.status() is ElectionStatus.LEADING

    def test_leader_event_re_evaluates(
        self, session: MagicMock, loop: MagicMock, zk: ScriptedZooKeeper
    ) -> None:
        zk.set_leader(OTHER_ID)
        engine = self.build(session, loop)
        self.connect(engine)

        zk.leader = None
        engine.handle(NodeDeleted(generation=1, path="/leader"))

        assert engine.status() is ElectionStatus.LEADING

    def test_unknown_path_ignored(self, session: MagicMock, loop: MagicMock) -> None:
        engine = self.build(session, loop)
        self.connect(engine)
        session.reset_mock()

        engine.handle(DataChanged(generation=1, path="/elsewhere"))

        session.exists.assert_not_called()
        session.get_children.assert_not_called()

    def test_suspended_reports_watching(self, session: MagicMock, loop: MagicMock) -> None:
        engine = self.build(session, loop)
        self.connect(engine)

        engine.handle(ConnectionEvent(generation=1, state=ConnectionState.SUSPENDED))

        assert engine.status() is ElectionStatus.WATCHING
        assert engine.connection_status() is ConnectionStatus.DISCONNECTED
        # The claim survives a connection loss
        assert engine.claim is not None

    def test_expired_resets_and_notifies(self, session: MagicMock, loop: MagicMock) -> None:
        engine = self.build(session, loop)
        handler = MagicMock()
        engine.set_expiry_handler(handler)
        self.connect(engine)

        engine.handle(ConnectionEvent(generation=1, state=ConnectionState.EXPIRED))

        handler.assert_called_once_with(1)
        snapshot = engine.snapshot()
        assert snapshot.status is ElectionStatus.WATCHING
        assert snapshot.self_id is None
        assert snapshot.leader_id is None
        assert snapshot.wants_to_lead is True
        assert engine.claim is None


class TestRelinquish:
    """stop_leading deletes only the record this engine created."""

    @pytest.fixture
    def zk(self) -> ScriptedZooKeeper:
        return ScriptedZooKeeper()

    @pytest.fixture
    def engine(self, zk: ScriptedZooKeeper) -> ElectionEngine:
        session = MagicMock()
        session.generation = 1
        session.connected = True
        zk.install(session)
        loop = MagicMock()
        loop.in_loop.return_value = True
        engine = ElectionEngine(
            ElectionPaths.for_namespace(),
            PeerRegistry("/peers", "test node"),
            loop,
            wants_to_lead=True,
        )
        engine.attach(session)
        engine.handle(ConnectionEvent(generation=1, state=ConnectionState.CONNECTED))
        assert engine.status() is ElectionStatus.LEADING
        return engine

    def test_deletes_with_claimed_version(
        self, engine: ElectionEngine, zk: ScriptedZooKeeper
    ) -> None:
        def delete(path: str, version: int) -> None:
            zk.leader = None

        engine.session.delete.side_effect = delete
        engine.stop_leading()

        engine.session.delete.assert_called_once_with("/leader", version=0)
        assert engine.status() is ElectionStatus.WATCHING
        assert engine.snapshot().wants_to_lead is False
        assert engine.claim is None

    def test_czxid_mismatch_is_noop(self, engine: ElectionEngine, zk: ScriptedZooKeeper) -> None:
        """A record recreated in a later epoch is left alone."""
        zk.set_leader(OTHER_ID, czxid=99)

        engine.stop_leading()

        engine.session.delete.assert_not_called()
        assert engine.status() is ElectionStatus.WATCHING
        assert engine.current_leader_id() == OTHER_ID

    def test_version_mismatch_is_noop(self, engine: ElectionEngine) -> None:
        engine.session.delete.side_effect = VersionMismatchError("/leader", 0)

        engine.stop_leading()

        assert engine.status() is ElectionStatus.WATCHING

    def test_already_deleted(self, engine: ElectionEngine, zk: ScriptedZooKeeper) -> None:
        zk.leader = None

        engine.stop_leading()

        engine.session.delete.assert_not_called()
        assert engine.status() is ElectionStatus.WATCHING
        assert engine.current_leader_id() is None

    def test_start_leading_while_leading_is_noop(self, engine: ElectionEngine) -> None:
        engine.session.reset_mock()

        engine.start_leading()

        engine.session.create.assert_not_called()
        engine.session.exists.assert_not_called()
        assert engine.status() is ElectionStatus.LEADING


class TestCommands:
    def test_command_timeout(self) -> None:
        loop = MagicMock()
        loop.in_loop.return_value = False
        loop.submit.return_value = Future()
        engine = ElectionEngine(
            ElectionPaths.for_namespace(),
            PeerRegistry("/peers", "test node"),
            loop,
            request_timeout=0.01,
        )

        with pytest.raises(CommandTimeoutError):
            engine.stop_leading()

    def test_command_runs_on_loop(self) -> None:
        loop = MagicMock()
        loop.in_loop.return_value = False
        done: Future = Future()
        done.set_result(None)
        loop.submit.return_value = done
        engine = ElectionEngine(
            ElectionPaths.for_namespace(),
            PeerRegistry("/peers", "test node"),
            loop,
        )

        engine.start_leading()

        loop.submit.assert_called_once()
        assert loop.submit.call_args.kwargs["name"] == "start_leading"
