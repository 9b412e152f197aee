"""Global pytest configuration and fixtures.

Provides an in-memory ZooKeeper ensemble and a factory for election
nodes connected to it, so multi-process scenarios run in one process.
"""

from __future__ import annotations

from typing import Callable, Iterator
from unittest.mock import MagicMock

import pytest

from tests.zookeeper_fake import FakeEnsemble
from zkleader.config import ExpiryPolicy
from zkleader.election.node import ElectionNode, NodeConfig
from zkleader.election.reconnect import ReconnectPolicy
from zkleader.election.state import ElectionPaths

NodeFactory = Callable[..., ElectionNode]


@pytest.fixture
def ensemble() -> FakeEnsemble:
    """Fresh, empty ensemble."""
    return FakeEnsemble()


@pytest.fixture
def terminate() -> MagicMock:
    """Stand-in for os._exit."""
    return MagicMock()


@pytest.fixture
def make_node(ensemble: FakeEnsemble, terminate: MagicMock) -> Iterator[NodeFactory]:
    """Build and start election nodes; every node is stopped at teardown."""
    nodes: list[ElectionNode] = []

    def factory(
        description: str = "node",
        *,
        wants_to_lead: bool = True,
        policy: ExpiryPolicy = ExpiryPolicy.SELF_HEAL,
        namespace: str = "",
        max_attempts: int = 3,
        start: bool = True,
    ) -> ElectionNode:
        config = NodeConfig(
            hosts="fake:2181",
            description=description,
            paths=ElectionPaths.for_namespace(namespace),
            session_timeout=1.0,
            connection_timeout=1.0,
            request_timeout=5.0,
            wants_to_lead=wants_to_lead,
            reconnect=ReconnectPolicy(
                policy=policy,
                delay_initial=0.01,
                delay_max=0.05,
                multiplier=2.0,
                max_attempts=max_attempts,
                connect_timeout=1.0,
            ),
        )
        node = ElectionNode(config, client_factory=ensemble.client_factory, terminate=terminate)
        nodes.append(node)
        if start:
            node.start()
        return node

    yield factory

    for node in nodes:
        node.stop()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "scenario(name): multi-process election scenario")
