"""Exception hierarchy for zkleader.

Coordination failures are split by whether the election protocol treats
them as an expected outcome (an existing leader record, a version that no
longer matches) or as transient I/O that the next notification resolves.
"""

from __future__ import annotations


class ZkLeaderError(Exception):
    """Base class for all zkleader errors."""


class ConfigurationError(ZkLeaderError):
    """Required configuration is missing or invalid.

    Raised at startup, before any session is opened.
    """

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


class CoordinationError(ZkLeaderError):
    """A coordination-service call failed for reasons outside the protocol."""

    def __init__(self, operation: str, path: str, message: str = ""):
        self.operation = operation
        self.path = path
        detail = f": {message}" if message else ""
        super().__init__(f"{operation} {path} failed{detail}")


class NodeExistsError(CoordinationError):
    """The node already exists (an exclusive create collided)."""

    def __init__(self, path: str):
        super().__init__("create", path, "node exists")


class NoParentError(CoordinationError):
    """The parent of the node being created does not exist."""

    def __init__(self, path: str):
        super().__init__("create", path, "parent node missing")


class NoNodeError(CoordinationError):
    """The node does not exist."""

    def __init__(self, operation: str, path: str):
        super().__init__(operation, path, "no node")


class VersionMismatchError(CoordinationError):
    """A conditional delete named a version the node no longer has."""

    def __init__(self, path: str, expected_version: int):
        self.expected_version = expected_version
        super().__init__("delete", path, f"version {expected_version} does not match")


class SessionExpiredError(CoordinationError):
    """The session backing the call has expired; all ephemeral state is gone."""

    def __init__(self, operation: str, path: str):
        super().__init__(operation, path, "session expired")


class ConnectionTimeoutError(ZkLeaderError):
    """The session did not reach CONNECTED within the allotted time."""

    def __init__(self, hosts: str, timeout: float):
        self.hosts = hosts
        self.timeout = timeout
        super().__init__(f"Could not connect to {hosts} within {timeout:.1f}s")


class NotConnectedError(ZkLeaderError):
    """An operation that needs a live session was attempted without one."""


class CommandTimeoutError(ZkLeaderError):
    """A control command was queued but not processed in time.

    The command stays queued and still runs once the delivery loop gets
    to it.
    """

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command '{command}' not processed within {timeout:.1f}s")
