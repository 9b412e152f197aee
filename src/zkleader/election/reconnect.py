"""Session expiry handling.

An expired session has lost every ephemeral node it owned, including the
peer registration and any leader record. Two policies are supported:

- fail_fast: log and terminate the process so a supervisor restarts it
- self_heal: discard the session and open a fresh one with exponential
  backoff; the new session's CONNECTED event re-runs registration, so the
  process comes back under a new peer id
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable

from zkleader.config import ExpiryPolicy
from zkleader.coordination.session import CoordinationSession
from zkleader.election.engine import ElectionEngine
from zkleader.errors import ConnectionTimeoutError
from zkleader.observability.metrics import record_reconnect_attempt, record_session_expired

logger = logging.getLogger(__name__)

EXIT_SESSION_EXPIRED = 2

SessionFactory = Callable[[], CoordinationSession]
Terminate = Callable[[int], None]


@dataclass
class ReconnectPolicy:
    """Expiry policy and backoff parameters."""

    policy: ExpiryPolicy = ExpiryPolicy.SELF_HEAL
    delay_initial: float = 1.0
    delay_max: float = 30.0
    multiplier: float = 2.0
    max_attempts: int = 10
    connect_timeout: float = 5.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the given (1-based) retry."""
        return min(self.delay_initial * (self.multiplier ** (attempt - 1)), self.delay_max)


class ReconnectionManager:
    """Reacts to session expiry according to the configured policy.

    Runs on the delivery loop (it is installed as the engine's expiry
    handler), so no other event is handled while a replacement session is
    being opened.

    Args:
        engine: Election engine to re-attach new sessions to
        session_factory: Builds a new, unconnected session with a fresh generation
        policy: Expiry policy and backoff settings
        terminate: Process exit hook (os._exit by default)
    """

    def __init__(
        self,
        engine: ElectionEngine,
        session_factory: SessionFactory,
        policy: ReconnectPolicy,
        terminate: Terminate = os._exit,
    ):
        self.engine = engine
        self.policy = policy
        self._session_factory = session_factory
        self._terminate = terminate
        self._shutdown = threading.Event()
        self.reconnects = 0

    def shutdown(self) -> None:
        """Abort any backoff in progress."""
        self._shutdown.set()

    def handle_expired(self, generation: int) -> None:
        record_session_expired()

        if self.policy.policy is ExpiryPolicy.FAIL_FAST:
            logger.critical(f"ZooKeeper session {generation} expired, terminating")
            self._terminate(EXIT_SESSION_EXPIRED)
            return

        logger.warning(f"ZooKeeper session {generation} expired, reconnecting with a new session")
        old = self.engine.session
        if old is not None:
            old.close()

        if not self._reconnect():
            if self._shutdown.is_set():
                return
            logger.critical(
                f"Could not re-establish a ZooKeeper session after "
                f"{self.policy.max_attempts} attempts, terminating"
            )
            self._terminate(EXIT_SESSION_EXPIRED)

    def _reconnect(self) -> bool:
        attempt = 0
        while not self._shutdown.is_set():
            attempt += 1
            record_reconnect_attempt()

            session = self._session_factory()
            # Attach first so the new session's CONNECTED event is not dropped as stale
            self.engine.attach(session)
            try:
                session.connect(self.policy.connect_timeout)
            except ConnectionTimeoutError as e:
                session.close()
                logger.warning(f"Reconnect attempt {attempt} failed: {e}")
                if self.policy.max_attempts and attempt >= self.policy.max_attempts:
                    return False
                delay = self.policy.delay_for(attempt)
                logger.info(f"Retrying in {delay:.1f}s")
                self._shutdown.wait(delay)
                continue

            self.reconnects += 1
            logger.info(f"Re-established ZooKeeper session {session.generation}")
            return True
        return False
