"""Single-threaded delivery loop.

All session notifications and all control commands are funnelled through
one FIFO queue drained by one thread. Election state is only ever mutated
on that thread.

Example:
    loop = DeliveryLoop(engine.handle)
    loop.start()

    loop.post(ChildrenChanged(generation=1, path="/peers"))
    future = loop.submit(engine.evaluate_leader)
    future.result(timeout=5)

    loop.stop()
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


@dataclass
class _Command:
    name: str
    fn: Callable[[], Any]
    future: Future[Any]


_STOP = object()


class DeliveryLoop:
    """FIFO event queue with a single consumer thread.

    Exceptions raised by the handler are logged and swallowed so one bad
    event never stops delivery; state is left as the handler left it.
    """

    def __init__(self, handler: EventHandler, name: str = "zk-delivery") -> None:
        self._handler = handler
        self._name = name
        self._queue: queue.Queue[Any] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._outstanding = 0
        self._processed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        """Items posted but not yet fully handled."""
        with self._lock:
            return self._outstanding

    @property
    def processed(self) -> int:
        """Total items handled since start."""
        with self._lock:
            return self._processed

    def in_loop(self) -> bool:
        """True when called from the delivery thread itself."""
        return self._thread is not None and threading.current_thread() is self._thread

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug(f"Delivery loop '{self._name}' started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop after draining everything queued before this call."""
        if not self.running:
            return
        self._queue.put(_STOP)
        if not self.in_loop() and self._thread is not None:
            self._thread.join(timeout=timeout)
        logger.debug(f"Delivery loop '{self._name}' stopped")

    def post(self, event: Any) -> None:
        """Queue an event for the handler. Safe from any thread."""
        with self._lock:
            self._outstanding += 1
        self._queue.put(event)

    def submit(self, fn: Callable[[], Any], name: str = "command") -> Future[Any]:
        """Queue a callable to run on the delivery thread."""
        future: Future[Any] = Future()
        self.post(_Command(name=name, fn=fn, future=future))
        return future

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until everything queued before this call has been handled.

        Returns False if the timeout elapsed first.
        """
        if self.in_loop():
            return True
        future = self.submit(lambda: None, name="flush")
        try:
            future.result(timeout=timeout)
        except TimeoutError:
            return False
        return True

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            try:
                if isinstance(item, _Command):
                    self._run_command(item)
                else:
                    self._handler(item)
            except Exception:
                logger.exception(f"Unhandled error while delivering {item!r}")
            finally:
                with self._lock:
                    self._outstanding -= 1
                    self._processed += 1

    def _run_command(self, command: _Command) -> None:
        if not command.future.set_running_or_notify_cancel():
            return
        try:
            result = command.fn()
        except Exception as e:
            logger.error(f"Command '{command.name}' failed: {e}")
            command.future.set_exception(e)
        else:
            command.future.set_result(result)
