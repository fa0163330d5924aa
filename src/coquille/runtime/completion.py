"""Single-shot completion and cancellation for one run.

A run can finish along several paths (normal exit, launch failure, spawn
skipped by cancel). CompletionGate lets exactly one of them through.
CancellationHandle is the capability handed to the caller; the runner binds the
live process to it once spawned.

Both are shared between the caller's thread and the run's background thread,
so their state is guarded by a ``threading.Lock``.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import signal
import threading
import weakref
from collections.abc import Callable
from typing import Generic, TypeVar

__all__ = [
    "CompletionGate",
    "CancellationHandle",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CompletionGate(Generic[T]):
    """Forward the first outcome to a callback and drop every later one.

    Example:
        gate = CompletionGate(on_done)
        gate.complete(status)   # calls on_done(status), returns True
        gate.complete(status)   # no-op, returns False
    """

    def __init__(self, callback: Callable[[T], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._delivered = False

    @property
    def delivered(self) -> bool:
        with self._lock:
            return self._delivered

    def complete(self, outcome: T) -> bool:
        """Deliver ``outcome`` if nothing was delivered yet.

        The callback runs outside the lock, so it may safely re-enter.

        Returns:
            True if this call delivered the outcome
        """
        with self._lock:
            if self._delivered:
                return False
            self._delivered = True
        self._callback(outcome)
        return True


class CancellationHandle:
    """Request early termination of one in-flight run.

    - Before spawn: the spawn is skipped and the run completes as not started.
    - After spawn: the child receives ``interrupt_signal`` and the run completes
      through its ordinary exit path.
    - After completion, or on any repeated call: no-op.
    - At interpreter exit: every child still running is sent
      ``interrupt_signal`` so it is not left orphaned.
    """

    # Handles with a bound, unfinished child (used by the atexit cleanup)
    _live: "weakref.WeakSet[CancellationHandle]" = weakref.WeakSet()
    _live_lock = threading.Lock()
    _atexit_registered = False

    def __init__(self, interrupt_signal: signal.Signals = signal.SIGINT) -> None:
        self.interrupt_signal = interrupt_signal
        self._lock = threading.Lock()
        self._cancel_requested = False
        self._finished = False
        self._process: asyncio.subprocess.Process | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_requested

    @property
    def done(self) -> bool:
        """Whether the run has finished."""
        with self._lock:
            return self._finished

    def cancel(self) -> None:
        with self._lock:
            if self._cancel_requested or self._finished:
                return
            self._cancel_requested = True
            if self._process is None or self._loop is None:
                logger.debug("Cancel requested before spawn")
                return
            # Signal from the loop owning the process; the loop stays open
            # until _finish() runs under this same lock.
            self._loop.call_soon_threadsafe(self._interrupt, self._process)

    # Runner side -----------------------------------------------------------

    def _should_spawn(self) -> bool:
        with self._lock:
            return not self._cancel_requested

    def _bind(
        self,
        process: asyncio.subprocess.Process,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        """Attach the spawned child, interrupting it if cancel raced the spawn."""
        with self._lock:
            self._process = process
            self._loop = loop
            raced = self._cancel_requested
        self._track()
        if raced:
            logger.debug(f"Cancel raced spawn, interrupting pid={process.pid}")
            self._interrupt(process)

    def _finish(self) -> None:
        with self._lock:
            self._finished = True
            self._process = None
            self._loop = None
        with CancellationHandle._live_lock:
            CancellationHandle._live.discard(self)

    def _interrupt(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.send_signal(self.interrupt_signal)
            logger.debug(
                f"Sent {self.interrupt_signal.name} to pid={process.pid}"
            )
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")

    def _signal_now(self) -> None:
        """Signal a live child directly, without going through its event loop."""
        with self._lock:
            process = self._process
            if self._finished or process is None or process.returncode is not None:
                return
            try:
                os.kill(process.pid, self.interrupt_signal)
                logger.debug(
                    f"Sent {self.interrupt_signal.name} to pid={process.pid} at exit"
                )
            except ProcessLookupError:
                pass

    def _track(self) -> None:
        with CancellationHandle._live_lock:
            CancellationHandle._live.add(self)
            if not CancellationHandle._atexit_registered:
                atexit.register(CancellationHandle._cleanup_all)
                CancellationHandle._atexit_registered = True

    @classmethod
    def _cleanup_all(cls) -> None:
        """Interrupt every child still running (atexit callback)."""
        with cls._live_lock:
            handles = list(cls._live)
        for handle in handles:
            try:
                handle._signal_now()
            except Exception as e:
                logger.debug(f"Cleanup error: {e}")
