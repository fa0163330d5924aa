"""CompletionGate and CancellationHandle tests.

Test coverage:
- Single delivery under concurrent completion attempts
- Cancel before spawn blocks the spawn
- Cancel idempotence and no-op after finish
- Cancel racing the spawn interrupts the bound process
- Live children tracked for interruption at interpreter exit
"""

from __future__ import annotations

import signal
import threading
from unittest import mock

from coquille.runtime.completion import CancellationHandle, CompletionGate


class TestCompletionGate:
    """Test the single-shot guard."""

    def test_first_call_delivers(self):
        received: list[str] = []
        gate = CompletionGate(received.append)

        assert gate.complete("first") is True
        assert gate.complete("second") is False
        assert received == ["first"]
        assert gate.delivered

    def test_concurrent_completions_deliver_once(self):
        received: list[int] = []
        gate = CompletionGate(received.append)
        barrier = threading.Barrier(16)

        def attempt(value: int) -> None:
            barrier.wait()
            gate.complete(value)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(received) == 1

    def test_reentrant_callback(self):
        """The callback may call complete() again without deadlocking."""
        received: list[str] = []
        gate: CompletionGate[str]

        def callback(value: str) -> None:
            received.append(value)
            gate.complete("nested")

        gate = CompletionGate(callback)
        gate.complete("outer")
        assert received == ["outer"]


class TestCancellationHandle:
    """Test the cancellation capability."""

    def test_cancel_before_spawn(self):
        handle = CancellationHandle()
        assert handle._should_spawn()

        handle.cancel()
        assert handle.cancel_requested
        assert not handle._should_spawn()

    def test_cancel_is_idempotent(self):
        handle = CancellationHandle()
        handle.cancel()
        handle.cancel()
        assert handle.cancel_requested

    def test_cancel_after_finish_is_noop(self):
        handle = CancellationHandle()
        handle._finish()
        handle.cancel()
        assert handle.done
        assert not handle.cancel_requested

    def test_cancel_after_bind_schedules_interrupt(self):
        handle = CancellationHandle(signal.SIGTERM)
        process = mock.MagicMock()
        process.returncode = None
        loop = mock.MagicMock()

        handle._bind(process, loop)
        handle.cancel()

        loop.call_soon_threadsafe.assert_called_once_with(handle._interrupt, process)
        handle._interrupt(process)
        process.send_signal.assert_called_once_with(signal.SIGTERM)
        handle._finish()

    def test_cancel_racing_spawn_interrupts_on_bind(self):
        """Cancel after the spawn check but before bind still reaches the child."""
        handle = CancellationHandle()
        assert handle._should_spawn()
        handle.cancel()

        process = mock.MagicMock()
        process.returncode = None
        handle._bind(process, mock.MagicMock())

        process.send_signal.assert_called_once_with(signal.SIGINT)
        handle._finish()

    def test_interrupt_exited_process(self):
        handle = CancellationHandle()
        process = mock.MagicMock()
        process.returncode = 0
        handle._interrupt(process)
        process.send_signal.assert_not_called()

    def test_interrupt_process_lookup_error(self):
        handle = CancellationHandle()
        process = mock.MagicMock()
        process.returncode = None
        process.send_signal.side_effect = ProcessLookupError
        handle._interrupt(process)


class TestExitCleanup:
    """Test the registry of live children signalled at interpreter exit."""

    def _bound(self, sig: signal.Signals = signal.SIGTERM):
        handle = CancellationHandle(sig)
        process = mock.MagicMock()
        process.pid = 4242
        process.returncode = None
        handle._bind(process, mock.MagicMock())
        return handle, process

    def test_bind_tracks_and_finish_untracks(self):
        handle, _ = self._bound()
        assert handle in CancellationHandle._live

        handle._finish()
        assert handle not in CancellationHandle._live

    def test_bind_registers_atexit_once(self):
        handle, _ = self._bound()
        other, _ = self._bound()
        try:
            assert CancellationHandle._atexit_registered
        finally:
            handle._finish()
            other._finish()

    def test_cleanup_signals_live_child(self):
        handle, _ = self._bound(signal.SIGTERM)
        try:
            with mock.patch("coquille.runtime.completion.os.kill") as kill:
                CancellationHandle._cleanup_all()
            kill.assert_called_once_with(4242, signal.SIGTERM)
        finally:
            handle._finish()

    def test_cleanup_skips_exited_and_finished(self):
        exited, process = self._bound()
        process.returncode = 0
        finished, _ = self._bound()
        finished._finish()
        try:
            with mock.patch("coquille.runtime.completion.os.kill") as kill:
                CancellationHandle._cleanup_all()
            kill.assert_not_called()
        finally:
            exited._finish()

    def test_cleanup_ignores_vanished_child(self):
        handle, _ = self._bound()
        try:
            with mock.patch(
                "coquille.runtime.completion.os.kill", side_effect=ProcessLookupError
            ):
                CancellationHandle._cleanup_all()
        finally:
            handle._finish()
