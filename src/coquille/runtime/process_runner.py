"""Process runner with stream routing and cancellable completion.

coquille runtime module v0.1.0

This module provides:
- Command launch through the search path (``/usr/bin/env name args...``)
- Stdout/stderr routing per OutputSink, wired before spawn
- A callback form that returns a CancellationHandle immediately
- An await form that suspends the calling task until the child exits

Key design points:
- Every run executes on its own background thread with a private event loop,
  so concurrent runs never serialize and the caller's loop never blocks
- The completion callback fires exactly once, after both streams hit EOF
  and the child has been reaped
- Cancel before spawn skips the spawn; cancel after spawn signals the child
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from collections.abc import Callable
from typing import Any, Union

import anyio

from ..config import get_config
from ..errors import LaunchError
from ..types import (
    Command,
    OutputSink,
    OutputTarget,
    SinkLike,
    Status,
    not_started,
    status_from_returncode,
)
from .completion import CancellationHandle, CompletionGate
from .output import pump_stream, stdio_for

__all__ = [
    "ProcessRunner",
    "run_with_timeout",
]

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[Status], None]
Outcome = Union[Status, BaseException]

# Marks a stream argument the caller did not pass
_UNSET: Any = object()


def _resolve_sinks(stdout: SinkLike, stderr: SinkLike) -> tuple[OutputSink, OutputSink]:
    """Resolve both stream arguments, filling in unspecified ones.

    Nothing given inherits both streams. A handler on one stream with the
    other unspecified discards the other.
    """
    out = None if stdout is _UNSET else OutputSink.coerce(stdout, OutputTarget.STDOUT)
    err = None if stderr is _UNSET else OutputSink.coerce(stderr, OutputTarget.STDERR)

    if out is None:
        out = OutputSink.discard() if _is_handler(err) else OutputSink.inherit_stdout()
    if err is None:
        err = OutputSink.discard() if _is_handler(out) else OutputSink.inherit_stderr()
    return out, err


def _is_handler(sink: OutputSink | None) -> bool:
    return sink is not None and sink.target is OutputTarget.HANDLER


class ProcessRunner:
    """Run one command and report its Status.

    A runner is single-use: construct a new one for every execution.

    Example:
        chunks = []
        runner = ProcessRunner(Command("echo", ["Hello, World!"]), stdout=chunks.append)
        status = await runner.run()

        # Or without awaiting:
        handle = runner.start(lambda status: print(status))
        handle.cancel()

    Attributes:
        command: Command to execute
        stdout: Sink for the child's stdout
        stderr: Sink for the child's stderr
        launcher: Search-path resolver prepended to argv
        chunk_size: Pipe read size in bytes
        interrupt_signal: Signal sent to a running child on cancel
    """

    def __init__(
        self,
        command: Command | str,
        *,
        stdout: SinkLike = _UNSET,
        stderr: SinkLike = _UNSET,
        launcher: str | None = None,
        chunk_size: int | None = None,
        interrupt_signal: signal.Signals | None = None,
    ) -> None:
        """Create a runner.

        Args:
            command: Command, or a string split on single spaces
            stdout: OutputSink, handler callable, True (inherit) or False/None (discard)
            stderr: Same as stdout, for the child's stderr
            launcher: Override COQUILLE_LAUNCHER ("" runs the name directly)
            chunk_size: Override COQUILLE_CHUNK_SIZE
            interrupt_signal: Override COQUILLE_INTERRUPT_SIGNAL

        A stream left unspecified inherits the runner's stream, unless the
        other stream was given a handler; then it is discarded.
        """
        config = get_config()

        self.command = command if isinstance(command, Command) else Command.from_string(command)
        self.stdout, self.stderr = _resolve_sinks(stdout, stderr)
        self.launcher = config.launcher if launcher is None else launcher
        self.chunk_size = config.chunk_size if chunk_size is None else chunk_size
        self.interrupt_signal = (
            config.interrupt_signal if interrupt_signal is None else interrupt_signal
        )

        self._start_lock = threading.Lock()
        self._started = False

    @property
    def argv(self) -> list[str]:
        """Full argument vector handed to the OS."""
        prefix = [self.launcher] if self.launcher else []
        return prefix + self.command.argv

    def start(self, completion_handler: CompletionHandler) -> CancellationHandle:
        """Launch the command in the background and return at once.

        ``completion_handler`` is called exactly once, on the background
        thread, with the child's Status. Only a launch failure or a cancel that
        prevented the spawn is reported as ``Failure(NOT_STARTED_EXIT_CODE)``.
        If routing a stream fails once the child is running, the child is
        killed and its own exit status is reported. Children still running
        at interpreter exit are sent ``interrupt_signal``.

        Raises:
            RuntimeError: If this runner was already started
        """

        def on_outcome(outcome: Outcome) -> None:
            if isinstance(outcome, BaseException):
                completion_handler(not_started())
            else:
                completion_handler(outcome)

        return self._dispatch(on_outcome)

    async def run(self) -> Status:
        """Launch the command and wait for it to exit.

        Cancelling the awaiting task interrupts the child, waits for it to be
        reaped, then re-raises CancelledError.

        Returns:
            Success, or Failure carrying the exit code

        Raises:
            LaunchError: If the child process could not be created
            RuntimeError: If this runner was already started
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Status] = loop.create_future()

        def resolve(outcome: Outcome) -> None:
            if future.done():
                return
            if isinstance(outcome, BaseException):
                future.set_exception(outcome)
            else:
                future.set_result(outcome)

        def on_outcome(outcome: Outcome) -> None:
            try:
                loop.call_soon_threadsafe(resolve, outcome)
            except RuntimeError:
                logger.debug("Awaiting event loop closed before completion")

        handle = self._dispatch(on_outcome)

        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            logger.debug(f"Awaiting task cancelled, cancelling run of {self.command.name}")
            handle.cancel()
            with anyio.CancelScope(shield=True):
                await asyncio.wait({future})
            if not future.cancelled():
                # Mark a late launch error as retrieved
                future.exception()
            raise

    def _dispatch(self, on_outcome: Callable[[Outcome], None]) -> CancellationHandle:
        with self._start_lock:
            if self._started:
                raise RuntimeError("ProcessRunner can only be run once")
            self._started = True

        handle = CancellationHandle(self.interrupt_signal)
        gate: CompletionGate[Outcome] = CompletionGate(on_outcome)

        thread = threading.Thread(
            target=self._work,
            args=(handle, gate),
            name=f"coquille-run-{self.command.name}",
            daemon=True,
        )
        thread.start()
        return handle

    def _work(self, handle: CancellationHandle, gate: CompletionGate[Outcome]) -> None:
        """Background thread body: execute, then deliver the single outcome."""
        outcome: Outcome
        try:
            outcome = asyncio.run(self._execute(handle))
        except LaunchError as e:
            logger.debug(f"Launch failed: {e}")
            outcome = e
        except Exception as e:
            logger.exception(f"Unexpected error running {self.command.name}")
            outcome = e

        try:
            gate.complete(outcome)
        except Exception:
            logger.exception("Completion handler raised")

    async def _execute(self, handle: CancellationHandle) -> Status:
        process: asyncio.subprocess.Process | None = None
        try:
            if not handle._should_spawn():
                logger.debug(f"Run cancelled before spawn, skipping {self.command.name}")
                return not_started()

            process = await self._spawn()
            handle._bind(process, asyncio.get_running_loop())

            # Drain both streams to EOF before reporting
            pumps = {
                asyncio.create_task(pump_stream(process.stdout, self.stdout, self.chunk_size)),
                asyncio.create_task(pump_stream(process.stderr, self.stderr, self.chunk_size)),
            }
            done, pending = await asyncio.wait(pumps, return_when=asyncio.FIRST_EXCEPTION)
            errors = [task.exception() for task in done if task.exception() is not None]
            if errors:
                logger.error(
                    f"Output routing failed for pid={process.pid}, killing it: {errors[0]!r}"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                await self._kill(process)

            # A child killed above still reports its own exit status
            returncode = await process.wait()

            logger.debug(
                f"Subprocess completed pid={process.pid} returncode={returncode}"
            )
            return status_from_returncode(returncode)

        finally:
            if process is not None and process.returncode is None:
                await self._kill(process)
            handle._finish()

    async def _spawn(self) -> asyncio.subprocess.Process:
        """Create the child with both streams already routed.

        Raises:
            LaunchError: If the OS refuses to create the process
        """
        argv = self.argv
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdio_for(self.stdout),
                stderr=stdio_for(self.stderr),
            )
        except OSError as e:
            raise LaunchError(str(self.command), e.strerror or str(e)) from e

        logger.debug(f"Started subprocess pid={process.pid} argv={argv[0]}")
        return process

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Force the child down after an error in the pump path."""
        logger.debug(f"Killing subprocess pid={process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


async def run_with_timeout(runner: ProcessRunner, timeout: float) -> Status:
    """Await ``runner`` but interrupt the child once ``timeout`` elapses.

    Raises:
        TimeoutError: If the child was still running at the deadline
        LaunchError: If the child process could not be created
    """
    with anyio.fail_after(timeout):
        return await runner.run()
