"""Value types shared by the runner.

coquille types v0.1.0

Defines the command, terminal status and output routing policies.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

__all__ = [
    "Command",
    "Status",
    "Success",
    "Failure",
    "SUCCESS",
    "status_from_returncode",
    "not_started",
    "NOT_STARTED_EXIT_CODE",
    "OutputHandler",
    "OutputTarget",
    "OutputSink",
    "SinkLike",
]

OutputHandler = Callable[[str], None]

# Reserved code for runs that never produced a child process (int32 minimum).
NOT_STARTED_EXIT_CODE = -(2**31)


@dataclass(frozen=True)
class Command:
    """Executable name plus its argument list.

    Attributes:
        name: Program name, resolved through the search path at launch
        arguments: Arguments passed after the name
    """

    name: str
    arguments: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence, store a tuple so the value stays immutable
        if not isinstance(self.arguments, tuple):
            object.__setattr__(self, "arguments", tuple(self.arguments))

    @classmethod
    def from_string(cls, command_string: str) -> "Command":
        """Build a command by splitting on single spaces.

        No quoting or escaping is applied; consecutive spaces yield empty
        arguments. Use the explicit constructor for arguments containing spaces.
        """
        name, *arguments = command_string.split(" ")
        return cls(name, tuple(arguments))

    @property
    def argv(self) -> list[str]:
        return [self.name, *self.arguments]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class Success:
    """The child exited with code 0."""

    @property
    def is_success(self) -> bool:
        return True

    @property
    def is_failure(self) -> bool:
        return False

    @property
    def error_code(self) -> int | None:
        return None


@dataclass(frozen=True)
class Failure:
    """The child exited with a non-zero code, or never started.

    Attributes:
        code: Exit code, ``-signum`` when killed by a signal, or
            ``NOT_STARTED_EXIT_CODE`` when no process was created
    """

    code: int

    @property
    def is_success(self) -> bool:
        return False

    @property
    def is_failure(self) -> bool:
        return True

    @property
    def error_code(self) -> int | None:
        return self.code

    @property
    def started(self) -> bool:
        return self.code != NOT_STARTED_EXIT_CODE


Status = Union[Success, Failure]

SUCCESS = Success()


def status_from_returncode(code: int) -> Status:
    """Map a process return code to its terminal status."""
    return SUCCESS if code == 0 else Failure(code)


def not_started() -> Failure:
    return Failure(NOT_STARTED_EXIT_CODE)


class OutputTarget(str, Enum):
    """Where one stream's bytes go."""

    DISCARD = "discard"
    STDOUT = "stdout"
    STDERR = "stderr"
    HANDLER = "handler"


@dataclass(frozen=True)
class OutputSink:
    """Routing policy for a single child stream.

    Attributes:
        target: Destination kind
        handler: Callback receiving decoded text (HANDLER only)
    """

    target: OutputTarget
    handler: OutputHandler | None = None

    def __post_init__(self) -> None:
        if self.target is OutputTarget.HANDLER and self.handler is None:
            raise ValueError("handler sink requires a callback")
        if self.target is not OutputTarget.HANDLER and self.handler is not None:
            raise ValueError(f"{self.target.value} sink does not take a callback")

    @classmethod
    def discard(cls) -> "OutputSink":
        return cls(OutputTarget.DISCARD)

    @classmethod
    def inherit_stdout(cls) -> "OutputSink":
        return cls(OutputTarget.STDOUT)

    @classmethod
    def inherit_stderr(cls) -> "OutputSink":
        return cls(OutputTarget.STDERR)

    @classmethod
    def to_handler(cls, handler: OutputHandler) -> "OutputSink":
        return cls(OutputTarget.HANDLER, handler)

    @classmethod
    def coerce(cls, value: Any, inherit: OutputTarget) -> "OutputSink":
        """Normalize the shorthand accepted by ProcessRunner.

        Args:
            value: OutputSink, callable, True (inherit), or False/None (discard)
            inherit: Target used when value is True

        Returns:
            The equivalent OutputSink
        """
        if isinstance(value, OutputSink):
            return value
        if value is None or value is False:
            return cls.discard()
        if value is True:
            return cls(inherit)
        if callable(value):
            return cls.to_handler(value)
        raise TypeError(f"Unsupported output sink: {value!r}")


SinkLike = Union[OutputSink, OutputHandler, bool, None]
