"""coquille exceptions.

A command that runs and exits non-zero is reported as ``Failure``, never raised.
Only a child that could not be created raises.
"""

from __future__ import annotations

__all__ = [
    "CoquilleError",
    "LaunchError",
]


class CoquilleError(Exception):
    """Base exception for coquille."""
    pass


class LaunchError(CoquilleError):
    """The OS could not create the child process.

    The originating ``OSError`` is chained as ``__cause__``.

    Attributes:
        command: Text of the command that failed to launch
        reason: Short description from the OS
    """

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to launch '{command}': {reason}")
