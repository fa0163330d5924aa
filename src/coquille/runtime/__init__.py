"""Runtime module for launching commands and routing their output.

This module provides background process execution with single-shot completion
reporting and cooperative cancellation.
"""

from __future__ import annotations

from .completion import CancellationHandle, CompletionGate
from .process_runner import ProcessRunner, run_with_timeout

__all__ = [
    "CancellationHandle",
    "CompletionGate",
    "ProcessRunner",
    "run_with_timeout",
]
