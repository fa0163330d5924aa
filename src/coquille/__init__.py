"""coquille - launch external commands and route their output.

Environment variables:
    COQUILLE_LAUNCHER: search-path resolver (default /usr/bin/env)
    COQUILLE_CHUNK_SIZE: pipe read size (default 4096)
    COQUILLE_INTERRUPT_SIGNAL: signal sent on cancel (default INT)
    COQUILLE_LOG_DEBUG: debug logging to a temp file (default false)

Usage:
    status = await ProcessRunner("echo Hello, World!").run()
"""

__version__ = "0.1.0"

from .config import RunnerConfig, configure_logging, get_config, reload_config
from .errors import CoquilleError, LaunchError
from .runtime import CancellationHandle, ProcessRunner, run_with_timeout
from .types import (
    NOT_STARTED_EXIT_CODE,
    SUCCESS,
    Command,
    Failure,
    OutputSink,
    OutputTarget,
    Status,
    Success,
    status_from_returncode,
)

__all__ = [
    "__version__",
    "CancellationHandle",
    "Command",
    "CoquilleError",
    "Failure",
    "LaunchError",
    "NOT_STARTED_EXIT_CODE",
    "OutputSink",
    "OutputTarget",
    "ProcessRunner",
    "RunnerConfig",
    "SUCCESS",
    "Status",
    "Success",
    "configure_logging",
    "get_config",
    "reload_config",
    "run_with_timeout",
    "status_from_returncode",
]
