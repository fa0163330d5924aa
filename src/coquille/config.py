"""coquille environment configuration.

Environment variables:
    COQUILLE_LAUNCHER: Program used to resolve command names via the search path
        - default: /usr/bin/env on POSIX, empty on Windows
        - empty = execute the command name directly

    COQUILLE_CHUNK_SIZE: Bytes requested per read from a child pipe
        - default 4096, clamped to 1..1048576

    COQUILLE_INTERRUPT_SIGNAL: Signal sent to a running child on cancel
        - INT (default), TERM or KILL; "SIG" prefix and case are ignored

    COQUILLE_LOG_DEBUG: Debug logging
        - true/1/yes = DEBUG records written to a temp file
        - false/0/no = INFO records to stderr (default)
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "RunnerConfig",
    "load_config",
    "get_config",
    "reload_config",
    "configure_logging",
]

IS_WINDOWS = sys.platform == "win32"

DEFAULT_LAUNCHER = "" if IS_WINDOWS else "/usr/bin/env"
DEFAULT_CHUNK_SIZE = 4096
MAX_CHUNK_SIZE = 1024 * 1024

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Only these make sense for interrupting a single child
_INTERRUPT_SIGNALS = {
    "INT": signal.SIGINT,
    "TERM": signal.SIGTERM,
}
if not IS_WINDOWS:
    _INTERRUPT_SIGNALS["KILL"] = signal.SIGKILL


@dataclass(frozen=True)
class RunnerConfig:
    """Process-wide defaults for ProcessRunner.

    Attributes:
        launcher: Search-path resolver prepended to argv ("" = none)
        chunk_size: Read size for pipe pumps
        interrupt_signal: Signal delivered on cancel after spawn
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug is on)
    """

    launcher: str = DEFAULT_LAUNCHER
    chunk_size: int = DEFAULT_CHUNK_SIZE
    interrupt_signal: signal.Signals = signal.SIGINT
    log_debug: bool = False
    log_file: str | None = None


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_launcher(value: str | None) -> str:
    if value is None:
        return DEFAULT_LAUNCHER
    return value.strip()


def _parse_chunk_size(value: str | None) -> int:
    if not value:
        return DEFAULT_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_CHUNK_SIZE
    return max(1, min(size, MAX_CHUNK_SIZE))


def _parse_signal(value: str | None) -> signal.Signals:
    """Parse a signal name such as ``int``, ``SIGTERM`` or ``Kill``.

    Unknown names fall back to SIGINT.
    """
    if not value:
        return signal.SIGINT
    name = value.strip().upper()
    if name.startswith("SIG"):
        name = name[3:]
    return _INTERRUPT_SIGNALS.get(name, signal.SIGINT)


def _generate_log_file_path() -> str:
    log_dir = Path(tempfile.gettempdir()) / "coquille"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"coquille_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> RunnerConfig:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("COQUILLE_LOG_DEBUG"), default=False)

    return RunnerConfig(
        launcher=_parse_launcher(os.environ.get("COQUILLE_LAUNCHER")),
        chunk_size=_parse_chunk_size(os.environ.get("COQUILLE_CHUNK_SIZE")),
        interrupt_signal=_parse_signal(os.environ.get("COQUILLE_INTERRUPT_SIGNAL")),
        log_debug=log_debug,
        log_file=_generate_log_file_path() if log_debug else None,
    )


# Global instance, loaded lazily
_config: RunnerConfig | None = None


def get_config() -> RunnerConfig:
    """Return the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> RunnerConfig:
    """Re-read the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config


def configure_logging(config: RunnerConfig | None = None) -> logging.Handler:
    """Attach a handler to the ``coquille`` logger.

    Debug mode writes DEBUG records to ``config.log_file``; otherwise INFO
    records go to stderr. Meant for applications embedding coquille; the
    library itself never calls this.

    Returns:
        The handler that was attached
    """
    config = config or get_config()

    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger("coquille")
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return handler
