"""
Logging for TrackMPC.

Every record emitted while a control cycle runs carries the cycle number:
``[cycle=12]`` after the logger name in the text format, a ``"cycle"`` field
in the JSON format. A fallback warning can then be matched to the telemetry
frame that caused it.

Environment:
    TRACKMPC_LOG_LEVEL   DEBUG, INFO, WARNING or ERROR (default INFO)
    TRACKMPC_LOG_FORMAT  "default" or "json"
    TRACKMPC_LOG_FILE    also write records to this file
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, Optional, TypeVar

import numpy as np

F = TypeVar("F", bound=Callable[..., Any])


LOG_LEVEL_ENV = "TRACKMPC_LOG_LEVEL"
LOG_FORMAT_ENV = "TRACKMPC_LOG_FORMAT"
LOG_FILE_ENV = "TRACKMPC_LOG_FILE"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s%(cycle_tag)s: %(message)s"


def get_log_level() -> int:
    """Get log level from environment variable."""
    level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


# =============================================================================
# Control Cycle Tagging
# =============================================================================

_cycle: Optional[int] = None


@contextmanager
def cycle_scope(cycle: int) -> Iterator[None]:
    """Tag records logged inside the block with ``cycle``.

    Example:
        with cycle_scope(12):
            LOG_WARN("solver did not converge")
    """
    global _cycle
    previous = _cycle
    _cycle = cycle
    try:
        yield
    finally:
        _cycle = previous


def current_cycle() -> Optional[int]:
    """Cycle number of the running control cycle, or None between cycles."""
    return _cycle


class CycleFilter(logging.Filter):
    """Sets ``record.cycle`` and ``record.cycle_tag`` for the formatters."""

    def filter(self, record: logging.LogRecord) -> bool:
        cycle = current_cycle()
        record.cycle = cycle
        record.cycle_tag = "" if cycle is None else f" [cycle={cycle}]"
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cycle = getattr(record, "cycle", None)
        if cycle is not None:
            entry["cycle"] = cycle
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def make_formatter(kind: Optional[str] = None) -> logging.Formatter:
    """Formatter for ``kind`` ("default" or "json"; from env when None)."""
    kind = (kind or os.environ.get(LOG_FORMAT_ENV, "default")).lower()
    if kind == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT)


# =============================================================================
# Logger Setup
# =============================================================================

_root_logger: Optional[logging.Logger] = None
_handlers: list = []


def _add_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(make_formatter())
    handler.addFilter(CycleFilter())
    logger.addHandler(handler)
    _handlers.append(handler)


def setup_logging(level: Optional[int] = None, force: bool = False) -> logging.Logger:
    """Configure the ``trackmpc`` logger from the environment.

    Args:
        level: Log level (default: from env or INFO).
        force: Replace the handlers of an earlier call.
    """
    global _root_logger, _handlers

    if _root_logger is not None and not force:
        return _root_logger

    if _root_logger is not None:
        for handler in _handlers:
            _root_logger.removeHandler(handler)
            handler.close()
    _handlers = []

    _root_logger = logging.getLogger("trackmpc")
    _root_logger.setLevel(level or get_log_level())
    _root_logger.propagate = False

    _add_handler(_root_logger, logging.StreamHandler(sys.stderr))
    file_path = os.environ.get(LOG_FILE_ENV)
    if file_path:
        _add_handler(_root_logger, logging.FileHandler(file_path))

    return _root_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """``trackmpc.<name>``, or the package logger when name is None."""
    if _root_logger is None:
        setup_logging()

    if name:
        return logging.getLogger(f"trackmpc.{name}")
    return _root_logger


def LOG_DEBUG(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().debug(msg, *args, **kwargs)


def LOG_INFO(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().info(msg, *args, **kwargs)


def LOG_WARN(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().warning(msg, *args, **kwargs)


def LOG_ERROR(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().error(msg, *args, **kwargs)


# =============================================================================
# Timing
# =============================================================================


@contextmanager
def profile_scope(name: str, log_level: int = logging.DEBUG):
    """Log how long the block took.

    Example:
        with profile_scope("NLP build"):
            driver.build()
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start_time
        get_logger().log(log_level, f"{name} took {elapsed:.4f}s")


def timed(func: F) -> F:
    """Decorator logging the execution time of ``func`` at debug level."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start_time
            get_logger().debug(f"{func.__name__} took {elapsed:.4f}s")

    return wrapper  # type: ignore


class TimeTracker:
    """Solve-time samples for the controller statistics."""

    def __init__(self, name: str):
        self.name = name
        self._times: list[float] = []

    @contextmanager
    def measure(self):
        start = time.perf_counter()
        try:
            yield
        finally:
            self._times.append((time.perf_counter() - start) * 1000)

    def get_stats(self) -> tuple[float, float, int]:
        """(mean_ms, max_ms, count)."""
        if not self._times:
            return 0.0, 0.0, 0
        return float(np.mean(self._times)), float(np.max(self._times)), len(self._times)

    def reset(self) -> None:
        self._times = []


setup_logging()
