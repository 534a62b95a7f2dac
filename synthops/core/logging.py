"""Logging for removal runs.

Operators at a terminal get one colored line per event, prefixed with the
synth and step being worked on. Unattended runs (``app_env`` staging or
production) emit one JSON object per line so a run can be replayed from its
log: every record carries the run id and network, and step events carry the
synth, step, contract, outcome and tx hash passed through ``extra=``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Keys callers pass via ``logger.info(..., extra={...})``.
STEP_FIELDS = ("synth", "step", "contract", "outcome", "tx_hash")
RUN_FIELDS = ("run_id", "network")

_NOISY_LOGGERS = ("urllib3", "asyncio")


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Run and step fields present on ``record``."""
    return {
        key: getattr(record, key)
        for key in (*RUN_FIELDS, *STEP_FIELDS)
        if getattr(record, key, None) not in (None, "")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Colored single-line output for interactive runs."""

    LEVEL_COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[2m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{self.DIM}{clock}{self.RESET} {color}{record.levelname[0]}{self.RESET} "

        synth = getattr(record, "synth", None)
        step = getattr(record, "step", None)
        if synth:
            line += f"[{synth}:{step}] " if step else f"[{synth}] "
        line += record.getMessage()

        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


class RunLogFilter(logging.Filter):
    """Stamps the run id and network onto every record passing a handler."""

    def __init__(self, run_id: str = "", network: str = "") -> None:
        super().__init__()
        self.run_id = run_id
        self.network = network

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id  # type: ignore[attr-defined]
        record.network = self.network  # type: ignore[attr-defined]
        return True


def setup_logging(env: str = "development", log_level: str = "INFO") -> logging.Handler:
    """Install a single stdout handler on the root logger and return it.

    Args:
        env: ``development`` for colored lines, ``staging``/``production``
            for JSON lines
        log_level: Minimum level name, e.g. ``INFO``
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if env in ("staging", "production") else DevFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def bind_run(handler: logging.Handler, run_id: str, network: str) -> RunLogFilter:
    """Attach run correlation to ``handler``; returns the filter for later removal."""
    run_filter = RunLogFilter(run_id=run_id, network=network)
    handler.addFilter(run_filter)
    return run_filter
