"""Structured logging configuration.

Provides:
  - JSON lines for staging/production runs, one object per record
  - Colored console output for development
  - Scenario correlation: every record logged while a scenario runs
    carries its id and kind (see ``scenario_context``)
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

_current_scenario: ContextVar[tuple[str, str]] = ContextVar("poolguard_scenario", default=("", ""))

# Record attributes passed through ``extra=`` that formatters surface.
SCENARIO_FIELDS = ("scenario_id", "scenario_kind")
RESULT_FIELDS = ("verdict", "reason", "duration_ms")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}",
            "line": record.lineno,
        }

        for key in (*SCENARIO_FIELDS, *RESULT_FIELDS):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc_type, exc, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else type(exc).__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(payload, default=str)


class DevFormatter(logging.Formatter):
    """Colored console lines, prefixed with the short scenario id."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[36m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        parts = [f"{color}{clock} {record.levelname[0]}{self.RESET}", f"{record.name}:"]

        scenario_id = getattr(record, "scenario_id", "")
        if scenario_id:
            parts.append(f"[{scenario_id[:8]}]")
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(env: str = "development", log_level: str = "INFO") -> None:
    """Configure root logging for a harness run.

    Args:
        env: Harness environment; staging and production log JSON lines
        log_level: Minimum level, by name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if env in ("staging", "production") else DevFormatter())
    handler.addFilter(ScenarioLogFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


@contextmanager
def scenario_context(scenario_id: str, scenario_kind: str) -> Iterator[None]:
    """Stamp every record logged inside the block with the scenario's identity."""
    token = _current_scenario.set((scenario_id, scenario_kind))
    try:
        yield
    finally:
        _current_scenario.reset(token)


class ScenarioLogFilter(logging.Filter):
    """Copy the active scenario onto records that do not already carry one.

    Explicit constructor values win over the scenario active in the
    current context.
    """

    def __init__(self, scenario_id: str = "", scenario_kind: str = "") -> None:
        super().__init__()
        self.scenario_id = scenario_id
        self.scenario_kind = scenario_kind

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, "scenario_id"):
            return True
        current_id, current_kind = _current_scenario.get()
        scenario_id = self.scenario_id or current_id
        if scenario_id:
            record.scenario_id = scenario_id  # type: ignore[attr-defined]
            record.scenario_kind = self.scenario_kind or current_kind  # type: ignore[attr-defined]
        return True
