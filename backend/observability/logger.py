"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Drop events below the configured level
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


# ------------------------------------------------------------------
# Level filtering
# ------------------------------------------------------------------

LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
}

# Events without a "level" field are info
DEFAULT_EVENT_LEVEL = "info"

_threshold: int = LEVELS["info"]


def set_log_level(level: str) -> None:
    """
    Set the minimum level that is written.

    Raises:
        ValueError for an unknown level name.
    """
    global _threshold  # pylint: disable=global-statement
    key = level.strip().lower()
    if key not in LEVELS:
        raise ValueError(f"unknown log level: {level!r}")
    _threshold = LEVELS[key]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies at least "event_type". A "ts_ms" field is added
    when missing; caller-provided fields are never overwritten. Events
    whose "level" is below the configured threshold are dropped.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    level = str(event.get("level", DEFAULT_EVENT_LEVEL)).lower()
    if LEVELS.get(level, LEVELS[DEFAULT_EVENT_LEVEL]) < _threshold:
        return

    payload: dict[str, Any] = dict(event)
    payload.setdefault("ts_ms", _now_ms())

    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback, logging must never crash the process
        fallback: dict[str, Any] = {
            "ts_ms": payload.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)


def log_exception(event_type: str, exc: BaseException, **fields: Any) -> None:
    """Log an error event carrying the exception type and message."""
    log_event({
        "event_type": event_type,
        "level": "error",
        **fields,
        "exception": type(exc).__name__,
        "message": str(exc),
    })
