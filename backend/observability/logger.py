"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
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

_LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
}

_min_level: int = _LEVELS["INFO"]


def set_log_level(level: str) -> None:
    """
    Set the minimum level for events that carry a "level" field.

    Events without a level are always written. Unknown names fall back to INFO.
    """
    global _min_level  # pylint: disable=global-statement
    _min_level = _LEVELS.get(level.upper(), _LEVELS["INFO"])


def now_ms() -> int:
    """Wall-clock timestamp in milliseconds (coarse, for log correlation)."""
    return time.time_ns() // 1_000_000


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies an "event_type"; "ts_ms" is filled in if missing.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    level = event.get("level")
    if isinstance(level, str) and _LEVELS.get(level.upper(), _LEVELS["INFO"]) < _min_level:
        return

    payload: dict[str, Any] = dict(event)
    payload.setdefault("ts_ms", now_ms())

    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the agent loop
        fallback: dict[str, Any] = {
            "ts_ms": payload.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)

