"""
Metrics and timing helpers for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit metrics as JSONL events via observability.logger
- Never aggregate: one metric = one log event
- Provide safe APIs that prevent timer leaks

Headline metrics:
- llm_chat_latency
- tts_time_to_first_audio
- tts_tier_speak (one per tier attempt)
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# -----------------------------------------------------------------------------
# Internal timer storage
# -----------------------------------------------------------------------------
# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------

def start_timer(name: str) -> str:
    """
    Start a monotonic timer.

    Returns:
        timer_id (str): Opaque ID required to stop the timer later.

    Callers MUST call stop_timer() (or discard_timer()) eventually,
    unless using the `timed()` context manager.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Stop a previously started timer and emit a metric event.

    Returns:
        duration_ms if the timer existed, else None
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "state": state,
        "details": details or {},
    })

    return duration_ms


def discard_timer(timer_id: str) -> None:
    """Drop a timer without emitting (e.g. first audio never arrived)."""
    _active_timers.pop(timer_id, None)


# -----------------------------------------------------------------------------
# Safe API: context manager
# -----------------------------------------------------------------------------

@contextmanager
def timed(
    name: str,
    *,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Context manager for measuring durations safely.

    Guarantees:
    - Timer is ALWAYS stopped (no leaks)
    - Metric is emitted exactly once
    - Exceptions inside the block do NOT suppress timing

    The yielded dict is merged into the metric details, so the block can
    record its outcome:

        with timed("llm_chat_latency") as details:
            result = await backend.chat(messages)
            details["ok"] = result.ok
    """
    extra: dict[str, Any] = dict(details or {})
    timer_id = start_timer(name)
    try:
        yield extra
    finally:
        stop_timer(timer_id, state=state, details=extra)
