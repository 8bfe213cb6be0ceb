"""
Session diagnostics for tracking LightTools attach failures and run outcomes.

Keeps a ring buffer of events (connect attempts, failures, operations,
visibility restorations) so a run that left the session in a strange state
can be reconstructed after the fact.

Usage:
    Import and call the record_* functions at key points.
    View captured data via GET /diagnostics/connection.
"""

import json
import logging
import os
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Ring buffer of events, keeps last 200
_events: deque[dict[str, Any]] = deque(maxlen=200)
_start_time = time.monotonic()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime_s() -> float:
    return round(time.monotonic() - _start_time, 2)


def record_event(event_type: str, **kwargs: Any) -> None:
    """Record a diagnostic event with timestamp and uptime."""
    entry = {
        "time": _now_iso(),
        "uptime_s": _uptime_s(),
        "pid": os.getpid(),
        "event": event_type,
        **kwargs,
    }
    _events.append(entry)
    logger.info(f"[DIAG] {event_type}: {json.dumps({k: v for k, v in kwargs.items() if k != 'traceback'}, default=str)}")


def record_connect_attempt(lighttools_pid: Optional[int]) -> None:
    record_event("connect_attempt", lighttools_pid=lighttools_pid)


def record_connect_success(lighttools_pid: Optional[int]) -> None:
    record_event("connect_success", lighttools_pid=lighttools_pid)


def record_connect_failure(error: str, tb: str) -> None:
    record_event("connect_failure", error=error, traceback=tb)


def record_disconnect(reason: str) -> None:
    """Record an intentional release of the session handle."""
    record_event("disconnect", reason=reason)


def record_operation_start(endpoint: str) -> None:
    record_event("op_start", endpoint=endpoint)


def record_operation_success(endpoint: str, duration_ms: float) -> None:
    record_event("op_success", endpoint=endpoint, duration_ms=round(duration_ms, 1))


def record_operation_error(endpoint: str, error: str, error_type: str, tb: str, duration_ms: float) -> None:
    """Record operation failure with full context."""
    record_event(
        "op_error",
        endpoint=endpoint,
        error=error,
        error_type=error_type,
        duration_ms=round(duration_ms, 1),
        traceback=tb,
    )


def record_reconnect_triggered(reason: str, reconnect_failures: int, backoff_s: float) -> None:
    record_event(
        "reconnect_triggered",
        reason=reason,
        reconnect_failures=reconnect_failures,
        backoff_s=round(backoff_s, 1),
    )


def record_reconnect_skipped_backoff(remaining_s: float, attempt: int) -> None:
    record_event(
        "reconnect_skipped_backoff",
        remaining_s=round(remaining_s, 1),
        attempt=attempt,
    )


def record_session_process_info(lighttools_pid: Optional[int]) -> dict[str, Any]:
    """
    Describe the target LightTools process and this worker's memory use.

    Best-effort: every probe that fails is reported in the info dict instead.
    """
    import psutil

    info: dict[str, Any] = {"lighttools_pid": lighttools_pid}

    if lighttools_pid is not None:
        try:
            proc = psutil.Process(lighttools_pid)
            info["process_name"] = proc.name()
            info["process_status"] = proc.status()
            info["process_rss_mb"] = round(proc.memory_info().rss / 1024 / 1024, 1)
        except psutil.NoSuchProcess:
            info["process_error"] = "no such process"
        except psutil.AccessDenied as e:
            info["process_error"] = f"access denied: {e}"

    proc = psutil.Process(os.getpid())
    info["worker_rss_mb"] = round(proc.memory_info().rss / 1024 / 1024, 1)
    vm = psutil.virtual_memory()
    info["system_memory_percent"] = vm.percent

    record_event("session_process_info", **info)
    return info


def get_diagnostic_report() -> dict[str, Any]:
    """Get the full diagnostic report."""
    return {
        "pid": os.getpid(),
        "uptime_s": _uptime_s(),
        "total_events": len(_events),
        "events": list(_events),
        "summary": _compute_summary(),
    }


def _compute_summary() -> dict[str, Any]:
    counts: dict[str, int] = {}
    last_connect_failure: Optional[dict] = None
    last_op_error: Optional[dict] = None
    last_restore: Optional[dict] = None

    for ev in _events:
        event_type = ev.get("event", "unknown")
        counts[event_type] = counts.get(event_type, 0) + 1
        if event_type == "connect_failure":
            last_connect_failure = ev
        elif event_type == "op_error":
            last_op_error = ev
        elif event_type == "visibility_restored":
            last_restore = ev

    return {
        "event_counts": counts,
        "last_connect_failure": last_connect_failure,
        "last_op_error": last_op_error,
        "last_visibility_restore": last_restore,
    }


def clear_events() -> None:
    """Drop all recorded events."""
    _events.clear()
