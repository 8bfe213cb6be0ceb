"""Diagnostics router – connection diagnostics, logs."""

import logging
import os

from fastapi import APIRouter, Depends

import main
from config import WORKER_COUNT
from log_buffer import log_buffer
from diagnostics.connection_diagnostics import get_diagnostic_report

router = APIRouter()


@router.get("/diagnostics/connection")
async def diagnostics_connection(_: None = Depends(main.verify_api_key)):
    """Return session diagnostic events (attach attempts, runs, restorations)."""
    return get_diagnostic_report()


@router.get("/logs")
async def get_logs(
    since: int = 0,
    limit: int = 200,
    level: str = "DEBUG",
    _: None = Depends(main.verify_api_key),
):
    """Return recent log entries from this worker process's ring buffer.

    Query params:
        since: sequence cursor, only entries with sequence > since are returned
        limit: max entries to return (default 200, capped at 1000)
        level: minimum level name, e.g. WARNING to follow only degraded band steps
    """
    limit = min(max(limit, 1), 1000)
    min_level = logging.getLevelName(level.upper())
    if not isinstance(min_level, int):
        min_level = logging.NOTSET
    entries, latest_sequence = log_buffer.get_entries(
        since_sequence=since, limit=limit, min_level=min_level,
    )
    return {
        "entries": entries,
        "latest_sequence": latest_sequence,
        "worker_pid": os.getpid(),
        "worker_count": WORKER_COUNT,
    }
