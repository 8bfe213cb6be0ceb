"""Core router – health."""

import asyncio

from fastapi import APIRouter

import main
from models import HealthResponse
from config import WORKER_COUNT

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the status of the worker and the LightTools session. Acquires
    _session_lock with a 2-second timeout so a long band run reports the
    worker as busy instead of blocking the health check.
    """
    lock_acquired = False
    try:
        await asyncio.wait_for(main._session_lock.acquire(), timeout=2.0)
        lock_acquired = True
    except asyncio.TimeoutError:
        return HealthResponse(
            success=True,
            lighttools_connected=False,
            worker_count=WORKER_COUNT,
            connection_error="Health check timed out (worker busy)",
        )
    except asyncio.CancelledError:
        if lock_acquired:
            main._session_lock.release()
        raise

    try:
        if main.lighttools_handler is None:
            return HealthResponse(
                success=True,  # Worker is running
                lighttools_connected=False,
                worker_count=WORKER_COUNT,
                connection_error=main._last_connection_error,
            )

        status = main.lighttools_handler.get_status()
        return HealthResponse(
            success=True,
            lighttools_connected=status.get("connected", False),
            lighttools_pid=status.get("pid"),
            version=status.get("lighttools_version"),
            worker_count=WORKER_COUNT,
        )
    finally:
        if lock_acquired:
            main._session_lock.release()
