"""
Timing utilities for profiling LightTools session operations.

All timing logs use the [TIMING] prefix for easy grep filtering:
    grep "\\[TIMING\\]" worker.log
"""

import asyncio
import time
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import Generator, AsyncGenerator


@contextmanager
def timed_operation(
    logger: logging.Logger, operation: str, level: str = "info"
) -> Generator[None, None, None]:
    """
    Log how long a block took, and whether it raised.

    Usage:
        with timed_operation(logger, "/ray-paths/power-intervals"):
            ...

    Logs:
        [TIMING] /ray-paths/power-intervals START
        [TIMING] /ray-paths/power-intervals COMPLETE: 1234.5ms   (or FAILED)
    """
    start = time.perf_counter()
    log_fn = getattr(logger, level, logger.info)
    log_fn(f"[TIMING] {operation} START")
    failed = False
    try:
        yield
    except BaseException:
        # KeyboardInterrupt during a band loop should still read as FAILED
        failed = True
        raise
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        log_fn(f"[TIMING] {operation} {'FAILED' if failed else 'COMPLETE'}: {elapsed_ms:.1f}ms")


def log_timing(logger: logging.Logger, operation: str, elapsed_ms: float) -> None:
    """Log a single timing measurement, e.g. ``[TIMING] fetch_ray_paths: 812.0ms``."""
    logger.info(f"[TIMING] {operation}: {elapsed_ms:.1f}ms")


@asynccontextmanager
async def timed_lock_acquire(
    lock: asyncio.Lock, logger: logging.Logger, name: str = "lock"
) -> AsyncGenerator[None, None]:
    """
    Acquire ``lock`` and log how long the caller waited for it.

    Only the wait is measured, not the time the lock is held. The session
    lock serialises every LightTools call, so a long wait here means another
    band run is in progress.

    Usage:
        async with timed_lock_acquire(_session_lock, logger, name="session"):
            ...

    Logs:
        [TIMING] session_lock_wait: 12.3ms
    """
    start = time.perf_counter()
    await lock.acquire()
    log_timing(logger, f"{name}_lock_wait", (time.perf_counter() - start) * 1000)
    try:
        yield
    finally:
        lock.release()
