"""
LightTools Worker

FastAPI worker that runs on the Windows machine hosting a LightTools session.
It attaches to the already-running LightTools process by PID and executes
ray path operations against it: power interval screenshots with per-band
data exports, visibility restoration, and model interrogation.

Prerequisites:
- Windows 10/11
- LightTools with the LTCOM64 .NET API (Utilities.NET/LTCOM64.dll)
- Python 3.10+ with pythonnet

Single writer:
All session calls in this process are serialised behind one asyncio lock, so
power bands are applied strictly one after another. Run a single uvicorn
worker per LightTools session; two workers attached to the same PID would
race on the session's visibility state.

Examples:
  LIGHTTOOLS_PID=31912 python main.py
  python main.py --pid 31912 --port 8788
"""

import sys
# Routers `import main` for the shared handler; under `python main.py` that
# would load a second copy of this module without the alias.
sys.modules.setdefault("main", sys.modules[__name__])

import asyncio
import logging
import os
import time
import traceback as _tb_mod
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException, Header
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from lighttools_handler import LightToolsHandler, LightToolsError, SessionConnectionError
from config import (
    NOT_CONNECTED_ERROR, DEFAULT_PORT, DEFAULT_HOST, LIGHTTOOLS_API_KEY,
    WORKER_COUNT, _RECONNECT_BACKOFF_BASE, _RECONNECT_BACKOFF_MAX,
)
from utils.timing import timed_operation, timed_lock_acquire
from log_buffer import log_buffer
from diagnostics.connection_diagnostics import (
    record_connect_attempt, record_connect_success, record_connect_failure,
    record_disconnect, record_operation_start, record_operation_success,
    record_operation_error, record_reconnect_triggered, record_reconnect_skipped_backoff,
    record_session_process_info,
)

logging.basicConfig(level=logging.INFO)
logging.getLogger().addHandler(log_buffer)
# uvicorn loggers do not propagate to root
for _uv_name in ("uvicorn.error", "uvicorn.access"):
    logging.getLogger(_uv_name).addHandler(log_buffer)
# Raw run dumps go to GET /logs at DEBUG
logging.getLogger("lighttools.raw").setLevel(logging.DEBUG)
logger = logging.getLogger(__name__)


# -- Session state --------------------------------------------------------------

# Handler for the attached LightTools session
lighttools_handler: Optional[LightToolsHandler] = None
_last_connection_error: Optional[str] = None

_reconnect_failures = 0
_last_reconnect_attempt: float = 0.0

# Serialises every session call within this process
_session_lock = asyncio.Lock()


# -- Attaching to LightTools -----------------------------------------------------


def _configured_pid() -> Optional[int]:
    """LIGHTTOOLS_PID read at call time (``--pid`` sets it after config import)."""
    value = os.getenv("LIGHTTOOLS_PID")
    return int(value) if value else None


def _init_handler() -> Optional[LightToolsHandler]:
    """Attach to LightTools with error handling."""
    global _last_connection_error
    pid = _configured_pid()
    record_connect_attempt(lighttools_pid=pid)
    record_session_process_info(pid)
    try:
        handler = LightToolsHandler(pid=pid)
        logger.info("LightTools connection established.")
        record_connect_success(lighttools_pid=pid)
        _last_connection_error = None
        return handler
    except SessionConnectionError as e:
        logger.error(f"Failed to attach to LightTools: {e}")
        record_connect_failure(error=str(e), tb=_tb_mod.format_exc())
        _last_connection_error = str(e)
        return None


def _backoff_delay() -> float:
    """Seconds to wait before the next attach attempt, doubling per failure."""
    delay = _RECONNECT_BACKOFF_BASE * 2 ** max(_reconnect_failures - 1, 0)
    return min(delay, _RECONNECT_BACKOFF_MAX)


async def _reconnect() -> Optional[LightToolsHandler]:
    """
    Re-attach to LightTools with exponential backoff.

    Caller MUST hold _session_lock.
    """
    global lighttools_handler, _reconnect_failures, _last_reconnect_attempt

    now = time.monotonic()
    remaining = _backoff_delay() - (now - _last_reconnect_attempt) if _reconnect_failures else 0.0
    if remaining > 0:
        logger.warning(f"Not re-attaching for another {remaining:.1f}s after {_reconnect_failures} failure(s)")
        record_reconnect_skipped_backoff(remaining_s=remaining, attempt=_reconnect_failures)
        return None
    _last_reconnect_attempt = now

    if lighttools_handler:
        record_disconnect(reason="reconnect_replacing_existing")
        lighttools_handler.close()
        lighttools_handler = None

    logger.info("Attempting to attach to LightTools...")
    lighttools_handler = _init_handler()

    if lighttools_handler is not None:
        _reconnect_failures = 0
    else:
        _reconnect_failures += 1
        logger.warning(
            f"Attach failed (attempt {_reconnect_failures}, "
            f"next backoff {_backoff_delay():.0f}s)"
        )

    return lighttools_handler


async def _ensure_connected() -> Optional[LightToolsHandler]:
    """Attach if not attached yet. Caller MUST hold _session_lock."""
    if lighttools_handler is None:
        await _reconnect()
    return lighttools_handler


async def _handle_session_error(operation_name: str, error: Exception) -> None:
    """
    Re-attach after errors that may mean the session handle is dead.

    Handler-level failures (no matching rays, bad status on a read, invalid
    input) leave the connection usable and do not trigger a reconnect.
    """
    error_type = type(error).__name__
    logger.error(f"{operation_name} {error_type}: {error}")
    if isinstance(error, (LightToolsError, ValueError)) and not isinstance(error, SessionConnectionError):
        return
    logger.warning(f"{operation_name}: reconnecting after {error_type}...")
    record_reconnect_triggered(
        reason=f"{error_type} in {operation_name}: {error}",
        reconnect_failures=_reconnect_failures,
        backoff_s=_backoff_delay() if _reconnect_failures > 0 else 0,
    )
    await _reconnect()


def _not_connected_error() -> str:
    detail = _last_connection_error
    return f"{NOT_CONNECTED_ERROR}: {detail}" if detail else NOT_CONNECTED_ERROR


async def verify_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
    """Reject requests without the right X-API-Key when LIGHTTOOLS_API_KEY is set."""
    if LIGHTTOOLS_API_KEY is not None and x_api_key != LIGHTTOOLS_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


# -- Request plumbing -----------------------------------------------------------


def _to_response(
    endpoint_name: str,
    response_cls: type[BaseModel],
    result: dict[str, Any],
) -> BaseModel:
    """Map a handler result dict onto ``response_cls``, dropping unknown keys."""
    if not result.get("success", True):
        return response_cls(success=False, error=result.get("error", f"{endpoint_name} failed"))
    fields = response_cls.model_fields
    payload = {k: v for k, v in result.items() if k in fields and k not in ("success", "error")}
    return response_cls(success=True, **payload)


async def _run_endpoint(
    endpoint_name: str,
    response_cls: type[BaseModel],
    handler: Callable[[], dict[str, Any]],
    build_response: Optional[Callable[[dict[str, Any]], BaseModel]] = None,
) -> BaseModel:
    """
    Run one session operation under the session lock, attaching first if needed.

    ``handler`` is called with no arguments and returns a result dict, which
    ``build_response`` (or ``_to_response`` by default) turns into the
    response model. Any exception becomes ``success=False``; only connection
    failures trigger a re-attach.
    """
    with timed_operation(logger, endpoint_name):
        async with timed_lock_acquire(_session_lock, logger, name="session"):
            if await _ensure_connected() is None:
                return response_cls(success=False, error=_not_connected_error())

            record_operation_start(endpoint=endpoint_name)
            started = time.monotonic()
            try:
                result = handler()
                if build_response:
                    response = build_response(result)
                else:
                    response = _to_response(endpoint_name, response_cls, result)
            except Exception as e:
                record_operation_error(
                    endpoint=endpoint_name,
                    error=str(e),
                    error_type=type(e).__name__,
                    tb=_tb_mod.format_exc(),
                    duration_ms=(time.monotonic() - started) * 1000,
                )
                await _handle_session_error(endpoint_name, e)
                return response_cls(success=False, error=str(e))

            record_operation_success(
                endpoint=endpoint_name,
                duration_ms=(time.monotonic() - started) * 1000,
            )
            return response


# -- App ----------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Attach lazily on the first request; release the session handle on shutdown."""
    global lighttools_handler

    logger.info("Starting LightTools Worker (attaches to the session on first request)")
    if WORKER_COUNT > 1:
        logger.warning(
            f"WEB_CONCURRENCY={WORKER_COUNT}: several workers attached to one "
            "LightTools session can interleave visibility changes."
        )

    yield

    # Shutdown: release the session handle (LightTools keeps running)
    if lighttools_handler:
        record_disconnect(reason="shutdown")
        lighttools_handler.close()
        lighttools_handler = None
    logger.info("LightTools Worker stopped.")


app = FastAPI(
    title="LightTools Worker",
    description="Windows worker for LightTools ray path operations via the LTCOM64 API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers resolve main.lighttools_handler and main._run_endpoint at request
# time, so they are registered once everything above exists.
from routers import register_routers
register_routers(app)


if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="LightTools Worker")
    parser.add_argument(
        "--pid", type=int, default=None,
        help="PID of the running LightTools session (overrides LIGHTTOOLS_PID)",
    )
    parser.add_argument("--port", type=int, default=None, help=f"Port (default {DEFAULT_PORT})")
    args = parser.parse_args()

    if args.pid is not None:
        os.environ["LIGHTTOOLS_PID"] = str(args.pid)

    port = args.port or int(os.getenv("PORT", str(DEFAULT_PORT)))
    host = os.getenv("HOST", DEFAULT_HOST)
    dev_mode = os.getenv("DEV_MODE", "false").lower() == "true"

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        workers=1,
        reload=dev_mode,
        log_level="info",
    )
