"""
LightTools Handler

Owns the attached LightTools session and the helpers shared by the analysis
mixins. The session is an injected capability: ``LightToolsHandler`` either
attaches to a running process by PID or is handed a ready session object
(the tests hand it a fake).

Note: attaching only works on Windows, where LightTools and its LTCOM64
.NET assembly are installed. Everything else in the package is portable.
"""

import json
import logging
from typing import Any, Optional

import numpy as np

from config import (
    LIGHTTOOLS_PID, LIGHTTOOLS_VERSION, LIGHTTOOLS_INSTALL_ROOT,
    _RAW_LOG_MAX_CHARS, _ARRAY_SUMMARY_FIELDS, _ARRAY_SUMMARY_MAX,
)
from lighttools_handler.errors import SessionConnectionError
from lighttools_handler.session import connect_session

# Configure module logger
logger = logging.getLogger(__name__)

# Dedicated logger for raw run output (filterable in the /logs dashboard)
logger_raw = logging.getLogger("lighttools.raw")


def _summarize_value(key: str, value: Any) -> Any:
    """Log-friendly form of one result field: long arrays are cut to a preview."""
    if key in _ARRAY_SUMMARY_FIELDS and isinstance(value, (list, tuple)):
        if len(value) > _ARRAY_SUMMARY_MAX:
            return {
                "_summary": f"{len(value)} items (showing first {_ARRAY_SUMMARY_MAX})",
                "items": [_summarize_nested(v) for v in value[:_ARRAY_SUMMARY_MAX]],
            }
        return [_summarize_nested(v) for v in value]

    if isinstance(value, np.ndarray):
        return f"ndarray(shape={value.shape}, dtype={value.dtype})"

    return value


def _summarize_nested(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _summarize_value(k, v) for k, v in value.items()}
    return value


def _log_raw_output(operation: str, result: dict[str, Any]) -> None:
    """Log a run's result dict at DEBUG on the lighttools.raw logger."""
    if not logger_raw.isEnabledFor(logging.DEBUG):
        return

    try:
        filtered = {k: _summarize_value(k, v) for k, v in result.items()}
        msg = json.dumps(
            filtered, indent=2,
            default=lambda obj: f"<{type(obj).__name__}>",
        )
        if len(msg) > _RAW_LOG_MAX_CHARS:
            msg = msg[:_RAW_LOG_MAX_CHARS] + f"\n... (truncated at {_RAW_LOG_MAX_CHARS} chars)"

        logger_raw.debug(f"[RAW] {operation} output:\n{msg}")
    except (TypeError, ValueError) as e:
        logger_raw.debug(f"[RAW] {operation}: failed to serialize output: {e}")


class LightToolsHandlerBase:
    """
    Connection lifecycle for one LightTools session.

    Args:
        session: Ready session object. When given, no connection is made.
        pid: Process id of the running LightTools session.
        version: LightTools version, selects the LTCOM64 assembly folder.
        install_root: LightTools installation root.
    """

    def __init__(
        self,
        session: Any = None,
        pid: Optional[int] = None,
        version: str = LIGHTTOOLS_VERSION,
        install_root: str = LIGHTTOOLS_INSTALL_ROOT,
    ):
        self.version = version
        if session is not None:
            self.session = session
            self.pid = getattr(session, "pid", pid)
            return

        pid = pid if pid is not None else LIGHTTOOLS_PID
        if pid is None:
            raise SessionConnectionError(
                "No LightTools PID configured. Set LIGHTTOOLS_PID to the PID of the running session"
            )
        self.pid = pid
        self.session = connect_session(pid, version, install_root)

    def close(self) -> None:
        """Release the session handle. LightTools itself keeps running."""
        session, self.session = self.session, None
        if session is None:
            return
        try:
            session.close()
            logger.info("LightTools connection released.")
        except Exception as e:
            logger.warning(f"Error closing LightTools connection: {e}")

    def get_status(self) -> dict[str, Any]:
        """
        Returns:
            Dict with keys:
                - connected: bool - Whether a session is attached
                - pid: Optional[int] - PID of the attached session
                - lighttools_version: str - Configured LightTools version
        """
        return {
            "connected": self.session is not None,
            "pid": self.pid,
            "lighttools_version": self.version,
        }

    def _status_text(self, status: int) -> str:
        return self.session.status_string(status)
