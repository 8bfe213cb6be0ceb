"""
LightTools session boundary.

Wraps the ``LTCOM64.LTAPIx`` .NET object (loaded through pythonnet) behind a
small, synchronous get/set/command API. Every call returns a status code;
values coming back from DbGet are decoded into a ``DbValue`` so nothing past
this module inspects raw .NET types.

Anything that implements the same methods as ``LTSession`` (``get``, ``set``,
``command``, ``status_string``, ``key_dump``, ``get_mesh_data``, ``message``,
``close``) can be handed to the handler, which is how the tests drive the
pipeline against a fake session.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Literal, Optional

import numpy as np

from config import DB_SUCCESS, LTCOM_ASSEMBLY_PATH
from lighttools_handler.errors import SessionConnectionError

logger = logging.getLogger(__name__)


DbValueKind = Literal["number", "string", "boolean", "handle", "empty", "array"]


@dataclass(frozen=True)
class DbValue:
    """Decoded value returned by the session."""
    kind: DbValueKind
    value: Any = None

    def as_float(self) -> Optional[float]:
        """Numeric value, or None for non-numbers and NaN."""
        if self.kind != "number":
            return None
        try:
            result = float(self.value)
        except (TypeError, ValueError):
            return None
        if np.isnan(result):
            return None
        return result

    def as_text(self) -> Optional[str]:
        """String value, or None for non-strings and empty strings."""
        if self.kind != "string":
            return None
        text = str(self.value)
        return text if text else None


EMPTY = DbValue("empty")


@dataclass(frozen=True)
class DbResult:
    """Value plus the status code of the DbGet that produced it."""
    value: DbValue
    status: int

    @property
    def ok(self) -> bool:
        return is_success(self.status)


def is_success(status: int) -> bool:
    """Single success contract for every session call: 0 is success."""
    return status == DB_SUCCESS


def decode_value(raw: Any) -> DbValue:
    """
    Decode a raw DbGet value into a DbValue.

    pythonnet hands back Python primitives for System.String/Double/Int32/
    Boolean, and proxy objects for anything else (COM handles, variants).
    """
    if raw is None:
        return EMPTY
    # bool before int: bool is an int subclass
    if isinstance(raw, (bool, np.bool_)):
        return DbValue("boolean", bool(raw))
    if isinstance(raw, (int, float, np.integer, np.floating)):
        return DbValue("number", float(raw))
    if isinstance(raw, str):
        return DbValue("string", raw) if raw != "" else EMPTY
    if isinstance(raw, np.ndarray):
        return DbValue("array", raw) if raw.size else EMPTY
    if isinstance(raw, (list, tuple)):
        if not raw:
            return EMPTY
        try:
            return DbValue("array", np.asarray(raw, dtype=np.float64))
        except (TypeError, ValueError):
            return DbValue("handle", raw)
    return DbValue("handle", raw)


def _split_out_params(result: Any) -> tuple[Any, Any]:
    """pythonnet returns (return_value, out_param) tuples for methods with out params."""
    if isinstance(result, tuple) and len(result) == 2:
        return result
    return result, None


class LTSession:
    """One attached LightTools process."""

    def __init__(self, api: Any, pid: int):
        self._api = api
        self.pid = pid

    def get(self, key: str, prop: str, *indices: int) -> DbResult:
        raw = self._api.DbGet(key, prop, None, *indices)
        value, status = _split_out_params(raw)
        if status is None:
            # Older assemblies return only the status and leave the value unset
            return DbResult(EMPTY, int(value))
        return DbResult(decode_value(value), int(status))

    def set(self, key: str, prop: str, value: Any, *indices: int) -> int:
        return int(self._api.DbSet(key, prop, value, *indices))

    def command(self, name: str) -> int:
        return int(self._api.Cmd(name))

    def status_string(self, status: int) -> str:
        try:
            text, _ = _split_out_params(self._api.GetStatusString(status))
            return str(text)
        except Exception as e:
            logger.debug(f"GetStatusString({status}) failed: {e}")
            return "Unknown"

    def key_dump(self, key: str, path: str) -> int:
        return int(self._api.DbKeyDump(key, path))

    def get_mesh_data(self, key: str, prop: str) -> tuple[int, Optional[np.ndarray]]:
        status, data = _split_out_params(self._api.GetMeshData(key, np.zeros(1), prop))
        status = int(status)
        if not is_success(status) or data is None:
            return status, None
        return status, np.asarray(data, dtype=np.float64)

    def message(self, text: str) -> None:
        try:
            self._api.Message(text)
        except Exception as e:
            logger.debug(f"Message() failed: {e}")

    def close(self) -> None:
        """Release the COM reference. Does not close LightTools itself."""
        api, self._api = self._api, None
        if api is None:
            return
        try:
            dispose = getattr(api, "Dispose", None)
            if dispose is not None:
                dispose()
        except Exception as e:
            logger.warning(f"Error releasing LightTools API object: {e}")


# =============================================================================
# Lazy pythonnet import
# =============================================================================
#
# Loading pythonnet pulls the CLR into the process. It is only done when a
# session is actually opened so the FastAPI server (and the test suite) can
# import this module on machines without .NET or LightTools.

_clr = None


def _load_ltcom_assembly(version: str, install_root: str) -> Any:
    global _clr
    assembly = os.path.join(install_root, f"LightTools {version}", LTCOM_ASSEMBLY_PATH)
    if not os.path.isfile(assembly):
        raise SessionConnectionError(f"LTCOM64.dll not found at: {assembly}")

    if _clr is None:
        logger.info("Loading pythonnet CLR (this may take a moment)...")
        try:
            import clr
        except ImportError as e:
            raise SessionConnectionError(
                "pythonnet is not available. Install it with: pip install pythonnet"
            ) from e
        _clr = clr

    _clr.AddReference(assembly)
    import LTCOM64  # noqa: E402  (module only exists after AddReference)
    return LTCOM64


def connect_session(pid: int, version: str, install_root: str) -> LTSession:
    """
    Attach to the running LightTools process ``pid``.

    Raises:
        SessionConnectionError: if the process is gone, the assembly cannot be
            loaded, or the attach call fails. Nothing in the session has been
            touched at that point.
    """
    import psutil

    if not psutil.pid_exists(pid):
        raise SessionConnectionError(f"No running process with PID {pid}")

    ltcom = _load_ltcom_assembly(version, install_root)
    api = None
    try:
        api = ltcom.LTAPIx()
        api.LTPID = pid
        api.UpdateLTPointer()
        session = LTSession(api, pid)
        session.message(f"Python worker connected to PID: {pid}")
        logger.info(f"Connected to LightTools session (PID {pid})")
        return session
    except Exception as e:
        if api is not None:
            LTSession(api, pid).close()
        raise SessionConnectionError(f"Failed to connect to LightTools PID {pid}: {e}") from e
