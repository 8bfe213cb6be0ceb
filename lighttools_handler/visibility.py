"""Per-band ray path visibility with guaranteed restoration.

Toggling ``RayPathVisibleAt`` one ray at a time while LightTools is
live-updating is orders of magnitude slower than batching, so every batch is
wrapped in DBUpdateOff/RecalcOff ... DBUpdateOn/RecalcOn, followed by one
explicit RecalcNow and a settle before anything is captured.

Use the controller as a context manager: whatever happens inside the
``with`` block (capture failure, export failure, KeyboardInterrupt), every
ray path is made visible again on the way out.
"""

import enum
import logging
import time
from typing import Any, Callable, Iterable

from config import (
    PROP_RAY_PATH_VISIBLE, RAY_PATH_SUB_INDEX,
    CMD_DB_UPDATE_OFF, CMD_DB_UPDATE_ON, CMD_RECALC_OFF, CMD_RECALC_ON,
    CMD_RECALC_NOW, CMD_SHOW_ONLY_RAY_PATH_RAYS,
    RECALC_SETTLE_S, SHOW_ONLY_SETTLE_S,
)
from diagnostics.connection_diagnostics import record_event
from lighttools_handler.errors import VisibilityStateError
from lighttools_handler.session import is_success
from utils.polling import settle

logger = logging.getLogger(__name__)


class VisibilityState(enum.Enum):
    IDLE = "idle"
    UPDATES_SUSPENDED = "updates_suspended"
    BAND_APPLIED = "band_applied"
    RESTORED_VISIBLE = "restored_visible"


class VisibilityController:
    """
    Sole writer of ray path visibility for one analysis run.

    Args:
        session: Session implementing ``set``/``command``/``status_string``.
        data_key: Forward simulation data key owning the ray paths.
        run_size: Number of ray paths; the universe is ``1..run_size``.
        sleep: Injected sleep used for settling.
        recalc_settle_s: Settle after RecalcNow.
        show_only_settle_s: Settle after ShowOnlyRayPathRays.
    """

    def __init__(
        self,
        session: Any,
        data_key: str,
        run_size: int,
        sleep: Callable[[float], None] = time.sleep,
        recalc_settle_s: float = RECALC_SETTLE_S,
        show_only_settle_s: float = SHOW_ONLY_SETTLE_S,
    ):
        self.session = session
        self.data_key = data_key
        self.run_size = run_size
        self._sleep = sleep
        self._recalc_settle_s = recalc_settle_s
        self._show_only_settle_s = show_only_settle_s
        self.state = VisibilityState.IDLE
        self.restore_count = 0

    @property
    def universe(self) -> range:
        return range(1, self.run_size + 1)

    def __enter__(self) -> "VisibilityController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            logger.warning(f"Restoring ray path visibility after {exc_type.__name__}: {exc}")
        try:
            self.restore_all()
        except Exception as restore_error:
            if exc_type is None:
                raise
            # Keep the original failure as the one that propagates
            logger.error(f"Visibility restoration failed: {restore_error}", exc_info=True)

    # -------------------------------------------------------------------------
    # Session calls
    # -------------------------------------------------------------------------

    def _command(self, name: str, warnings: list[str]) -> None:
        status = self.session.command(name)
        if not is_success(status):
            msg = f"{name} returned status {status} ({self.session.status_string(status)})"
            logger.warning(msg)
            warnings.append(msg)

    def _set_visible(self, indices: Iterable[int], visible: bool, warnings: list[str]) -> int:
        """Set visibility for ``indices``; returns the number of failed sets."""
        value = "Yes" if visible else "No"
        failed = []
        for i in indices:
            status = self.session.set(self.data_key, PROP_RAY_PATH_VISIBLE, value, i, RAY_PATH_SUB_INDEX)
            if not is_success(status):
                failed.append((i, status))
        if failed:
            first_index, first_status = failed[0]
            msg = (
                f"{len(failed)} ray path(s) could not be set {PROP_RAY_PATH_VISIBLE}={value} "
                f"(first: ray {first_index}, status {first_status} "
                f"({self.session.status_string(first_status)}))"
            )
            logger.warning(msg)
            warnings.append(msg)
        return len(failed)

    def _suspend_updates(self, warnings: list[str]) -> None:
        self._command(CMD_DB_UPDATE_OFF, warnings)
        self._command(CMD_RECALC_OFF, warnings)

    def _resume_updates(self, warnings: list[str]) -> None:
        self._command(CMD_DB_UPDATE_ON, warnings)
        self._command(CMD_RECALC_ON, warnings)
        self._command(CMD_RECALC_NOW, warnings)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def apply_band(self, member_indices: Iterable[int]) -> list[str]:
        """
        Show only ``member_indices``, recompute, and wait for the view to settle.

        Per-ray and per-command failures are best-effort: they are logged and
        returned as warnings, and the band is still applied as far as possible.

        Returns:
            Warning messages for this band (empty if every call succeeded).

        Raises:
            VisibilityStateError: the run has already been restored.
        """
        if self.state is VisibilityState.RESTORED_VISIBLE:
            raise VisibilityStateError("Cannot apply a band after visibility has been restored")

        members = list(member_indices)
        outside = [i for i in members if not 1 <= i <= self.run_size]
        if outside:
            raise ValueError(f"Ray path indices outside 1..{self.run_size}: {outside[:5]}")

        logger.info(f"Setting ray path visibilities ({len(members)} of {self.run_size} visible)...")
        warnings: list[str] = []

        self._suspend_updates(warnings)
        self.state = VisibilityState.UPDATES_SUSPENDED
        self._set_visible(self.universe, False, warnings)
        self._set_visible(members, True, warnings)
        self._resume_updates(warnings)
        settle(self._recalc_settle_s, CMD_RECALC_NOW, sleep=self._sleep)
        self._command(CMD_SHOW_ONLY_RAY_PATH_RAYS, warnings)
        settle(self._show_only_settle_s, CMD_SHOW_ONLY_RAY_PATH_RAYS, sleep=self._sleep)
        self.state = VisibilityState.BAND_APPLIED
        return warnings

    def restore_all(self) -> list[str]:
        """
        Make every ray path visible again. Safe to call more than once.

        Returns:
            Warning messages from the restoration calls.
        """
        warnings: list[str] = []
        if self.run_size <= 0:
            self.state = VisibilityState.RESTORED_VISIBLE
            return warnings

        logger.info("Restoring visibility for all ray paths")
        try:
            self._suspend_updates(warnings)
            failed = self._set_visible(self.universe, True, warnings)
        finally:
            # Updates must come back on even if a set call raised
            self._resume_updates(warnings)
            self.state = VisibilityState.RESTORED_VISIBLE
            self.restore_count += 1

        record_event(
            "visibility_restored",
            run_size=self.run_size,
            failed=failed,
            restore_count=self.restore_count,
        )
        return warnings
