"""Ray path mixin – power interval screenshots and per-band data exports."""

import logging
import os
import time
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from config import (
    FORWARD_SIM_KEY_TEMPLATE, PROP_RAY_PATH_COUNT, WILDCARD, POWER_EPSILON,
    DEFAULT_OUTPUT_DIR, DEFAULT_IMAGE_BASE_NAME, DEFAULT_IMAGE_FORMAT,
    RUN_ID_FORMAT, BETWEEN_BANDS_PAUSE_S,
)
from diagnostics.connection_diagnostics import record_event
from lighttools_handler._base import _log_raw_output
from lighttools_handler.capture import CaptureError, ClipboardCapture
from lighttools_handler.exporters import (
    band_file_stem, save_band_data, write_band_summary,
)
from lighttools_handler.power_bands import (
    Band, FilteredSet, PowerInterval, band_power, filter_choices, filter_records, partition,
)
from lighttools_handler.repository import RayPathRepository
from lighttools_handler.visibility import VisibilityController
from utils.timing import timed_operation

logger = logging.getLogger(__name__)

# (sources, surfaces) -> (source_filter, surface_filter); raises RunCancelled
FilterSelector = Callable[[list[str], list[str]], tuple[str, str]]


def forward_sim_key(receiver: str) -> str:
    return FORWARD_SIM_KEY_TEMPLATE.format(receiver=receiver)


class RayPathsMixin:
    # Injected by tests to skip real waits
    sleep: Callable[[float], None] = staticmethod(time.sleep)

    def _make_capture(self) -> ClipboardCapture:
        return ClipboardCapture(self.session, sleep=self.sleep)

    def _make_visibility_controller(self, data_key: str, run_size: int) -> VisibilityController:
        return VisibilityController(self.session, data_key, run_size, sleep=self.sleep)

    def fetch_ray_paths(self, receiver: str) -> RayPathRepository:
        return RayPathRepository.fetch(self.session, forward_sim_key(receiver), sleep=self.sleep)

    def get_ray_path_summary(self, receiver: str) -> dict[str, Any]:
        """
        Fetch the receiver's ray paths and list the available filter choices.

        Returns:
            Dict with:
                - num_ray_paths: Ray paths in the run
                - num_missing: Ray paths with missing power/source/surface
                - sources: Unique source names (usable rays only)
                - surfaces: Unique final surfaces (usable rays only)
                - total_power: Summed power of usable rays
        """
        repo = self.fetch_ray_paths(receiver)
        sources, surfaces = filter_choices(repo.records)
        usable = [r for r in repo.records if r.usable]
        result = {
            "receiver": receiver,
            "num_ray_paths": repo.run_size,
            "num_missing": repo.num_missing,
            "sources": sources,
            "surfaces": surfaces,
            "total_power": float(sum(r.power for r in usable)),
        }
        _log_raw_output("/ray-paths/summary", result)
        return result

    def visualize_power_intervals(
        self,
        receiver: str,
        intervals: Iterable[PowerInterval],
        source_filter: str = WILDCARD,
        surface_filter: str = WILDCARD,
        save_directory: str = DEFAULT_OUTPUT_DIR,
        capture: bool = True,
        base_name: str = DEFAULT_IMAGE_BASE_NAME,
        image_format: str = DEFAULT_IMAGE_FORMAT,
        select_filters: Optional[FilterSelector] = None,
        between_bands_pause_s: float = BETWEEN_BANDS_PAUSE_S,
    ) -> dict[str, Any]:
        """
        Screenshot and export the rays of each power interval.

        For each interval the session is made to show only that interval's
        rays, the view is captured, and the rays' data is written to a .mat
        file. All ray paths are made visible again when the run ends, however
        it ends.

        Args:
            receiver: Surface receiver name.
            intervals: Power intervals, processed in order.
            source_filter: Source name or "*".
            surface_filter: Final surface name or "*".
            save_directory: Output directory (created if missing).
            capture: Whether to capture a screenshot per band.
            base_name: Prefix of every output file.
            image_format: Screenshot format (png, jpg, bmp, tiff).
            select_filters: Optional callback choosing the filters from the
                available sources/surfaces once the ray paths are known. May
                raise RunCancelled, which ends the run before any visibility
                change.
            between_bands_pause_s: Pause after each band.

        Returns:
            Dict with run_id, data_key, num_ray_paths, num_filtered,
            total_power, source/surface filters, bands, summary_path.

        Raises:
            SessionStatusError: ray path count unavailable.
            NoMatchingRaysError: the filters match nothing.
            RunCancelled: ``select_filters`` was cancelled.
        """
        intervals = list(intervals)
        run_id = datetime.now().strftime(RUN_ID_FORMAT)
        os.makedirs(save_directory, exist_ok=True)
        logger.info(f"Output will be saved in: {save_directory}")

        repo = self.fetch_ray_paths(receiver)
        if select_filters is not None:
            source_filter, surface_filter = select_filters(*filter_choices(repo.records))
        filtered = filter_records(repo.records, source_filter, surface_filter)

        if filtered.total_power <= POWER_EPSILON:
            logger.warning(
                "Total power of filtered rays is effectively zero. "
                "No interval screenshots will be generated."
            )
            intervals = []

        record_event(
            "power_intervals_start",
            run_id=run_id,
            receiver=receiver,
            intervals=[i.label() for i in intervals],
            num_ray_paths=repo.run_size,
        )

        capturer = self._make_capture() if capture else None
        bands: list[dict[str, Any]] = []
        controller = self._make_visibility_controller(repo.data_key, repo.run_size)
        with controller:
            for band in partition(filtered, intervals):
                with timed_operation(logger, f"band {band.interval.label()}"):
                    bands.append(self._process_band(
                        repo, filtered, band, controller, capturer,
                        run_id=run_id,
                        save_directory=save_directory,
                        base_name=base_name,
                        image_format=image_format,
                        source_filter=source_filter,
                        surface_filter=surface_filter,
                    ))
                if between_bands_pause_s > 0:
                    self.sleep(between_bands_pause_s)

        summary_path = None
        if bands:
            path = os.path.join(save_directory, f"{base_name}_{run_id}_Summary.csv")
            try:
                summary_path = write_band_summary(path, bands)
            except OSError as e:
                logger.warning(f"Could not write band summary {path}: {e}")

        result = {
            "run_id": run_id,
            "data_key": repo.data_key,
            "num_ray_paths": repo.run_size,
            "num_filtered": len(filtered.ordered_records),
            "total_power": filtered.total_power,
            "source_filter": source_filter,
            "surface_filter": surface_filter,
            "bands": bands,
            "summary_path": summary_path,
        }
        _log_raw_output("/ray-paths/power-intervals", result)
        return result

    def _process_band(
        self,
        repo: RayPathRepository,
        filtered: FilteredSet,
        band: Band,
        controller: VisibilityController,
        capturer: Optional[ClipboardCapture],
        run_id: str,
        save_directory: str,
        base_name: str,
        image_format: str,
        source_filter: str,
        surface_filter: str,
    ) -> dict[str, Any]:
        interval, members = band.interval, band.member_indices
        logger.info(
            f"--- Processing Power Interval: {interval.upper_percent:.2f}% "
            f"to {interval.lower_percent:.2f}% ---"
        )
        logger.info(f"Identified {len(members)} rays for this power interval.")

        warnings = controller.apply_band(members)
        stem = band_file_stem(base_name, run_id, interval, source_filter, surface_filter)

        image_path = None
        if capturer is not None:
            path = os.path.join(save_directory, f"{stem}.{image_format.lower()}")
            try:
                captured = capturer.capture(path, image_format)
                image_path = captured.path
                warnings.extend(captured.warnings)
            except CaptureError as e:
                logger.warning(f"Capture failed for {interval.label()}: {e}")
                warnings.append(f"capture failed: {e}")

        data_path = None
        try:
            data_path = save_band_data(
                os.path.join(save_directory, f"{stem}_Data.mat"),
                [repo.get(i) for i in members],
                interval, source_filter, surface_filter,
            )
        except OSError as e:
            logger.warning(f"Data export failed for {interval.label()}: {e}")
            warnings.append(f"data export failed: {e}")

        return {
            "interval": {
                "upper_percent": interval.upper_percent,
                "lower_percent": interval.lower_percent,
            },
            "member_indices": list(members),
            "ray_count": len(members),
            "band_power": band_power(filtered, members),
            "image_path": image_path,
            "data_path": data_path,
            "warnings": warnings,
        }

    def restore_visibility(self, receiver: str) -> dict[str, Any]:
        """
        Make every ray path of ``receiver`` visible, e.g. after a crashed run.

        The ray path count is read fresh from the session; nothing else is fetched.
        """
        repo_key = forward_sim_key(receiver)
        count = self.session.get(repo_key, PROP_RAY_PATH_COUNT)
        num_paths = count.value.as_float() if count.ok else None
        if num_paths is None:
            return {
                "success": False,
                "error": f"Could not read ray path count (status {count.status}: "
                         f"{self._status_text(count.status)})",
            }
        controller = self._make_visibility_controller(repo_key, int(num_paths))
        warnings = controller.restore_all()
        return {"num_ray_paths": int(num_paths), "warnings": warnings}
