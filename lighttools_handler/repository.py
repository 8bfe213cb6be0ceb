"""Ray path snapshot for one simulation run."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import (
    PROP_SHOW_RAY_PATHS, PROP_RAY_PATH_COUNT, PROP_RAY_PATH_POWER,
    PROP_RAY_PATH_SOURCE, PROP_RAY_PATH_FINAL_SURFACE, RAY_PATH_SUB_INDEX,
    SHOW_RAY_PATHS_SETTLE_S,
)
from lighttools_handler.errors import SessionStatusError
from lighttools_handler.session import is_success
from utils.polling import settle
from utils.timing import log_timing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RayRecord:
    """One ray path. ``None`` fields are values the session failed to return."""
    index: int
    power: Optional[float]
    source_name: Optional[str]
    final_surface: Optional[str]

    @property
    def usable(self) -> bool:
        return (
            self.power is not None
            and self.source_name is not None
            and self.final_surface is not None
        )


@dataclass(frozen=True)
class RayPathRepository:
    """
    Immutable snapshot of every ray path on one receiver's forward simulation.

    ``records[i - 1].index == i`` for every ray path index ``i``.
    """
    data_key: str
    records: tuple[RayRecord, ...]

    def __post_init__(self):
        for position, record in enumerate(self.records, start=1):
            if record.index != position:
                raise ValueError(
                    f"Ray path record at position {position} has index {record.index}"
                )

    @property
    def run_size(self) -> int:
        return len(self.records)

    def get(self, index: int) -> RayRecord:
        """Record for 1-based ray path ``index``."""
        if not 1 <= index <= self.run_size:
            raise IndexError(f"Ray path index {index} outside 1..{self.run_size}")
        return self.records[index - 1]

    @property
    def num_missing(self) -> int:
        return sum(1 for r in self.records if not r.usable)

    @classmethod
    def fetch(
        cls,
        session: Any,
        data_key: str,
        sleep: Callable[[float], None] = time.sleep,
        settle_s: float = SHOW_RAY_PATHS_SETTLE_S,
    ) -> "RayPathRepository":
        """
        Read every ray path from the session, strictly in index order.

        Enabling ShowRayPaths is best-effort. Failing to read the ray path
        count, or a count of zero, is fatal. Per-ray failures become ``None``
        fields and the fetch continues.

        Raises:
            SessionStatusError: ray path count unavailable or zero.
        """
        status = session.set(data_key, PROP_SHOW_RAY_PATHS, "Yes")
        if not is_success(status):
            logger.warning(
                f"Could not enable {PROP_SHOW_RAY_PATHS}. Status: {status} "
                f"({session.status_string(status)})"
            )
        settle(settle_s, PROP_SHOW_RAY_PATHS, sleep=sleep)

        count = session.get(data_key, PROP_RAY_PATH_COUNT)
        num_paths = count.value.as_float()
        if not count.ok or num_paths is None:
            raise SessionStatusError(
                f"Could not get {PROP_RAY_PATH_COUNT}. Ensure the simulation has run",
                status=None if count.ok else count.status,
                status_text=None if count.ok else session.status_string(count.status),
            )
        num_paths = int(num_paths)
        if num_paths <= 0:
            raise SessionStatusError(f"No ray paths found ({PROP_RAY_PATH_COUNT} is {num_paths})")

        logger.info(f"Retrieving data for {num_paths} ray paths...")
        fetch_start = time.perf_counter()
        records = []
        for i in range(1, num_paths + 1):
            power = session.get(data_key, PROP_RAY_PATH_POWER, i, RAY_PATH_SUB_INDEX)
            source = session.get(data_key, PROP_RAY_PATH_SOURCE, i, RAY_PATH_SUB_INDEX)
            surface = session.get(data_key, PROP_RAY_PATH_FINAL_SURFACE, i, RAY_PATH_SUB_INDEX)
            records.append(RayRecord(
                index=i,
                power=power.value.as_float() if power.ok else None,
                source_name=source.value.as_text() if source.ok else None,
                final_surface=surface.value.as_text() if surface.ok else None,
            ))
        log_timing(logger, "fetch_ray_paths", (time.perf_counter() - fetch_start) * 1000)

        repo = cls(data_key=data_key, records=tuple(records))
        if repo.num_missing:
            logger.warning(f"{repo.num_missing} of {num_paths} ray paths have missing data")
        return repo
