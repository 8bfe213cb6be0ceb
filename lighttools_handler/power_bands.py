"""Power band selection – filtering, cumulative selection, interval bands.

Pure functions over ``RayRecord`` sequences; nothing here talks to the
session, so the selection rules can be tested on plain data.

Selection is greedy largest-first: rays are ranked by power (descending) and
a cumulative target picks the *fewest, most powerful* rays whose summed power
reaches that share of the filtered total. A band between two percentile cuts
is the upper cut's selection minus the lower cut's selection.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from config import WILDCARD, POWER_EPSILON, PERCENT_EPSILON
from lighttools_handler.errors import NoMatchingRaysError
from lighttools_handler.repository import RayRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PowerInterval:
    """Percentile cut points of the filtered total power, upper >= lower."""
    upper_percent: float
    lower_percent: float

    def __post_init__(self):
        for name in ("upper_percent", "lower_percent"):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ValueError(f"{name} must be between 0 and 100, got {value:g}")
        if self.upper_percent < self.lower_percent:
            raise ValueError(
                f"Invalid interval [{self.upper_percent:g},{self.lower_percent:g}]: "
                "upper value must be >= lower value"
            )

    def label(self) -> str:
        return f"P{self.upper_percent:g}-{self.lower_percent:g}"


_INTERVAL_PAIR = re.compile(r"\[\s*(-?\d+(?:\.\d*)?)\s*,\s*(-?\d+(?:\.\d*)?)\s*\]")


def parse_intervals(text: str) -> list[PowerInterval]:
    """
    Parse ``"[[100,70],[70,30],[30,0]]"`` (outer brackets optional).

    Raises:
        ValueError: no ``[number, number]`` pairs, or an invalid pair.
    """
    cleaned = text.strip()
    if cleaned.startswith("[") and cleaned.endswith("]"):
        cleaned = cleaned[1:-1].strip()
    if not cleaned:
        return []
    # A single bare pair such as "100, 70"
    if "[" not in cleaned:
        cleaned = f"[{cleaned}]"

    pairs = _INTERVAL_PAIR.findall(cleaned)
    if not pairs:
        raise ValueError(
            f"Could not find any [number, number] pairs in {text!r}. "
            "Use a format like [[100,70],[70,30]]"
        )
    return [PowerInterval(float(upper), float(lower)) for upper, lower in pairs]


@dataclass(frozen=True)
class FilteredSet:
    """Usable records matching the filters, power-descending."""
    ordered_records: tuple[RayRecord, ...]
    total_power: float

    @property
    def indices(self) -> tuple[int, ...]:
        return tuple(r.index for r in self.ordered_records)


def _matches(value: str, wanted: str) -> bool:
    return wanted == WILDCARD or value == wanted


def filter_records(
    records: Iterable[RayRecord],
    source_filter: str = WILDCARD,
    surface_filter: str = WILDCARD,
) -> FilteredSet:
    """
    Keep usable records matching both filters, sorted by power descending.

    Records with missing power, source, or final surface are dropped first.
    Equal powers keep their original index order.

    Raises:
        NoMatchingRaysError: nothing survives the filters.
    """
    matched = [
        r for r in records
        if r.usable
        and _matches(r.source_name, source_filter)
        and _matches(r.final_surface, surface_filter)
    ]
    if not matched:
        raise NoMatchingRaysError(
            f"No ray paths match the selected filters "
            f"(source={source_filter!r}, final surface={surface_filter!r})"
        )

    # sorted() is stable with reverse=True, so ties stay in index order
    ordered = tuple(sorted(matched, key=lambda r: r.power, reverse=True))
    total_power = float(sum(r.power for r in matched))
    logger.info(f"{len(ordered)} paths remaining after filtering (total power {total_power:g})")
    return FilteredSet(ordered_records=ordered, total_power=total_power)


def filter_choices(records: Iterable[RayRecord]) -> tuple[list[str], list[str]]:
    """Sorted unique source names and final surfaces among usable records."""
    usable = [r for r in records if r.usable]
    sources = sorted({r.source_name for r in usable})
    surfaces = sorted({r.final_surface for r in usable})
    return sources, surfaces


def select_cumulative(
    ordered_records: Sequence[RayRecord],
    total_power: float,
    percent_target: float,
) -> tuple[int, ...]:
    """
    Fewest, most powerful rays reaching ``percent_target`` % of ``total_power``.

    ``ordered_records`` must be power-descending (a ``FilteredSet``). The
    result is a prefix of that order: the walk includes each ray and stops at
    the first one whose running sum reaches ``threshold - PERCENT_EPSILON``.
    """
    if total_power <= POWER_EPSILON or percent_target <= PERCENT_EPSILON:
        return ()
    if percent_target >= 100.0:
        return tuple(r.index for r in ordered_records)

    threshold = percent_target / 100.0 * total_power
    powers = np.fromiter((r.power for r in ordered_records), dtype=np.float64, count=len(ordered_records))
    # cumsum accumulates left to right, same as a running total
    reached = np.cumsum(powers) >= threshold - PERCENT_EPSILON
    hits = np.flatnonzero(reached)
    stop = int(hits[0]) + 1 if hits.size else len(ordered_records)
    return tuple(r.index for r in ordered_records[:stop])


def band_for(
    ordered_records: Sequence[RayRecord],
    total_power: float,
    interval: PowerInterval,
) -> tuple[int, ...]:
    """
    Rays whose cumulative rank falls between ``interval``'s cuts.

    Upper selection minus lower selection, keeping the upper selection's
    power-descending order.
    """
    upper = select_cumulative(ordered_records, total_power, interval.upper_percent)
    if interval.lower_percent == 0:
        return upper
    lower = set(select_cumulative(ordered_records, total_power, interval.lower_percent))
    return tuple(i for i in upper if i not in lower)


@dataclass(frozen=True)
class Band:
    interval: PowerInterval
    member_indices: tuple[int, ...]


def partition(filtered: FilteredSet, intervals: Iterable[PowerInterval]) -> list[Band]:
    """Band for each interval, in the order given. Overlapping intervals give overlapping bands."""
    return [
        Band(interval, band_for(filtered.ordered_records, filtered.total_power, interval))
        for interval in intervals
    ]


def band_power(filtered: FilteredSet, member_indices: Iterable[int]) -> float:
    """Summed power of ``member_indices`` within ``filtered``."""
    members = set(member_indices)
    return float(sum(r.power for r in filtered.ordered_records if r.index in members))
