"""Writers for per-band ray data, band summaries, and interrogation results."""

import csv
import keyword
import logging
import os
import re
from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.io import savemat

from config import INTERROGATION_CSV_HEADER
from lighttools_handler.power_bands import PowerInterval
from lighttools_handler.repository import RayRecord

logger = logging.getLogger(__name__)

# savemat rejects longer struct field names, even with long_field_names=True
_MAX_NAME_LENGTH = 63


def sanitize_name(name: str) -> str:
    """
    Turn an arbitrary string into a valid identifier usable in file names and
    as a MAT struct field (``"*"`` -> ``"x_"``, ``"Lens 1"`` -> ``"Lens_1"``).
    """
    cleaned = re.sub(r"\W", "_", name, flags=re.ASCII)
    if not cleaned or not cleaned[0].isalpha():
        cleaned = "x" + cleaned
    if keyword.iskeyword(cleaned):
        cleaned = "x" + cleaned
    return cleaned[:_MAX_NAME_LENGTH]


def unique_field_names(names: Iterable[str]) -> dict[str, str]:
    """
    Map each name to a distinct sanitized field name. Names that collide after
    truncation get a numeric suffix (``_2``, ``_3``, ...) in order of appearance.
    """
    fields: dict[str, str] = {}
    taken: set[str] = set()
    for name in names:
        if name in fields:
            continue
        base = field = sanitize_name(name)
        n = 1
        while field in taken:
            n += 1
            suffix = f"_{n}"
            field = base[:_MAX_NAME_LENGTH - len(suffix)] + suffix
        taken.add(field)
        fields[name] = field
    return fields


def band_file_stem(
    base_name: str,
    run_id: str,
    interval: PowerInterval,
    source_filter: str,
    surface_filter: str,
) -> str:
    """Deterministic file stem shared by a band's image and data files."""
    return (
        f"{base_name}_{run_id}_{interval.label()}"
        f"_Src-{sanitize_name(source_filter)}_Surf-{sanitize_name(surface_filter)}"
    )


def save_band_data(
    path: str,
    records: Sequence[RayRecord],
    interval: PowerInterval,
    source_filter: str,
    surface_filter: str,
) -> Optional[str]:
    """
    Write the band's ray records to a .mat file.

    Returns:
        ``path``, or None if ``records`` is empty (nothing is written).

    Raises:
        OSError: the file could not be written.
    """
    if not records:
        return None
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    savemat(path, {
        "ray_index": np.array([r.index for r in records], dtype=np.int64),
        "power": np.array([r.power for r in records], dtype=np.float64),
        "source_name": np.array([r.source_name for r in records], dtype=object),
        "final_surface": np.array([r.final_surface for r in records], dtype=object),
        "interval": np.array([interval.upper_percent, interval.lower_percent]),
        "source_filter": source_filter,
        "surface_filter": surface_filter,
    })
    logger.info(f"Data for {len(records)} interval rays saved to: {os.path.basename(path)}")
    return path


def write_band_summary(path: str, bands: Iterable[Mapping[str, Any]]) -> str:
    """One CSV row per processed band."""
    rows = [
        {
            "upper_percent": b["interval"]["upper_percent"],
            "lower_percent": b["interval"]["lower_percent"],
            "ray_count": b["ray_count"],
            "band_power": b["band_power"],
            "image_path": b.get("image_path") or "",
            "data_path": b.get("data_path") or "",
            "warnings": " | ".join(b.get("warnings") or []),
        }
        for b in bands
    ]
    columns = [
        "upper_percent", "lower_percent", "ray_count", "band_power",
        "image_path", "data_path", "warnings",
    ]
    pd.DataFrame(rows, columns=columns).to_csv(path, index=False, encoding="utf-8")
    return path


def write_interrogation_csv(path: str, rows: Iterable[Sequence[str]]) -> str:
    """
    ``ObjectKey,PropertyName,CurrentValue_Or_Status`` header, then every value
    quoted with embedded quotes doubled.
    """
    df = pd.DataFrame(list(rows), columns=list(INTERROGATION_CSV_HEADER))
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(",".join(INTERROGATION_CSV_HEADER) + "\n")
        df.to_csv(f, header=False, index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return path


def write_interrogation_mat(
    path: str,
    rows: Sequence[Sequence[str]],
    arrays: Mapping[str, Mapping[str, np.ndarray]],
    processed_keys: Sequence[str],
) -> str:
    """
    Scalar table, array data keyed by sanitized data key and property name,
    the list of processed keys, and an ``array_keys`` table pairing each
    array_data field with the data key it came from.
    """
    scalar = np.empty((len(rows), 3), dtype=object)
    for i, row in enumerate(rows):
        scalar[i, :] = list(row)
    key_fields = unique_field_names(arrays)
    array_data = {}
    for key, props in arrays.items():
        prop_fields = unique_field_names(props)
        array_data[key_fields[key]] = {prop_fields[p]: arr for p, arr in props.items()}
    array_keys = np.empty((len(key_fields), 2), dtype=object)
    for i, (key, name) in enumerate(key_fields.items()):
        array_keys[i, :] = [name, key]
    savemat(path, {
        "scalar_data": scalar,
        "array_data": array_data,
        "processed_keys": np.array(list(processed_keys), dtype=object),
        "array_keys": array_keys,
    }, long_field_names=True)
    return path
