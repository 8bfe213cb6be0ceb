"""Model interrogation mixin – dump and read every property of a data key."""

import logging
import os
import tempfile
from datetime import datetime
from typing import Any, Optional

import numpy as np

from config import KEY_DUMP_TEMP_FILENAME, RUN_ID_FORMAT, DEFAULT_OUTPUT_DIR
from lighttools_handler._base import _log_raw_output
from lighttools_handler.exporters import write_interrogation_csv, write_interrogation_mat
from lighttools_handler.key_dump import PropertySpec, read_key_dump
from lighttools_handler.session import DbValue, is_success

logger = logging.getLogger(__name__)


def format_scalar(value: DbValue) -> str:
    """Text written to the interrogation table for a successfully read value."""
    if value.kind == "string":
        return f'"{value.value}"'
    if value.kind == "empty":
        return "<Empty>"
    if value.kind == "number":
        return f"{value.value:g}"
    if value.kind == "boolean":
        return '"Yes"' if value.value else '"No"'
    if value.kind == "handle":
        return "<COM Object>"
    if value.kind == "array":
        return f"<Array {np.shape(value.value)}>"
    return f"<Unsupported Type: {value.kind}>"


class InterrogationMixin:
    def _read_scalar(self, key: str, prop: str) -> str:
        result = self.session.get(key, prop)
        if result.ok:
            return format_scalar(result.value)
        return f"<DbGet Error: {result.status} ({self._status_text(result.status)})>"

    def _read_mesh(self, key: str, prop: str) -> tuple[str, Optional[np.ndarray]]:
        x_dim = self.session.get(key, "X_Dimension")
        y_dim = self.session.get(key, "Y_Dimension")
        if not (x_dim.ok and y_dim.ok):
            return "<Error getting mesh dimensions>", None

        status, data = self.session.get_mesh_data(key, prop)
        if not is_success(status) or data is None:
            return f"<GetMeshData Error: {status} ({self._status_text(status)})>", None

        data = np.atleast_2d(data)
        rows, cols = data.shape[:2]
        return f"<Array Data Stored Separately - Size [{rows} x {cols}]>", data

    def interrogate_key(self, key: str, dump_path: str) -> Optional[tuple[list[PropertySpec], list[list[str]], dict[str, np.ndarray]]]:
        """
        Dump ``key``'s property list and read every property.

        Returns:
            (properties, rows, arrays), or None if DbKeyDump produced no file.
        """
        if os.path.isfile(dump_path):
            os.remove(dump_path)
        status = self.session.key_dump(key, dump_path)
        if not os.path.isfile(dump_path):
            logger.warning(
                f"DbKeyDump did not create a dump file for key {key}. "
                f"Status was: {status}. Skipping."
            )
            return None

        try:
            properties = read_key_dump(dump_path)
        finally:
            os.remove(dump_path)
        logger.info(f"Parsed {len(properties)} unique properties for {key}")

        rows: list[list[str]] = []
        arrays: dict[str, np.ndarray] = {}
        for spec in properties:
            try:
                if spec.is_array:
                    text, data = self._read_mesh(key, spec.name)
                    if data is not None:
                        arrays[spec.name] = data
                else:
                    text = self._read_scalar(key, spec.name)
            except Exception as e:
                # One unreadable property must not end the interrogation
                logger.warning(f"Reading {key} / {spec.name} failed: {e}")
                text = f"<Error during Get: {e}>"
            rows.append([key, spec.name, text])
        return properties, rows, arrays

    def interrogate_keys(
        self,
        keys: list[str],
        save_directory: str = DEFAULT_OUTPUT_DIR,
        write_files: bool = True,
    ) -> dict[str, Any]:
        """
        Read all available properties of each data key.

        Scalar values (or the error text for failed reads) go to a
        CSV/MAT table; mesh data goes to the MAT file's array section.

        Returns:
            Dict with rows, array_shapes, processed_keys, skipped_keys,
            csv_path, mat_path.
        """
        run_id = datetime.now().strftime(RUN_ID_FORMAT)
        dump_path = os.path.join(tempfile.gettempdir(), KEY_DUMP_TEMP_FILENAME)

        all_rows: list[list[str]] = []
        all_arrays: dict[str, dict[str, np.ndarray]] = {}
        processed: list[str] = []
        skipped: list[str] = []
        for n, key in enumerate(keys, start=1):
            logger.info(f"Processing Key {n} of {len(keys)}: {key}")
            outcome = self.interrogate_key(key, dump_path)
            if outcome is None:
                skipped.append(key)
                continue
            _, rows, arrays = outcome
            all_rows.extend(rows)
            if arrays:
                all_arrays[key] = arrays
            processed.append(key)

        csv_path = mat_path = None
        if write_files:
            os.makedirs(save_directory, exist_ok=True)
            base = os.path.join(save_directory, f"Model_Interrogation_Output_{run_id}")
            try:
                csv_path = write_interrogation_csv(base + ".csv", all_rows)
            except OSError as e:
                logger.warning(f"Error writing CSV file: {e}")
            try:
                mat_path = write_interrogation_mat(base + ".mat", all_rows, all_arrays, processed)
            except (OSError, ValueError) as e:
                logger.warning(f"Error saving results to .mat file: {e}")

        result = {
            "rows": all_rows,
            "array_shapes": {
                key: {prop: list(arr.shape) for prop, arr in props.items()}
                for key, props in all_arrays.items()
            },
            "processed_keys": processed,
            "skipped_keys": skipped,
            "csv_path": csv_path,
            "mat_path": mat_path,
        }
        _log_raw_output("/interrogate", result)
        return result
