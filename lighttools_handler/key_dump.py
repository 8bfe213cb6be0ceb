"""Parser for the text written by LightTools' DbKeyDump."""

import re
from dataclasses import dataclass
from typing import Iterable

HEADER_MARKER = "Available functions for this data key"
SUB_COMPONENTS_MARKER = "Sub-Components"

_PROPERTY_ROW = re.compile(r"^\s*(.+?)\s+(RW|RO)\s+([\w()]+).*$")


@dataclass(frozen=True)
class PropertySpec:
    name: str
    access: str  # "RW" or "RO"
    data_type: str

    @property
    def is_array(self) -> bool:
        return "(ij)" in self.data_type


def parse_key_dump(lines: Iterable[str]) -> list[PropertySpec]:
    """
    Properties listed under the "Available functions" header, first occurrence wins.

    ``lines`` may be a file object or the dump text split into lines. The
    line directly after the header is a column-title line and is skipped
    unless it already looks like a property row.
    """
    if isinstance(lines, str):
        lines = lines.splitlines()

    properties: list[PropertySpec] = []
    seen: set[str] = set()
    started = False
    after_header = False

    for raw in lines:
        line = raw.rstrip("\r\n")
        if not started:
            if HEADER_MARKER in line:
                started = True
                after_header = True
            continue

        match = _PROPERTY_ROW.match(line)
        if after_header:
            after_header = False
            if not match:
                continue

        stripped = line.strip()
        if not stripped or stripped.startswith(SUB_COMPONENTS_MARKER):
            break
        if match:
            name = match.group(1).strip()
            if name not in seen:
                seen.add(name)
                properties.append(PropertySpec(name, match.group(2), match.group(3).strip()))

    return properties


def read_key_dump(path: str) -> list[PropertySpec]:
    """Parse a dump file. LightTools writes these as plain ANSI text."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_key_dump(f)
