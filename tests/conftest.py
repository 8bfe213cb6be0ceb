# tests/conftest.py

from typing import Any, Optional

import numpy as np
import pytest

from config import (
    PROP_RAY_PATH_COUNT, PROP_RAY_PATH_POWER, PROP_RAY_PATH_SOURCE,
    PROP_RAY_PATH_FINAL_SURFACE, PROP_RAY_PATH_VISIBLE, PROP_SHOW_RAY_PATHS,
)
from lighttools_handler import LightToolsHandler
from lighttools_handler.session import DbResult, EMPTY, decode_value

FAIL = 7


class FakeSession:
    """
    In-memory stand-in for an attached LightTools session.

    ``rays`` is a list of (power, source, final_surface); a None entry makes
    the corresponding read fail. Every set/command call is recorded.
    """

    pid = 4242

    def __init__(self, rays=(), properties=None, dumps=None, meshes=None):
        self.rays = list(rays)
        self.count_override: Optional[Any] = None
        self.fail_gets: set[str] = set()
        self.fail_set_props: set[str] = set()
        self.fail_visibility: set[int] = set()
        self.command_status: dict[str, int] = {}
        self.set_error: Optional[BaseException] = None
        self.properties: dict[str, dict[str, Any]] = properties or {}
        self.dumps: dict[str, str] = dumps or {}
        self.meshes: dict[tuple[str, str], np.ndarray] = meshes or {}
        self.visible = {i: True for i in range(1, len(self.rays) + 1)}
        self.sets: list[tuple] = []
        self.commands: list[str] = []
        self.gets: list[tuple] = []
        self.messages: list[str] = []
        self.closed = False

    # Session contract

    def get(self, key, prop, *indices):
        self.gets.append((key, prop) + tuple(indices))
        if prop in self.fail_gets:
            return DbResult(EMPTY, FAIL)
        if prop == PROP_RAY_PATH_COUNT:
            count = len(self.rays) if self.count_override is None else self.count_override
            return DbResult(decode_value(count), 0)
        ray_fields = {
            PROP_RAY_PATH_POWER: 0,
            PROP_RAY_PATH_SOURCE: 1,
            PROP_RAY_PATH_FINAL_SURFACE: 2,
        }
        if prop in ray_fields:
            value = self.rays[indices[0] - 1][ray_fields[prop]]
            if value is None:
                return DbResult(EMPTY, FAIL)
            return DbResult(decode_value(value), 0)
        if prop == PROP_RAY_PATH_VISIBLE:
            return DbResult(decode_value("Yes" if self.visible[indices[0]] else "No"), 0)

        props = self.properties.get(key, {})
        if prop not in props:
            return DbResult(EMPTY, 1)
        value = props[prop]
        if isinstance(value, BaseException):
            raise value
        return DbResult(decode_value(value), 0)

    def set(self, key, prop, value, *indices):
        if self.set_error is not None:
            raise self.set_error
        self.sets.append((key, prop, value) + tuple(indices))
        if prop in self.fail_set_props:
            return FAIL
        if prop == PROP_RAY_PATH_VISIBLE:
            index = indices[0]
            if index in self.fail_visibility:
                return FAIL
            self.visible[index] = value == "Yes"
        return 0

    def command(self, name):
        self.commands.append(name)
        return self.command_status.get(name, 0)

    def status_string(self, status):
        return f"Error {status}"

    def key_dump(self, key, path):
        if key not in self.dumps:
            return 1
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.dumps[key])
        return 0

    def get_mesh_data(self, key, prop):
        data = self.meshes.get((key, prop))
        if data is None:
            return 5, None
        return 0, np.asarray(data, dtype=np.float64)

    def message(self, text):
        self.messages.append(text)

    def close(self):
        self.closed = True

    # Helpers

    @property
    def visibility_sets(self) -> list[tuple]:
        return [s for s in self.sets if s[1] == PROP_RAY_PATH_VISIBLE]

    @property
    def show_ray_paths_sets(self) -> list[tuple]:
        return [s for s in self.sets if s[1] == PROP_SHOW_RAY_PATHS]

    def all_visible(self) -> bool:
        return all(self.visible.values())


# Mix of sources and final surfaces; ray 4 has a missing source
SAMPLE_RAYS = [
    (50.0, "LED_A", "Detector"),
    (30.0, "LED_B", "Detector"),
    (20.0, "LED_A", "Housing"),
    (15.0, None, "Detector"),
    (10.0, "LED_A", "Detector"),
    (5.0, "LED_B", "Housing"),
]


def no_sleep(_seconds: float) -> None:
    pass


@pytest.fixture
def fake_session():
    return FakeSession(SAMPLE_RAYS)


@pytest.fixture
def handler(fake_session):
    h = LightToolsHandler(session=fake_session)
    h.sleep = no_sleep
    return h
