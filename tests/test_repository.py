# tests/test_repository.py

import pytest

from config import PROP_RAY_PATH_COUNT, PROP_RAY_PATH_POWER, PROP_SHOW_RAY_PATHS
from lighttools_handler.errors import SessionStatusError
from lighttools_handler.repository import RayPathRepository, RayRecord

from conftest import FakeSession, SAMPLE_RAYS, no_sleep

KEY = "FORWARD_SIM"


def test_fetch_reads_every_ray_in_order(fake_session):
    repo = RayPathRepository.fetch(fake_session, KEY, sleep=no_sleep)

    assert repo.data_key == KEY
    assert repo.run_size == len(SAMPLE_RAYS)
    assert [r.index for r in repo.records] == list(range(1, len(SAMPLE_RAYS) + 1))
    assert repo.get(1) == RayRecord(1, 50.0, "LED_A", "Detector")

    power_reads = [g[2] for g in fake_session.gets if g[1] == PROP_RAY_PATH_POWER]
    assert power_reads == sorted(power_reads)
    assert fake_session.show_ray_paths_sets == [(KEY, PROP_SHOW_RAY_PATHS, "Yes")]


def test_fetch_keeps_missing_values_as_none(fake_session):
    repo = RayPathRepository.fetch(fake_session, KEY, sleep=no_sleep)

    assert repo.get(4).source_name is None
    assert repo.get(4).power == 15.0
    assert not repo.get(4).usable
    assert repo.num_missing == 1


def test_fetch_continues_when_show_ray_paths_fails(fake_session):
    fake_session.fail_set_props = {PROP_SHOW_RAY_PATHS}
    repo = RayPathRepository.fetch(fake_session, KEY, sleep=no_sleep)
    assert repo.run_size == len(SAMPLE_RAYS)


def test_fetch_fails_without_ray_count(fake_session):
    fake_session.fail_gets = {PROP_RAY_PATH_COUNT}
    with pytest.raises(SessionStatusError) as excinfo:
        RayPathRepository.fetch(fake_session, KEY, sleep=no_sleep)
    assert excinfo.value.status == 7
    assert "Error 7" in str(excinfo.value)


@pytest.mark.parametrize("count", [0, -1, "lots"])
def test_fetch_fails_on_unusable_ray_count(count):
    session = FakeSession([(1.0, "A", "S")])
    session.count_override = count
    with pytest.raises(SessionStatusError):
        RayPathRepository.fetch(session, KEY, sleep=no_sleep)


def test_nan_power_is_missing():
    session = FakeSession([(float("nan"), "A", "S"), (2.0, "A", "S")])
    repo = RayPathRepository.fetch(session, KEY, sleep=no_sleep)
    assert repo.get(1).power is None
    assert repo.num_missing == 1


def test_repository_index_invariant():
    with pytest.raises(ValueError):
        RayPathRepository(KEY, (RayRecord(2, 1.0, "A", "S"),))

    repo = RayPathRepository(KEY, (RayRecord(1, 1.0, "A", "S"),))
    with pytest.raises(IndexError):
        repo.get(2)

