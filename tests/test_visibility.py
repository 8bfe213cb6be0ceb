# tests/test_visibility.py

import pytest

from config import (
    CMD_DB_UPDATE_OFF, CMD_DB_UPDATE_ON, CMD_RECALC_OFF, CMD_RECALC_ON,
    CMD_RECALC_NOW, CMD_SHOW_ONLY_RAY_PATH_RAYS,
)
from diagnostics.connection_diagnostics import clear_events, get_diagnostic_report
from lighttools_handler.errors import VisibilityStateError
from lighttools_handler.visibility import VisibilityController, VisibilityState

from conftest import FakeSession, no_sleep

KEY = "FORWARD_SIM"


def make_controller(num_rays=5):
    session = FakeSession([(1.0, "A", "S")] * num_rays)
    controller = VisibilityController(session, KEY, num_rays, sleep=no_sleep)
    return session, controller


def test_apply_band_shows_only_members():
    session, controller = make_controller()

    warnings = controller.apply_band([4, 2])

    assert warnings == []
    assert session.visible == {1: False, 2: True, 3: False, 4: True, 5: False}
    assert controller.state is VisibilityState.BAND_APPLIED
    assert session.commands == [
        CMD_DB_UPDATE_OFF, CMD_RECALC_OFF,
        CMD_DB_UPDATE_ON, CMD_RECALC_ON, CMD_RECALC_NOW,
        CMD_SHOW_ONLY_RAY_PATH_RAYS,
    ]
    # Every ray hidden first, then members shown
    assert len(session.visibility_sets) == 5 + 2


def test_apply_empty_band_hides_everything():
    session, controller = make_controller(3)
    controller.apply_band([])
    assert not any(session.visible.values())


def test_apply_band_rejects_out_of_range_indices():
    session, controller = make_controller(3)
    with pytest.raises(ValueError):
        controller.apply_band([0, 2])
    with pytest.raises(ValueError):
        controller.apply_band([4])
    assert session.visibility_sets == []


def test_restore_all_is_idempotent():
    session, controller = make_controller()
    controller.apply_band([1])

    controller.restore_all()
    assert session.all_visible()
    assert controller.state is VisibilityState.RESTORED_VISIBLE

    controller.restore_all()
    assert session.all_visible()
    assert controller.restore_count == 2


def test_apply_after_restore_raises():
    session, controller = make_controller()
    controller.restore_all()
    with pytest.raises(VisibilityStateError):
        controller.apply_band([1])


def test_failed_visibility_sets_become_warnings():
    session, controller = make_controller()
    session.fail_visibility = {3}

    warnings = controller.apply_band([1, 2])

    assert len(warnings) == 1
    assert "ray 3" in warnings[0]
    assert controller.state is VisibilityState.BAND_APPLIED
    assert session.visible[1] and session.visible[2]
    assert not session.visible[4]


def test_failed_commands_become_warnings():
    session, controller = make_controller()
    session.command_status[CMD_SHOW_ONLY_RAY_PATH_RAYS] = 2

    warnings = controller.apply_band([1])

    assert any(CMD_SHOW_ONLY_RAY_PATH_RAYS in w for w in warnings)
    assert controller.state is VisibilityState.BAND_APPLIED


def test_context_manager_restores_on_success():
    session, controller = make_controller()
    with controller:
        controller.apply_band([2])
        assert not session.all_visible()
    assert session.all_visible()
    assert controller.restore_count == 1


def test_context_manager_restores_on_interrupt():
    session, controller = make_controller()
    with pytest.raises(KeyboardInterrupt):
        with controller:
            controller.apply_band([2])
            raise KeyboardInterrupt
    assert session.all_visible()


def test_restore_failure_keeps_original_exception():
    session, controller = make_controller()
    with pytest.raises(ValueError, match="capture"):
        with controller:
            controller.apply_band([2])
            session.set_error = RuntimeError("session gone")
            raise ValueError("capture")

    # Updates are switched back on even though the sets raised
    assert session.commands[-3:] == [CMD_DB_UPDATE_ON, CMD_RECALC_ON, CMD_RECALC_NOW]
    assert controller.state is VisibilityState.RESTORED_VISIBLE


def test_restore_failure_without_pending_exception_propagates():
    session, controller = make_controller()
    with pytest.raises(RuntimeError):
        with controller:
            session.set_error = RuntimeError("session gone")


def test_restore_records_diagnostic_event():
    clear_events()
    session, controller = make_controller()
    controller.restore_all()

    summary = get_diagnostic_report()["summary"]
    assert summary["event_counts"]["visibility_restored"] == 1
    assert summary["last_visibility_restore"]["run_size"] == 5
