# tests/test_run_intervals.py

import pytest

import run_intervals
from lighttools_handler import LightToolsHandler, RunCancelled

from conftest import FakeSession, SAMPLE_RAYS, no_sleep


def answers(*values):
    queue = list(values)

    def read(prompt):
        if not queue:
            raise EOFError
        return queue.pop(0)
    return read


def test_choose_from_list_by_number_or_name():
    assert run_intervals.choose_from_list("Source", ["LED_A", "LED_B"], read=answers("2")) == "LED_B"
    assert run_intervals.choose_from_list("Source", ["LED_A", "LED_B"], read=answers("0")) == "*"
    assert run_intervals.choose_from_list("Source", ["LED_A"], read=answers("LED_A")) == "LED_A"


def test_choose_from_list_reprompts_on_unknown_entry():
    assert run_intervals.choose_from_list("Source", ["LED_A"], read=answers("7", "1")) == "LED_A"


@pytest.mark.parametrize("read", [answers(""), answers()])
def test_choose_from_list_cancel(read):
    with pytest.raises(RunCancelled):
        run_intervals.choose_from_list("Source", ["LED_A"], read=read)


def test_main_rejects_bad_intervals(capsys):
    assert run_intervals.main(["--pid", "1", "--intervals", "[[10,90]]"]) == 2
    assert "Invalid --intervals" in capsys.readouterr().err


def test_main_runs_and_releases_session(monkeypatch, tmp_path, capsys):
    session = FakeSession(SAMPLE_RAYS)

    def make_handler(**kwargs):
        handler = LightToolsHandler(session=session)
        handler.sleep = no_sleep
        return handler
    monkeypatch.setattr(run_intervals, "LightToolsHandler", make_handler)

    code = run_intervals.main([
        "--pid", "1", "--no-capture", "--save-dir", str(tmp_path), "--source", "LED_A",
    ])

    assert code == 0
    assert session.closed
    assert session.all_visible()
    assert "3 of 6 ray paths" in capsys.readouterr().out


def test_main_releases_session_on_failure(monkeypatch, tmp_path):
    session = FakeSession(SAMPLE_RAYS)
    monkeypatch.setattr(
        run_intervals, "LightToolsHandler",
        lambda **kwargs: LightToolsHandler(session=session),
    )

    code = run_intervals.main(["--pid", "1", "--no-capture", "--save-dir", str(tmp_path),
                               "--surface", "Nowhere"])

    assert code == 1
    assert session.closed
