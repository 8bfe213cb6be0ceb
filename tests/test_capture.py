# tests/test_capture.py

import pytest
from PIL import Image

from config import CMD_COPY_TO_CLIPBOARD
from lighttools_handler.capture import (
    CaptureIOError, ClipboardCapture, FormatUnsupportedError, NoImageAvailableError,
)

from conftest import FakeSession


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def grab_sequence(*contents):
    """Clipboard stub returning ``contents`` in turn, then the last one forever."""
    queue = list(contents)

    def grab():
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item
    return grab


def make_capture(grab, **kwargs):
    session = FakeSession()
    sleep = SleepRecorder()
    capture = ClipboardCapture(
        session, grab=grab, sleep=sleep,
        max_attempts=kwargs.pop("max_attempts", 4),
        initial_delay_s=0.5, interval_s=0.2, backoff=2.0,
    )
    return session, sleep, capture


def test_capture_saves_clipboard_image(tmp_path):
    image = Image.new("RGB", (8, 6), "red")
    session, sleep, capture = make_capture(grab_sequence(image))

    result = capture.capture(str(tmp_path / "band.png"), "png")

    assert session.commands == [CMD_COPY_TO_CLIPBOARD]
    assert (result.width, result.height) == (8, 6)
    assert result.warnings == []
    with Image.open(result.path) as saved:
        assert saved.size == (8, 6)


def test_capture_polls_until_image_appears(tmp_path):
    image = Image.new("RGB", (4, 4))
    session, sleep, capture = make_capture(grab_sequence(None, OSError("busy"), image))

    capture.capture(str(tmp_path / "band.png"))

    assert sleep.calls == [0.5, 0.2, 0.4]


def test_capture_times_out_without_image(tmp_path):
    session, sleep, capture = make_capture(grab_sequence(None), max_attempts=3)

    with pytest.raises(NoImageAvailableError):
        capture.capture(str(tmp_path / "band.png"))
    assert not (tmp_path / "band.png").exists()


def test_capture_rejects_file_list_clipboard(tmp_path):
    session, sleep, capture = make_capture(grab_sequence(["C:/a.png"]))
    with pytest.raises(FormatUnsupportedError):
        capture.capture(str(tmp_path / "band.png"))


def test_capture_rejects_unknown_format(tmp_path):
    session, sleep, capture = make_capture(grab_sequence(Image.new("RGB", (2, 2))))
    with pytest.raises(FormatUnsupportedError):
        capture.capture(str(tmp_path / "band.gif"), "gif")
    assert session.commands == []


def test_copy_failure_is_a_warning(tmp_path):
    session, sleep, capture = make_capture(grab_sequence(Image.new("RGB", (2, 2))))
    session.command_status[CMD_COPY_TO_CLIPBOARD] = 3

    result = capture.capture(str(tmp_path / "band.png"))

    assert len(result.warnings) == 1
    assert "Error 3" in result.warnings[0]


def test_jpeg_capture_converts_alpha(tmp_path):
    session, sleep, capture = make_capture(grab_sequence(Image.new("RGBA", (3, 3))))
    result = capture.capture(str(tmp_path / "band.jpg"), "jpg")
    with Image.open(result.path) as saved:
        assert saved.format == "JPEG"


def test_unwritable_path_is_io_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    session, sleep, capture = make_capture(grab_sequence(Image.new("RGB", (2, 2))))

    with pytest.raises(CaptureIOError):
        capture.capture(str(blocker / "band.png"))


def test_clipboard_backend_missing_is_no_image(tmp_path):
    session, sleep, capture = make_capture(
        grab_sequence(NotImplementedError("wl-paste or xclip is required")),
    )

    with pytest.raises(NoImageAvailableError) as excinfo:
        capture.capture(str(tmp_path / "band.png"))
    assert isinstance(excinfo.value.__cause__, NotImplementedError)
    assert "NotImplementedError" in str(excinfo.value)
