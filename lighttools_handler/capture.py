"""Clipboard capture of the active LightTools view."""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from PIL import Image, ImageGrab

from config import (
    CMD_COPY_TO_CLIPBOARD, SUPPORTED_IMAGE_FORMATS,
    CLIPBOARD_INITIAL_DELAY_S, CLIPBOARD_POLL_INTERVAL_S,
    CLIPBOARD_POLL_BACKOFF, CLIPBOARD_MAX_ATTEMPTS,
)
from lighttools_handler.errors import LightToolsError
from lighttools_handler.session import is_success
from utils.polling import PollTimeoutError, poll_until

logger = logging.getLogger(__name__)


class CaptureError(LightToolsError):
    """Capturing the view failed. Never fatal to a run."""
    pass


class NoImageAvailableError(CaptureError):
    pass


class FormatUnsupportedError(CaptureError):
    pass


class CaptureIOError(CaptureError):
    pass


@dataclass
class CaptureResult:
    path: str
    width: int
    height: int
    warnings: list[str] = field(default_factory=list)


class ClipboardCapture:
    """
    Copy the active view to the clipboard and save it as an image file.

    The clipboard is populated asynchronously after CopyToClipboard, and an
    image's size may not be readable straight away, so the clipboard is
    polled a bounded number of times with backoff before giving up.
    """

    def __init__(
        self,
        session: Any,
        grab: Callable[[], Any] = ImageGrab.grabclipboard,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = CLIPBOARD_MAX_ATTEMPTS,
        initial_delay_s: float = CLIPBOARD_INITIAL_DELAY_S,
        interval_s: float = CLIPBOARD_POLL_INTERVAL_S,
        backoff: float = CLIPBOARD_POLL_BACKOFF,
    ):
        self.session = session
        self._grab = grab
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._initial_delay_s = initial_delay_s
        self._interval_s = interval_s
        self._backoff = backoff

    def _clipboard_image(self) -> Optional[Image.Image]:
        content = self._grab()
        if content is None:
            return None
        if isinstance(content, Image.Image):
            width, height = content.size
            # Size can read as 0 until the bitmap is fully written
            if width <= 0 or height <= 0:
                return None
            return content
        if isinstance(content, list):
            raise FormatUnsupportedError(
                f"Clipboard holds {len(content)} file name(s), not image data"
            )
        raise FormatUnsupportedError(f"Clipboard holds unsupported data: {type(content).__name__}")

    def capture(self, path: str, image_format: str = "png") -> CaptureResult:
        """
        Save the current view to ``path``.

        Raises:
            FormatUnsupportedError: unknown ``image_format`` or non-image clipboard data.
            NoImageAvailableError: no image appeared within the retry budget,
                or the clipboard could not be read at all.
            CaptureIOError: the image could not be written.
        """
        fmt = image_format.lower()
        if fmt not in SUPPORTED_IMAGE_FORMATS:
            raise FormatUnsupportedError(f"Unsupported image format: {image_format}")

        warnings: list[str] = []
        status = self.session.command(CMD_COPY_TO_CLIPBOARD)
        if not is_success(status):
            # Something may still have landed on the clipboard; keep going
            msg = (
                f"{CMD_COPY_TO_CLIPBOARD} may have failed. Status: {status} "
                f"({self.session.status_string(status)})"
            )
            logger.warning(msg)
            warnings.append(msg)

        try:
            image = poll_until(
                self._clipboard_image,
                what="clipboard image",
                max_attempts=self._max_attempts,
                interval_s=self._interval_s,
                backoff=self._backoff,
                initial_delay_s=self._initial_delay_s,
                sleep=self._sleep,
                retry_on=(OSError,),
            )
        except PollTimeoutError as e:
            raise NoImageAvailableError(f"No image data found on the clipboard: {e}") from e
        except CaptureError:
            raise
        except Exception as e:
            # e.g. NotImplementedError when Pillow has no clipboard backend
            raise NoImageAvailableError(
                f"Reading the clipboard failed: {type(e).__name__}: {e}"
            ) from e

        pil_format = "JPEG" if fmt in ("jpg", "jpeg") else fmt.upper()
        if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        try:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
            image.save(path, format=pil_format)
        except (OSError, ValueError, KeyError) as e:
            raise CaptureIOError(f"Failed to save clipboard image to {path}: {e}") from e

        logger.info(f"Saved view capture: {path} ({image.width}x{image.height})")
        return CaptureResult(path=path, width=image.width, height=image.height, warnings=warnings)
