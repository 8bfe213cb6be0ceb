"""
Poll-with-timeout helpers for waiting on LightTools' asynchronous side effects.

The session recomputes and redraws asynchronously relative to the command
that triggers it, and the OS clipboard is populated asynchronously after
CopyToClipboard. Instead of bare ``time.sleep`` calls scattered through the
handler, waits go through these helpers so tests can inject a no-op sleep.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(TimeoutError):
    """Raised when a readiness check never succeeds within its attempt budget."""

    def __init__(self, what: str, attempts: int, last_error: Optional[BaseException] = None):
        self.what = what
        self.attempts = attempts
        self.last_error = last_error
        detail = f" (last error: {last_error})" if last_error else ""
        super().__init__(f"{what} not ready after {attempts} attempts{detail}")


def poll_until(
    check: Callable[[], Optional[T]],
    what: str,
    max_attempts: int,
    interval_s: float,
    backoff: float = 1.0,
    initial_delay_s: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[BaseException], ...] = (),
) -> T:
    """
    Call ``check`` until it returns something other than None.

    Args:
        check: Readiness probe. ``None`` means "not yet".
        what: Description used in logs and the timeout error.
        max_attempts: Total number of calls to ``check`` (>= 1).
        interval_s: Delay before the second attempt.
        backoff: Multiplier applied to the delay after each failed attempt.
        initial_delay_s: Delay before the first attempt.
        sleep: Injected sleep function.
        retry_on: Exception types from ``check`` treated as "not yet";
            anything else propagates immediately.

    Returns:
        The first non-None value returned by ``check``.

    Raises:
        PollTimeoutError: If every attempt returned None (or raised one of
            ``retry_on``).
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    if initial_delay_s > 0:
        sleep(initial_delay_s)

    delay = interval_s
    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            result = check()
        except retry_on as e:
            last_error = e
            result = None
        if result is not None:
            if attempt > 1:
                logger.debug(f"{what} ready after {attempt} attempts")
            return result
        if attempt < max_attempts:
            sleep(delay)
            delay *= backoff

    raise PollTimeoutError(what, max_attempts, last_error)


def settle(seconds: float, what: str, sleep: Callable[[float], None] = time.sleep) -> None:
    """
    Give the session time to settle after a state change.

    LightTools exposes no "render finished" flag through DbGet, so this is a
    fixed wait.
    """
    if seconds <= 0:
        return
    logger.debug(f"Settling {seconds:.2f}s after {what}")
    sleep(seconds)
