"""
Utility functions for the LightTools Worker.
"""

from .timing import (
    timed_operation,
    log_timing,
    timed_lock_acquire,
)
from .polling import (
    PollTimeoutError,
    poll_until,
    settle,
)

__all__ = [
    "timed_operation",
    "log_timing",
    "timed_lock_acquire",
    "PollTimeoutError",
    "poll_until",
    "settle",
]
