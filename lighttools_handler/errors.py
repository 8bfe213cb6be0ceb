"""Exception types raised by the LightTools handler."""

from typing import Optional


class LightToolsError(Exception):
    """Exception raised when LightTools operations fail."""
    pass


class SessionConnectionError(LightToolsError):
    """Attaching to the LightTools process failed. Fatal before any mutation."""
    pass


class SessionStatusError(LightToolsError):
    """A session call whose failure is fatal returned a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None, status_text: Optional[str] = None):
        self.status = status
        self.status_text = status_text
        if status is not None:
            message = f"{message} (status {status}: {status_text or 'Unknown'})"
        super().__init__(message)


class NoMatchingRaysError(LightToolsError):
    """The source/surface filter left no usable ray paths."""
    pass


class VisibilityStateError(LightToolsError):
    """A visibility transition was requested from a state that does not allow it."""
    pass


class RunCancelled(LightToolsError):
    """The user aborted a selection before the session was mutated."""
    pass
