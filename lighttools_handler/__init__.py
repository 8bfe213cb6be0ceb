"""LightTools handler package – composed via mixin pattern.

Usage::

    from lighttools_handler import LightToolsHandler, LightToolsError
"""

from lighttools_handler._base import LightToolsHandlerBase
from lighttools_handler.errors import (
    LightToolsError,
    SessionConnectionError,
    SessionStatusError,
    NoMatchingRaysError,
    VisibilityStateError,
    RunCancelled,
)
from lighttools_handler.ray_paths import RayPathsMixin
from lighttools_handler.interrogation import InterrogationMixin


class LightToolsHandler(
    RayPathsMixin,
    InterrogationMixin,
    LightToolsHandlerBase,
):
    """Composed LightTools handler with all analysis mixins."""
    pass


__all__ = [
    "LightToolsHandler",
    "LightToolsError",
    "SessionConnectionError",
    "SessionStatusError",
    "NoMatchingRaysError",
    "VisibilityStateError",
    "RunCancelled",
]
