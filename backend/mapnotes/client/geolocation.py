"""Continuous user position tracking.

PositionWatcher wraps a platform ``watch`` primitive that reports positions
and errors through callbacks until cleared. It keeps the latest position,
the latest error and a loading flag for the map view. A successful fix
clears any earlier error; the watch stays active after transient errors and
nothing is retried by hand.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3
    UNKNOWN = 0
    UNSUPPORTED = -1


_MESSAGES = {
    ErrorKind.PERMISSION_DENIED: "Location permission denied",
    ErrorKind.POSITION_UNAVAILABLE: "Location information unavailable",
    ErrorKind.TIMEOUT: "Location request timed out",
    ErrorKind.UNKNOWN: "An unknown error occurred",
    ErrorKind.UNSUPPORTED: "Geolocation is not supported by this device",
}


@dataclasses.dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy: float | None = None


@dataclasses.dataclass(frozen=True)
class PositionError:
    kind: ErrorKind
    message: str

    @classmethod
    def from_code(cls, code: int) -> PositionError:
        """Map a platform error code (1, 2 or 3) to an error."""
        kind = ErrorKind(code) if code in (1, 2, 3) else ErrorKind.UNKNOWN
        return cls(kind, _MESSAGES[kind])


@dataclasses.dataclass(frozen=True)
class WatchOptions:
    enable_high_accuracy: bool = True
    timeout: int = 10000
    maximum_age: int = 0


class PositionWatcher:
    """Track the device position while started.

    Args:
        watch: Starts a watch. Called as ``watch(on_success, on_error,
            options)`` and returns a handle for ``clear_watch``.
            ``on_error`` receives the numeric error code.
        clear_watch: Stops the watch identified by a handle.
        supported: Whether the device offers geolocation at all.
        options: Accuracy, timeout (ms) and maximum age (ms) of fixes.
    """

    def __init__(
        self,
        watch: Callable[..., Any],
        clear_watch: Callable[[Any], None],
        supported: bool = True,
        options: WatchOptions | None = None,
    ) -> None:
        self._watch = watch
        self._clear_watch = clear_watch
        self.supported = supported
        self.options = options or WatchOptions()
        self.position: Position | None = None
        self.error: PositionError | None = None
        self.loading = False
        self._handle: Any = None

    @property
    def watching(self) -> bool:
        return self._handle is not None

    def _on_success(self, position: Position) -> None:
        self.position = position
        self.error = None
        self.loading = False

    def _on_error(self, code: int) -> None:
        self.error = PositionError.from_code(code)
        self.loading = False
        logger.warning("Geolocation error: %s", self.error.message)

    def start(self) -> None:
        """Begin watching. Reports an error instead when unsupported."""
        if not self.supported:
            self.error = PositionError(
                ErrorKind.UNSUPPORTED, _MESSAGES[ErrorKind.UNSUPPORTED]
            )
            self.loading = False
            return
        if self.watching:
            return
        self.loading = True
        self._handle = self._watch(
            self._on_success, self._on_error, self.options
        )

    def stop(self) -> None:
        if self._handle is not None:
            self._clear_watch(self._handle)
            self._handle = None
        self.loading = False

    def __enter__(self) -> PositionWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
