"""Marker placement gestures.

Touch devices place a marker with a long press: holding a finger still for
``delay`` seconds reports the pressed location. Moving further than
``move_tolerance`` pixels or lifting the finger first cancels it. Desktop
devices place a marker with a double click instead; double clicks are
ignored on touch devices so a double tap can still zoom the map.

The detector is fed pointer events by the map view and schedules the long
press timer on the running asyncio event loop.

Example:
    >>> async def main():
    ...     detector = GestureDetector(print, is_touch_device=True, delay=0.1)
    ...     detector.pointer_down((10, 10), (0.0, 0.0), "touch")
    ...     await asyncio.sleep(0.2)
    >>> asyncio.run(main())
    0.0 0.0
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING

from mapnotes.client import geometry

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

Pixel = tuple[float, float]
Coordinate = tuple[float, float]

TOUCH_POINTER = "touch"


class GestureDetector:
    """Turn pointer events into marker placement requests.

    Args:
        on_place: Called with ``(longitude, latitude)`` when a gesture
            completes.
        is_touch_device: Whether the device has a touch screen.
        delay: Long press duration in seconds.
        move_tolerance: Pixels a touch may drift before the press is
            cancelled.
    """

    def __init__(
        self,
        on_place: Callable[[float, float], None],
        is_touch_device: bool,
        delay: float = 0.5,
        move_tolerance: float = 10,
    ) -> None:
        self.on_place = on_place
        self.is_touch_device = is_touch_device
        self.delay = delay
        self.move_tolerance = move_tolerance
        self._timer: asyncio.TimerHandle | None = None
        self._start_pixel: Pixel | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._start_pixel = None

    def _place(self, coordinate: Coordinate) -> None:
        longitude, latitude = geometry.to_lon_lat(*coordinate)
        logger.debug("Placing marker at %f, %f", latitude, longitude)
        self.on_place(longitude, latitude)

    def _fire(self, coordinate: Coordinate) -> None:
        self._timer = None
        self._start_pixel = None
        self._place(coordinate)

    def pointer_down(
        self,
        pixel: Pixel,
        coordinate: Coordinate,
        pointer_type: str,
    ) -> None:
        """Start a long press at ``coordinate`` (map units).

        Must be called from a running event loop. Non-touch pointers are
        ignored.
        """
        if pointer_type != TOUCH_POINTER:
            return
        self._cancel()
        loop = asyncio.get_running_loop()
        self._start_pixel = pixel
        self._timer = loop.call_later(self.delay, self._fire, coordinate)

    def pointer_move(self, pixel: Pixel, pointer_type: str) -> None:
        if pointer_type != TOUCH_POINTER or self._start_pixel is None:
            return
        distance = math.dist(pixel, self._start_pixel)
        if distance > self.move_tolerance:
            self._cancel()

    def pointer_up(self, pointer_type: str) -> None:
        if pointer_type == TOUCH_POINTER:
            self._cancel()

    def double_click(self, coordinate: Coordinate) -> bool:
        """Place a marker at once unless this is a touch device.

        Returns:
            True when the double click was handled.
        """
        if self.is_touch_device:
            return False
        self._place(coordinate)
        return True

    def close(self) -> None:
        """Cancel any pending long press."""
        self._cancel()
