"""Client-side marker creation flow and side panel navigation.

A marker is created in two steps: a placement gesture captures a position,
then the user fills in the form and submits it. MarkerCreationFlow tracks
that lifecycle::

    idle -> position-captured -> submitted -> idle
                                           -> idle-with-error

On success the refresh callback reloads markers. On failure the captured
position is discarded and the error message kept for display until the next
capture or cancel.

PanelNavigator drives the side panel, which shows the layer list, the
marker list or one marker's details, and remembers a single previous view
for the back button.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

from mapnotes.client import api

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class FlowState(enum.Enum):
    IDLE = "idle"
    POSITION_CAPTURED = "position-captured"
    SUBMITTED = "submitted"
    IDLE_WITH_ERROR = "idle-with-error"


class MarkerCreationFlow:
    """Capture a position and submit a new marker for it.

    Args:
        client: API client used to create the marker.
        on_created: Called with the created marker after a successful
            submit, typically to refresh the marker list.
    """

    def __init__(
        self,
        client: api.MapNotesClient,
        on_created: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.client = client
        self.on_created = on_created
        self.state = FlowState.IDLE
        self.position: tuple[float, float] | None = None
        self.error: str | None = None

    def capture(self, longitude: float, latitude: float) -> None:
        """Record the position picked by a placement gesture."""
        self.position = (longitude, latitude)
        self.error = None
        self.state = FlowState.POSITION_CAPTURED

    def cancel(self) -> None:
        self.position = None
        self.error = None
        self.state = FlowState.IDLE

    def submit(
        self,
        *,
        name: str = "",
        description: str | None = None,
        photo: str | None = None,
        labels: list[str] | None = None,
        layer_id: str | None = None,
    ) -> dict[str, Any] | None:
        """Create a marker at the captured position.

        When no layer is given the first layer is used, creating the default
        layer if there is none.

        Returns:
            The created marker, or None when the request failed.

        Raises:
            RuntimeError: If no position has been captured.
        """
        if self.state is not FlowState.POSITION_CAPTURED or not self.position:
            raise RuntimeError("No position captured")

        longitude, latitude = self.position
        self.state = FlowState.SUBMITTED
        try:
            if layer_id is None:
                layer_id = self.client.ensure_default_layer()["id"]
            marker = self.client.create_marker(
                name=name,
                description=description,
                photo=photo,
                labels=labels,
                latitude=latitude,
                longitude=longitude,
                layer_id=layer_id,
            )
        except api.ApiError as exc:
            logger.warning("Marker creation failed: %s", exc)
            self.position = None
            self.error = exc.detail or str(exc)
            self.state = FlowState.IDLE_WITH_ERROR
            return None

        self.position = None
        self.error = None
        self.state = FlowState.IDLE
        if self.on_created is not None:
            self.on_created(marker)
        return marker


class PanelView(enum.Enum):
    LAYERS = "layers"
    MARKERS = "markers"
    MARKER_DETAIL = "marker-detail"


class PanelNavigator:
    """Current side panel view with one level of back navigation."""

    def __init__(self) -> None:
        self.view = PanelView.LAYERS
        self.previous: PanelView | None = None
        self.marker_id: str | None = None

    def open(self, view: PanelView, marker_id: str | None = None) -> None:
        if view is PanelView.MARKER_DETAIL and marker_id is None:
            raise ValueError("marker_id is required for the detail view")
        if view is not self.view:
            self.previous = self.view
        self.view = view
        self.marker_id = marker_id if view is PanelView.MARKER_DETAIL else None

    def back(self) -> PanelView:
        """Return to the previous view, or the layer list if there is none."""
        self.view = self.previous or PanelView.LAYERS
        self.previous = None
        self.marker_id = None
        return self.view
