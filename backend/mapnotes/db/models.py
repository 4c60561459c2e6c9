"""Data models for layers and markers.

This module defines the core data structures used throughout the application
to represent map annotations. A Layer is a named, coloured grouping that can
be hidden as a whole; a Marker is a point with optional photo, description
and free-text labels belonging to exactly one layer.

Marker labels are persisted as JSON-encoded text and exposed over the API as
an array. encode_labels() and decode_labels() convert between the two.

Example:
    Creating a layer and a marker in it:
        >>> from mapnotes.db.models import Layer, Marker, encode_labels
        >>> layer = Layer(id="layer-1", name="Trails", color="#2E7D32")
        >>> marker = Marker(
        ...     id="marker-1",
        ...     name="Trailhead",
        ...     description=None,
        ...     photo=None,
        ...     latitude=45.81,
        ...     longitude=15.98,
        ...     labels=encode_labels(["parking", "water"]),
        ...     layer_id=layer.id,
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_LAYER_COLOR = "#FF5733"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


def encode_labels(labels: list[str] | None) -> str:
    """Serialize a list of labels to the JSON text stored with a marker."""
    return json.dumps(list(labels or []))


def decode_labels(text: str | None) -> list[str]:
    """Parse stored labels text back into a list of strings.

    Args:
        text: JSON text as stored in the ``labels`` column. None and the
            empty string are treated as an empty list.

    Returns:
        The labels in stored order.

    Raises:
        ValueError: If the text is not a JSON array of strings.
    """
    if not text:
        return []
    value = json.loads(text)
    if not isinstance(value, list) or not all(
        isinstance(label, str) for label in value
    ):
        raise ValueError(f"labels must be a JSON array of strings: {text!r}")
    return value


@dataclasses.dataclass
class Layer:
    """A named, coloured, visibility-toggleable grouping of markers.

    Attributes:
        id: Unique identifier for the layer (UUID string).
        name: Human-readable layer name.
        color: Hex colour used to draw the layer's markers.
        visible: Whether the layer's markers are drawn.
        created_at: Timestamp when the layer was created.
        updated_at: Timestamp of the last modification.
        marker_count: Number of markers in the layer, populated by list
            queries only.
    """

    id: str
    name: str
    color: str = DEFAULT_LAYER_COLOR
    visible: bool = True
    created_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)
    marker_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape returned by the API."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "visible": self.visible,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.marker_count is not None:
            result["_count"] = {"markers": self.marker_count}
        return result


@dataclasses.dataclass
class Marker:
    """A labelled point belonging to exactly one layer.

    Attributes:
        id: Unique identifier for the marker (UUID string).
        name: Marker title. May be empty when a photo is attached.
        description: Free-text description, or None.
        photo: Relative URL of the attached photo (``/uploads/...``), or None.
        latitude: Latitude in decimal degrees (EPSG:4326).
        longitude: Longitude in decimal degrees (EPSG:4326).
        labels: JSON-encoded array of label strings.
        layer_id: Identifier of the owning layer.
        created_at: Timestamp when the marker was created.
        updated_at: Timestamp of the last modification.
        layer: The owning layer, populated by queries that join it.
    """

    id: str
    name: str
    description: str | None
    photo: str | None
    latitude: float
    longitude: float
    layer_id: str
    labels: str = "[]"
    created_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)
    layer: Layer | None = None

    def label_list(self) -> list[str]:
        """Return the labels as a list, or [] if the stored text is invalid."""
        try:
            return decode_labels(self.labels)
        except ValueError:
            logger.warning(
                "Ignoring malformed labels on marker %s: %r",
                self.id,
                self.labels,
            )
            return []

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape returned by the API."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "photo": self.photo,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "labels": self.label_list(),
            "layerId": self.layer_id,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.layer is not None:
            layer = dataclasses.replace(self.layer, marker_count=None)
            result["layer"] = layer.to_dict()
        return result
