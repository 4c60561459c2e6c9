"""GeoJSON features and layer descriptors fed to the map renderer.

The renderer draws a street base layer, an optional satellite layer on top
of it, the markers of every visible layer, and the user's position with an
accuracy circle. This module turns API data into those inputs. Geometries
are in Web Mercator (EPSG:3857), the renderer's display projection.

Example:
    Build the marker layer for a list fetched from the API:
        >>> from mapnotes.client import features
        >>> collection = features.marker_features(client.list_markers())
        >>> collection["features"][0]["properties"]["label"]
        'Trailhead'
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from shapely import geometry as shapely_geometry

from mapnotes.client import geometry
from mapnotes.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

CAMERA_GLYPH = "\N{CAMERA}"
STREET_LAYER_ID = "street"
SATELLITE_LAYER_ID = "satellite"
SATELLITE_TILE_URL = (
    "https://server.arcgisonline.com/ArcGIS/rest/services/"
    "World_Imagery/MapServer/tile/{z}/{y}/{x}"
)
SATELLITE_MAX_ZOOM = 19


@dataclasses.dataclass(frozen=True)
class UserLocation:
    latitude: float
    longitude: float
    accuracy: float | None = None


def marker_label(name: str | None, has_photo: bool) -> str:
    """Text drawn above a marker: its name, or a camera for unnamed photos."""
    if not name and has_photo:
        return CAMERA_GLYPH
    return name or ""


def _feature(
    geom: shapely_geometry.base.BaseGeometry,
    properties: dict[str, Any],
    feature_id: str | None = None,
) -> dict[str, Any]:
    feature: dict[str, Any] = {
        "type": "Feature",
        "geometry": shapely_geometry.mapping(geom),
        "properties": properties,
    }
    if feature_id is not None:
        feature["id"] = feature_id
    return feature


def marker_features(markers: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Build the marker FeatureCollection.

    Markers whose layer is hidden are left out. Each feature carries the
    layer colour (or the default colour when the layer is unknown), whether
    a photo is attached, and the label text to draw.

    Args:
        markers: Marker dictionaries as returned by ``GET /api/markers``.

    Returns:
        GeoJSON FeatureCollection with Point geometries in EPSG:3857.
    """
    features = []
    for marker in markers:
        layer = marker.get("layer") or {}
        if layer.get("visible") is False:
            continue
        x, y = geometry.from_lon_lat(marker["longitude"], marker["latitude"])
        has_photo = bool(marker.get("photo"))
        name = marker.get("name") or ""
        features.append(
            _feature(
                shapely_geometry.Point(x, y),
                {
                    "name": name,
                    "color": layer.get("color")
                    or db_models.DEFAULT_LAYER_COLOR,
                    "hasPhoto": has_photo,
                    "label": marker_label(name, has_photo),
                },
                feature_id=marker.get("id"),
            )
        )
    return {"type": "FeatureCollection", "features": features}


def user_location_features(
    location: UserLocation | None,
    show: bool = True,
) -> dict[str, Any]:
    """Build the user-location FeatureCollection.

    Contains an accuracy circle (when the accuracy is positive) followed by
    the position point. Empty when the location is unknown or hidden.
    """
    features: list[dict[str, Any]] = []
    if show and location is not None:
        x, y = geometry.from_lon_lat(location.longitude, location.latitude)
        center = shapely_geometry.Point(x, y)
        if location.accuracy and location.accuracy > 0:
            features.append(
                _feature(center.buffer(location.accuracy), {"type": "accuracy"})
            )
        features.append(_feature(center, {"type": "position"}))
    return {"type": "FeatureCollection", "features": features}


def base_layers(satellite_visible: bool) -> list[dict[str, Any]]:
    """Describe the base tile layers, bottom first.

    The street layer is always shown; the satellite layer sits above it and
    is toggled independently rather than replacing it.
    """
    return [
        {"id": STREET_LAYER_ID, "source": "osm", "visible": True},
        {
            "id": SATELLITE_LAYER_ID,
            "source": "xyz",
            "url": SATELLITE_TILE_URL,
            "maxZoom": SATELLITE_MAX_ZOOM,
            "visible": satellite_visible,
        },
    ]
