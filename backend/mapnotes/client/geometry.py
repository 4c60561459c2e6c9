"""Projection helpers and georeferenced image overlay geometry.

The map works in Web Mercator (EPSG:3857) while markers are stored in
longitude/latitude (EPSG:4326). from_lon_lat() and to_lon_lat() convert
between the two with pyproj.

Image overlays are static rasters stretched over a bounding box
``(minx, miny, maxx, maxy)`` in map units. The overlay settings panel edits
one shared OverlayConfig: panning shifts the box, width/height scaling
resizes it about its centre, and rotation is applied by the renderer as a
visual transform of the drawn layer, so the box itself never rotates. Every
edit returns a new config.

Example:
    Nudge and widen an overlay:
        >>> config = OverlayConfig(
        ...     visible=True, opacity=0.7, extent=(0.0, 0.0, 100.0, 50.0)
        ... )
        >>> config.pan(2, 0).scale_width(1.1).extent
        (-3.0..., 0.0, 107.0..., 50.0)
"""

from __future__ import annotations

import dataclasses
import functools

import pyproj

Extent = tuple[float, float, float, float]


@functools.cache
def _transformer(source: str, target: str) -> pyproj.Transformer:
    return pyproj.Transformer.from_crs(source, target, always_xy=True)


def from_lon_lat(longitude: float, latitude: float) -> tuple[float, float]:
    """Project WGS84 longitude/latitude to Web Mercator x/y."""
    x, y = _transformer("EPSG:4326", "EPSG:3857").transform(longitude, latitude)
    return (x, y)


def to_lon_lat(x: float, y: float) -> tuple[float, float]:
    """Unproject Web Mercator x/y to WGS84 longitude/latitude."""
    lon, lat = _transformer("EPSG:3857", "EPSG:4326").transform(x, y)
    return (lon, lat)


def extent_center(extent: Extent) -> tuple[float, float]:
    min_x, min_y, max_x, max_y = extent
    return ((min_x + max_x) / 2, (min_y + max_y) / 2)


@dataclasses.dataclass(frozen=True)
class OverlayConfig:
    """Shared placement settings applied to every image overlay.

    Attributes:
        visible: Whether overlays are drawn at all.
        opacity: Overlay opacity between 0 and 1.
        extent: Bounding box ``(minx, miny, maxx, maxy)`` in map units.
        rotation: Clockwise rotation in degrees applied when drawing.
    """

    visible: bool
    opacity: float
    extent: Extent
    rotation: float = 0.0

    def pan(self, dx: float, dy: float) -> OverlayConfig:
        """Shift the box by ``dx``/``dy`` map units."""
        min_x, min_y, max_x, max_y = self.extent
        return dataclasses.replace(
            self,
            extent=(min_x + dx, min_y + dy, max_x + dx, max_y + dy),
        )

    def scale_width(self, factor: float) -> OverlayConfig:
        """Scale the box horizontally about its centre."""
        if factor <= 0:
            raise ValueError("factor must be positive")
        min_x, min_y, max_x, max_y = self.extent
        center_x, _ = extent_center(self.extent)
        half_width = (max_x - min_x) * factor / 2
        return dataclasses.replace(
            self,
            extent=(center_x - half_width, min_y, center_x + half_width, max_y),
        )

    def scale_height(self, factor: float) -> OverlayConfig:
        """Scale the box vertically about its centre."""
        if factor <= 0:
            raise ValueError("factor must be positive")
        min_x, min_y, max_x, max_y = self.extent
        _, center_y = extent_center(self.extent)
        half_height = (max_y - min_y) * factor / 2
        return dataclasses.replace(
            self,
            extent=(min_x, center_y - half_height, max_x, center_y + half_height),
        )

    def rotate(self, delta: float) -> OverlayConfig:
        return dataclasses.replace(self, rotation=self.rotation + delta)

    def with_opacity(self, opacity: float) -> OverlayConfig:
        return dataclasses.replace(self, opacity=min(1.0, max(0.0, opacity)))


@dataclasses.dataclass(frozen=True)
class ImageOverlay:
    """A static raster drawn over the map inside a bounding box."""

    id: str
    name: str
    url: str
    visible: bool
    opacity: float
    extent: Extent
    rotation: float | None = None


def toggle_overlay(
    overlays: list[ImageOverlay],
    overlay_id: str,
) -> list[ImageOverlay]:
    """Return the overlays with one overlay's visibility flipped."""
    return [
        dataclasses.replace(overlay, visible=not overlay.visible)
        if overlay.id == overlay_id
        else overlay
        for overlay in overlays
    ]


def apply_config(
    overlays: list[ImageOverlay],
    config: OverlayConfig,
) -> list[ImageOverlay]:
    """Give every overlay the shared extent and rotation.

    Each overlay keeps its own visibility and opacity.
    """
    return [
        dataclasses.replace(
            overlay,
            extent=config.extent,
            rotation=config.rotation,
        )
        for overlay in overlays
    ]


def rotation_css(rotation: float) -> dict[str, str]:
    """CSS applied to an overlay's rendered canvas to rotate it in place."""
    return {"transform": f"rotate({rotation}deg)", "transformOrigin": "center"}
