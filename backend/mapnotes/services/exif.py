"""EXIF GPS extraction for geotagged photos."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, NamedTuple

from PIL import Image

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

GPS_IFD_TAG = 0x8825
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4


class GpsPoint(NamedTuple):
    latitude: float
    longitude: float


def dms_to_degrees(values: Sequence[float] | None, ref: str | None) -> float | None:
    """Convert EXIF degree/minute/second rationals to signed degrees.

    Args:
        values: Three rationals (degrees, minutes, seconds). Pillow returns
            IFDRational instances, which convert with float().
        ref: Hemisphere reference; "S" and "W" make the result negative.

    Returns:
        Decimal degrees, or None when the values are missing or malformed.
    """
    if not values or len(values) != 3:
        return None
    try:
        degrees, minutes, seconds = (float(v) for v in values)
    except (TypeError, ValueError):
        return None
    result = degrees + minutes / 60 + seconds / 3600
    # A zero denominator in an IFDRational reads as nan rather than raising.
    if not math.isfinite(result):
        return None
    if ref and ref.strip().upper() in ("S", "W"):
        result = -result
    return result


def read_gps(path: pathlib.Path) -> GpsPoint | None:
    """Read the GPS position recorded in an image's EXIF block.

    Args:
        path: Image file readable by Pillow (HEIC/HEIF once pillow-heif's
            opener is registered).

    Returns:
        GpsPoint in WGS84 decimal degrees, or None when the image has no
        usable GPS data or cannot be opened.
    """
    try:
        with Image.open(path) as image:
            gps_info = image.getexif().get_ifd(GPS_IFD_TAG)
    except OSError:
        logger.warning("Could not read EXIF from %s", path.name)
        return None

    if not gps_info:
        return None

    latitude = dms_to_degrees(
        gps_info.get(GPS_LATITUDE), gps_info.get(GPS_LATITUDE_REF)
    )
    longitude = dms_to_degrees(
        gps_info.get(GPS_LONGITUDE), gps_info.get(GPS_LONGITUDE_REF)
    )
    if latitude is None or longitude is None:
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        logger.warning(
            "Ignoring out-of-range GPS position in %s: %f, %f",
            path.name,
            latitude,
            longitude,
        )
        return None
    return GpsPoint(latitude, longitude)
