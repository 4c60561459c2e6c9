"""Tests for EXIF GPS extraction."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from PIL import Image, TiffImagePlugin

from mapnotes.services import exif

if TYPE_CHECKING:
    import pathlib


def test_dms_to_degrees_north_east() -> None:
    """Test northern and eastern positions are positive."""
    assert exif.dms_to_degrees((45, 30, 0), "N") == pytest.approx(45.5)
    assert exif.dms_to_degrees((10, 0, 36), "E") == pytest.approx(10.01)


def test_dms_to_degrees_south_west() -> None:
    """Test southern and western positions are negative."""
    assert exif.dms_to_degrees((33, 52, 12), "S") == pytest.approx(-33.87)
    assert exif.dms_to_degrees((70, 30, 0), "w") == pytest.approx(-70.5)


def test_dms_to_degrees_rationals() -> None:
    """Test Pillow rationals are accepted."""
    values = (
        TiffImagePlugin.IFDRational(45, 1),
        TiffImagePlugin.IFDRational(30, 1),
        TiffImagePlugin.IFDRational(90, 10),
    )
    assert exif.dms_to_degrees(values, "N") == pytest.approx(45.5025)


@pytest.mark.parametrize("values", [None, (), (1, 2), (1, 2, 3, 4)])
def test_dms_to_degrees_malformed(values: tuple | None) -> None:
    """Test malformed values give None."""
    assert exif.dms_to_degrees(values, "N") is None


def test_read_gps(tmp_path: pathlib.Path) -> None:
    """Test a JPEG with a GPS block yields its position."""
    image_exif = Image.Exif()
    image_exif[exif.GPS_IFD_TAG] = {
        exif.GPS_LATITUDE_REF: "S",
        exif.GPS_LATITUDE: (
            TiffImagePlugin.IFDRational(33, 1),
            TiffImagePlugin.IFDRational(52, 1),
            TiffImagePlugin.IFDRational(12, 1),
        ),
        exif.GPS_LONGITUDE_REF: "E",
        exif.GPS_LONGITUDE: (
            TiffImagePlugin.IFDRational(151, 1),
            TiffImagePlugin.IFDRational(12, 1),
            TiffImagePlugin.IFDRational(36, 1),
        ),
    }
    path = tmp_path / "sydney.jpg"
    Image.new("RGB", (4, 4)).save(path, "JPEG", exif=image_exif)

    point = exif.read_gps(path)
    assert point is not None
    assert point.latitude == pytest.approx(-33.87)
    assert point.longitude == pytest.approx(151.21)


def test_read_gps_without_exif(tmp_path: pathlib.Path) -> None:
    """Test an image without GPS data gives None."""
    path = tmp_path / "plain.png"
    Image.new("RGB", (4, 4)).save(path, "PNG")
    assert exif.read_gps(path) is None


def test_read_gps_unreadable(tmp_path: pathlib.Path) -> None:
    """Test a file Pillow cannot open gives None."""
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"nope")
    assert exif.read_gps(path) is None


def test_dms_to_degrees_zero_denominator() -> None:
    """Test a rational with a zero denominator gives None."""
    values = (
        TiffImagePlugin.IFDRational(45, 1),
        TiffImagePlugin.IFDRational(0, 0),
        TiffImagePlugin.IFDRational(0, 1),
    )
    assert exif.dms_to_degrees(values, "N") is None


def _save_with_gps(path: pathlib.Path, latitude: tuple, longitude: tuple) -> None:
    image_exif = Image.Exif()
    image_exif[exif.GPS_IFD_TAG] = {
        exif.GPS_LATITUDE_REF: "N",
        exif.GPS_LATITUDE: latitude,
        exif.GPS_LONGITUDE_REF: "E",
        exif.GPS_LONGITUDE: longitude,
    }
    Image.new("RGB", (4, 4)).save(path, "JPEG", exif=image_exif)


def _rationals(*values: int) -> tuple:
    return tuple(TiffImagePlugin.IFDRational(value, 1) for value in values)


@pytest.mark.parametrize(
    ("latitude", "longitude"),
    [
        (_rationals(200, 0, 0), _rationals(15, 0, 0)),
        (_rationals(45, 0, 0), _rationals(181, 0, 0)),
        (
            (
                TiffImagePlugin.IFDRational(45, 1),
                TiffImagePlugin.IFDRational(0, 0),
                TiffImagePlugin.IFDRational(0, 1),
            ),
            _rationals(15, 0, 0),
        ),
    ],
)
def test_read_gps_rejects_invalid_positions(
    tmp_path: pathlib.Path,
    latitude: tuple,
    longitude: tuple,
) -> None:
    """Test out-of-range or undefined positions give None."""
    path = tmp_path / "bad-gps.jpg"
    _save_with_gps(path, latitude, longitude)
    assert exif.read_gps(path) is None
