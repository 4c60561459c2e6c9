"""Address geocoding against a Nominatim-compatible search service.

The map lets users jump to an address. The lookup is forwarded to the
configured search endpoint and the first hit is returned. Failures of any
kind are logged and reported as "no result"; nothing is retried.

Example:
    Look up an address:
        >>> from mapnotes.core.config import get_settings
        >>> from mapnotes.services.geocoding import geocode_address
        >>> geocode_address("Zagreb", get_settings())
        GeocodingResult(lat=45.81, lon=15.98, display_name='Zagreb, Croatia')
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

import httpx

if TYPE_CHECKING:
    from mapnotes.core import config

logger = logging.getLogger(__name__)


class GeocodingResult(NamedTuple):
    lat: float
    lon: float
    display_name: str


def _search(
    client: httpx.Client,
    address: str,
    settings: config.Settings,
) -> GeocodingResult | None:
    response = client.get(
        str(settings.geocoder_url),
        params={"q": address, "format": "json", "limit": "1"},
        headers={"User-Agent": settings.geocoder_user_agent},
    )
    response.raise_for_status()
    data = response.json()
    if not data:
        return None
    first = data[0]
    return GeocodingResult(
        lat=float(first["lat"]),
        lon=float(first["lon"]),
        display_name=str(first.get("display_name", "")),
    )


def geocode_address(
    address: str,
    settings: config.Settings,
    client: httpx.Client | None = None,
) -> GeocodingResult | None:
    """Resolve an address to coordinates.

    Args:
        address: Free-text address or place name.
        settings: Application settings with the geocoder URL, User-Agent and
            timeout.
        client: Optional httpx client to reuse. A short-lived client is
            created when omitted.

    Returns:
        The first match, or None if there is none or the lookup failed.
    """
    try:
        if client is not None:
            return _search(client, address, settings)
        with httpx.Client(timeout=settings.geocoder_timeout_seconds) as owned:
            return _search(owned, address, settings)
    except httpx.HTTPStatusError as exc:
        logger.error(
            "Geocoding request failed: %s %s",
            exc.response.status_code,
            exc.response.reason_phrase,
        )
    except httpx.HTTPError as exc:
        logger.error("Error geocoding address %r: %s", address, exc)
    except (ValueError, KeyError, TypeError, IndexError) as exc:
        logger.error("Unexpected geocoder response for %r: %s", address, exc)
    return None
