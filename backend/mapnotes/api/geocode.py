"""Address search endpoint.

Example:
    >>> client.get("/api/geocode", params={"q": "Zagreb"}).json()
    {'lat': 45.81, 'lon': 15.98, 'display_name': 'Zagreb, Croatia'}
"""

from __future__ import annotations

import fastapi

from mapnotes.core import config
from mapnotes.services import geocoding

router = fastapi.APIRouter(prefix="/api/geocode", tags=["geocode"])


@router.get("")
def geocode(
    q: str = "",
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, float | str]:
    """Return the first match for an address.

    Args:
        q: Address or place name.
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        Dictionary with ``lat``, ``lon`` and ``display_name``.

    Raises:
        HTTPException: 400 for a blank query, 404 when nothing was found.
    """
    if not q.strip():
        raise fastapi.HTTPException(status_code=400, detail="q is required")

    result = geocoding.geocode_address(q.strip(), settings)
    if result is None:
        raise fastapi.HTTPException(status_code=404, detail="No results")

    return result._asdict()
