"""Marker management API endpoints.

This module provides REST API endpoints for the points users place on the
map: listing markers (optionally for one layer), collecting the label
vocabulary used across all markers, and creating, editing and deleting
markers.

A marker needs a name or a photo, a latitude, a longitude and an existing
layer. Labels travel as a JSON array and are stored as JSON text.

Example:
    Create a marker:
        >>> response = client.post(
        ...     "/api/markers",
        ...     json={
        ...         "name": "Spring",
        ...         "latitude": 45.81,
        ...         "longitude": 15.98,
        ...         "layerId": "layer_123",
        ...         "labels": ["water"],
        ...     },
        ... )
        >>> response.status_code
        201

    Fetch all labels in use:
        >>> client.get("/api/markers/labels").json()
        ['camp', 'water']
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import fastapi
import pydantic
from fastapi import responses

from mapnotes.core import config
from mapnotes.db import database
from mapnotes.db import models as db_models

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/markers", tags=["markers"])


class MarkerPayload(pydantic.BaseModel):
    """Request body shared by marker creation and partial updates.

    ``model_fields_set`` tells an omitted field apart from one sent as null,
    which matters for labels: omitted keeps them, ``[]`` or null clears them.
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    name: str | None = None
    description: str | None = None
    photo: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    layer_id: str | None = pydantic.Field(default=None, alias="layerId")
    labels: list[str] | None = None


def _get_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.MarkerRepositoryProtocol:
    """Resolve the marker repository dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        MarkerRepositoryProtocol implementation
            (PostgresMarkerRepository in production).
    """
    return database.get_marker_repository(settings)


def _validate_coordinates(
    latitude: float | None,
    longitude: float | None,
) -> None:
    """Reject coordinates outside the WGS84 range.

    Raises:
        HTTPException: If latitude or longitude is out of range.
    """
    if latitude is not None and not -90.0 <= latitude <= 90.0:
        raise fastapi.HTTPException(
            status_code=400,
            detail="latitude must be between -90 and 90",
        )
    if longitude is not None and not -180.0 <= longitude <= 180.0:
        raise fastapi.HTTPException(
            status_code=400,
            detail="longitude must be between -180 and 180",
        )


def _validate_new_marker(payload: MarkerPayload) -> None:
    """Check the fields required to create a marker.

    A marker needs a name or a photo, both coordinates and a layer id.

    Raises:
        HTTPException: 400 naming the required fields.
    """
    if (
        (not payload.name and not payload.photo)
        or payload.latitude is None
        or payload.longitude is None
        or not payload.layer_id
    ):
        raise fastapi.HTTPException(
            status_code=400,
            detail=(
                "Name or photo, latitude, longitude, "
                "and layerId are required"
            ),
        )

    _validate_coordinates(payload.latitude, payload.longitude)


def _unknown_layer(exc: database.RecordNotFoundError) -> fastapi.HTTPException:
    return fastapi.HTTPException(status_code=400, detail=str(exc))


@router.get("")
def list_markers(
    layer_id: str | None = fastapi.Query(default=None, alias="layerId"),
    repo: database.MarkerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> list[dict[str, Any]]:
    """List markers newest first, each with its layer joined.

    Args:
        layer_id: Optional layer id to restrict the list to.
        repo: Marker repository (injected via FastAPI Depends).
    """
    return [marker.to_dict() for marker in repo.all(layer_id)]


@router.get("/labels")
def list_labels(
    repo: database.MarkerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> list[str]:
    """Return every label used by any marker, sorted and deduplicated.

    Markers whose stored labels cannot be parsed are skipped and logged.
    """
    labels: set[str] = set()
    for text in repo.all_labels_text():
        try:
            labels.update(db_models.decode_labels(text))
        except ValueError:
            logger.warning("Skipping unparsable labels: %r", text)

    return sorted(labels)


@router.post("", status_code=201)
def create_marker(
    payload: MarkerPayload,
    repo: database.MarkerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Create a marker.

    Raises:
        HTTPException: 400 if required fields are missing, coordinates are
            out of range or the layer does not exist.
    """
    _validate_new_marker(payload)
    marker = db_models.Marker(
        id=str(uuid.uuid4()),
        name=payload.name or "",
        description=payload.description,
        photo=payload.photo,
        latitude=float(payload.latitude),  # type: ignore[arg-type]
        longitude=float(payload.longitude),  # type: ignore[arg-type]
        layer_id=str(payload.layer_id),
        labels=db_models.encode_labels(payload.labels),
    )
    try:
        created = repo.add(marker)
    except database.RecordNotFoundError as exc:
        raise _unknown_layer(exc) from exc

    logger.info("Created marker %s in layer %s", created.id, created.layer_id)
    return created.to_dict()


@router.put("/{marker_id}")
def update_marker(
    marker_id: str,
    payload: MarkerPayload,
    repo: database.MarkerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Partially update a marker.

    Only fields present in the request body change. ``description`` and
    ``photo`` may be cleared with null; ``labels`` is overwritten only when
    the key is present, and null or ``[]`` clears it.

    Raises:
        HTTPException: 400 for out-of-range coordinates, a null value for a
            required field, or an unknown target layer.
        RecordNotFoundError: If the marker does not exist (mapped to 404).
    """
    sent = payload.model_fields_set
    changes: dict[str, Any] = {}
    for field in ("name", "latitude", "longitude", "layer_id"):
        if field in sent:
            value = getattr(payload, field)
            if value is None:
                raise fastapi.HTTPException(
                    status_code=400,
                    detail=f"{field} cannot be null",
                )
            changes[field] = value
    for field in ("description", "photo"):
        if field in sent:
            changes[field] = getattr(payload, field)
    if "labels" in sent:
        changes["labels"] = db_models.encode_labels(payload.labels)

    _validate_coordinates(changes.get("latitude"), changes.get("longitude"))
    try:
        return repo.update(marker_id, **changes).to_dict()
    except database.RecordNotFoundError as exc:
        if "layer_id" in changes and repo.get(marker_id) is not None:
            raise _unknown_layer(exc) from exc
        raise


@router.delete("/{marker_id}")
def delete_marker(
    marker_id: str,
    repo: database.MarkerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Delete a marker.

    Raises:
        RecordNotFoundError: If the marker does not exist (mapped to 404).
    """
    repo.delete(marker_id)
    logger.info("Deleted marker %s", marker_id)
    return responses.Response(status_code=204)
