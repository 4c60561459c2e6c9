"""Layer management API endpoints.

This module provides REST API endpoints for the named, coloured groupings
that markers belong to: listing layers with their marker counts, creating,
renaming, recolouring, hiding and deleting them. Deleting a layer removes its
markers in the same transaction.

Example:
    List all layers:
        >>> response = client.get("/api/layers")
        >>> layers = response.json()
        >>> # Returns: [{"id": "...", "name": "Default Layer",
        >>> #           "color": "#FF5733", "visible": true,
        >>> #           "_count": {"markers": 3}, ...}, ...]

    Hide a layer:
        >>> client.put("/api/layers/layer_123", json={"visible": False})
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any

import fastapi
import pydantic
from fastapi import responses

from mapnotes.core import config
from mapnotes.db import database
from mapnotes.db import models as db_models

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/layers", tags=["layers"])

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")


class LayerCreate(pydantic.BaseModel):
    name: str | None = None
    color: str | None = None


class LayerUpdate(pydantic.BaseModel):
    name: str | None = None
    color: str | None = None
    visible: bool | None = None


def _get_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.LayerRepositoryProtocol:
    """Resolve the layer repository dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        LayerRepositoryProtocol implementation
            (PostgresLayerRepository in production).
    """
    return database.get_layer_repository(settings)


def _validate_name(name: str | None) -> str:
    """Return the trimmed layer name, rejecting missing or blank names."""
    if name is None or not name.strip():
        raise fastapi.HTTPException(
            status_code=400,
            detail="Name is required",
        )

    return name.strip()


def _validate_color(color: str) -> str:
    """Validate a ``#RGB`` or ``#RRGGBB`` hex colour.

    Raises:
        HTTPException: If the colour is not a hex colour string.
    """
    if not _HEX_COLOR.match(color):
        raise fastapi.HTTPException(
            status_code=400,
            detail="Invalid color",
        )

    return color


@router.get("")
def list_layers(
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> list[dict[str, Any]]:
    """List all layers, oldest first, with the number of markers in each.

    Returns:
        List of layer dictionaries. Each carries ``_count.markers``.
    """
    return [layer.to_dict() for layer in repo.all()]


@router.post("", status_code=201)
def create_layer(
    payload: LayerCreate,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Create a layer.

    Args:
        payload: Layer name (required) and optional colour. The colour
            defaults to ``settings.default_layer_color``.
        settings: Application settings (injected via FastAPI Depends).
        repo: Layer repository (injected via FastAPI Depends).

    Returns:
        The created layer with its generated id and timestamps.

    Raises:
        HTTPException: 400 if the name is missing or the colour is invalid.
    """
    name = _validate_name(payload.name)
    color = _validate_color(payload.color or settings.default_layer_color)
    layer = repo.add(
        db_models.Layer(id=str(uuid.uuid4()), name=name, color=color)
    )
    logger.info("Created layer %s (%s)", layer.id, layer.name)
    return layer.to_dict()


@router.put("/{layer_id}")
def update_layer(
    layer_id: str,
    payload: LayerUpdate,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Partially update a layer's name, colour or visibility.

    Fields that are omitted or null are left unchanged.

    Raises:
        HTTPException: 400 for a blank name or invalid colour.
        RecordNotFoundError: If the layer does not exist (mapped to 404).
    """
    changes: dict[str, Any] = {}
    if payload.name is not None:
        changes["name"] = _validate_name(payload.name)
    if payload.color is not None:
        changes["color"] = _validate_color(payload.color)
    if payload.visible is not None:
        changes["visible"] = payload.visible

    return repo.update(layer_id, **changes).to_dict()


@router.delete("/{layer_id}")
def delete_layer(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Delete a layer together with all of its markers.

    Raises:
        RecordNotFoundError: If the layer does not exist (mapped to 404).
    """
    repo.delete(layer_id)
    logger.info("Deleted layer %s", layer_id)
    return responses.Response(status_code=204)
