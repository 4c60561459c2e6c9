"""Image upload API endpoints.

This module accepts photo uploads for markers. Files are stored under
generated unique names in the configured upload directory and served back
from ``/uploads/``. HEIC/HEIF photos are transcoded to JPEG before their URL
is returned.

Three endpoints are provided:

- ``POST /api/upload/image``: one file in the ``image`` field.
- ``POST /api/upload/images``: up to ``max_batch_images`` files in the
  ``images`` field. Files that fail conversion are left out of the result.
- ``POST /api/upload/geotagged``: like ``images``, and additionally creates
  a marker in ``layerId`` for every photo that carries an EXIF GPS position.

Example:
    Upload a single photo:
        >>> response = client.post(
        ...     "/api/upload/image",
        ...     files={"image": ("trail.jpg", data, "image/jpeg")},
        ... )
        >>> response.json()
        {'url': '/uploads/9b1c...e4.jpg'}
"""

from __future__ import annotations

import logging
import pathlib
import shutil
import tempfile
import uuid
from typing import Any

import fastapi

from mapnotes.core import config
from mapnotes.db import database
from mapnotes.db import models as db_models
from mapnotes.services import exif
from mapnotes.services import images as image_service

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/upload", tags=["upload"])


def _get_layer_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.LayerRepositoryProtocol:
    """Resolve the layer repository dependency."""
    return database.get_layer_repository(settings)


def _get_marker_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.MarkerRepositoryProtocol:
    """Resolve the marker repository dependency."""
    return database.get_marker_repository(settings)


def _validate_image(file: fastapi.UploadFile) -> None:
    """Reject uploads whose extension or MIME type is not an image format.

    Raises:
        HTTPException: 400 if the file is not an allowed image.
    """
    if not image_service.is_allowed_image(file.filename, file.content_type):
        raise fastapi.HTTPException(
            status_code=400,
            detail="Only image files are allowed",
        )


def _save_upload(
    file: fastapi.UploadFile,
    storage_dir: pathlib.Path,
    max_size: int,
) -> pathlib.Path:
    """Persist an uploaded file to disk under a generated name.

    The data is streamed into a temporary file in ``storage_dir`` and moved
    into place only once it is complete, so a rejected upload leaves nothing
    behind.

    Args:
        file: FastAPI UploadFile object containing the file data.
        storage_dir: Directory where the file should be saved.
        max_size: Maximum allowed file size in bytes.

    Returns:
        Path to the saved file.

    Raises:
        HTTPException: If the file exceeds the maximum size limit.
        OSError: If writing or moving the data fails. The partial file is
            removed first.
    """
    storage_dir.mkdir(parents=True, exist_ok=True)
    target_path = storage_dir / image_service.generate_filename(file.filename)
    with tempfile.NamedTemporaryFile(
        delete=False,
        dir=storage_dir,
        suffix=".part",
    ) as tmp:
        tmp_path = pathlib.Path(tmp.name)
        try:
            size = 0
            for chunk in iter(lambda: file.file.read(1024 * 1024), b""):
                size += len(chunk)
                if size > max_size:
                    break
                tmp.write(chunk)
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise

    if size > max_size:
        tmp_path.unlink(missing_ok=True)
        raise fastapi.HTTPException(
            status_code=413,
            detail="Upload too large",
        )

    try:
        shutil.move(tmp_path, target_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        target_path.unlink(missing_ok=True)
        raise

    return target_path


def _store_many(
    files: list[fastapi.UploadFile],
    settings: config.Settings,
) -> list[tuple[fastapi.UploadFile, pathlib.Path | None]]:
    """Save and finalize several uploads.

    Any failure removes the files already stored by this call before the
    error propagates.

    Returns:
        One ``(file, path)`` pair per upload, with ``path`` None for files
        whose conversion failed.

    Raises:
        HTTPException: If any file is too large.
        OSError: If a file cannot be written or converted.
    """
    stored: list[tuple[fastapi.UploadFile, pathlib.Path | None]] = []
    saved: pathlib.Path | None = None
    try:
        for file in files:
            saved = _save_upload(
                file,
                settings.upload_dir,
                settings.max_image_size_bytes,
            )
            try:
                final = image_service.finalize_upload(saved, settings)
            except image_service.ImageConversionError:
                logger.warning("Skipping %s: conversion failed", file.filename)
                stored.append((file, None))
            else:
                stored.append((file, final))
            saved = None
    except BaseException:
        if saved is not None:
            saved.unlink(missing_ok=True)
        for _, path in stored:
            if path is not None:
                path.unlink(missing_ok=True)
        raise

    return stored


def _require_files(
    files: list[fastapi.UploadFile] | None,
    settings: config.Settings,
) -> list[fastapi.UploadFile]:
    """Check a multi-file request is non-empty, within limits and all images.

    Raises:
        HTTPException: 400 for no files, too many files or a non-image.
    """
    present = [file for file in files or [] if file.filename]
    if not present:
        raise fastapi.HTTPException(
            status_code=400,
            detail="No files uploaded",
        )
    if len(present) > settings.max_batch_images:
        raise fastapi.HTTPException(
            status_code=400,
            detail=f"At most {settings.max_batch_images} files per upload",
        )
    for file in present:
        _validate_image(file)

    return present


@router.post("/image")
def upload_image(
    image: fastapi.UploadFile | None = fastapi.File(default=None),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, str]:
    """Upload a single image.

    Args:
        image: Uploaded file from the ``image`` multipart field.
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        Dictionary with the ``url`` the image is served from.

    Raises:
        HTTPException: 400 if no file was sent or it is not an image, 413 if
            it is too large, 500 if HEIC conversion fails.
    """
    if image is None or not image.filename:
        raise fastapi.HTTPException(
            status_code=400,
            detail="No file uploaded",
        )
    _validate_image(image)

    saved = _save_upload(
        image,
        settings.upload_dir,
        settings.max_image_size_bytes,
    )
    try:
        final_path = image_service.finalize_upload(saved, settings)
    except image_service.ImageConversionError as exc:
        logger.error("Error converting uploaded image: %s", exc)
        raise fastapi.HTTPException(
            status_code=500,
            detail="Failed to convert image",
        ) from exc

    logger.info("Stored upload %s as %s", image.filename, final_path.name)
    return {"url": image_service.public_url(final_path)}


@router.post("/images")
def upload_images(
    images: list[fastapi.UploadFile] | None = fastapi.File(default=None),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, list[str]]:
    """Upload several images at once.

    Files whose HEIC conversion fails are omitted from the result instead of
    failing the whole request.

    Returns:
        Dictionary with the ``urls`` of the stored images.

    Raises:
        HTTPException: 400 if no files were sent, too many were sent or one
            is not an image; 413 if one is too large.
    """
    files = _require_files(images, settings)
    stored = _store_many(files, settings)
    return {
        "urls": [image_service.public_url(path) for _, path in stored if path]
    }


@router.post("/geotagged", status_code=201)
def upload_geotagged(
    images: list[fastapi.UploadFile] | None = fastapi.File(default=None),  # noqa: B008
    layer_id: str | None = fastapi.Form(default=None, alias="layerId"),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    layer_repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        _get_layer_repo
    ),
    marker_repo: database.MarkerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        _get_marker_repo
    ),
) -> dict[str, Any]:
    """Upload geotagged photos and place a marker for each one.

    Every photo is stored (HEIC/HEIF converted to JPEG) and its EXIF GPS
    position read. Photos with a position become unnamed markers in the
    given layer with the photo attached; photos without one are deleted and
    reported as skipped.

    Returns:
        Dictionary with the created ``markers`` and the ``skipped`` file
        names.

    Raises:
        HTTPException: 400 if the layer is missing or unknown, no files were
            sent, or none of the photos has GPS data.
    """
    if not layer_id or layer_repo.get(layer_id) is None:
        raise fastapi.HTTPException(
            status_code=400,
            detail="A valid layerId is required",
        )
    files = _require_files(images, settings)

    created: list[dict[str, Any]] = []
    skipped: list[str] = []
    for file, path in _store_many(files, settings):
        point = exif.read_gps(path) if path is not None else None
        if path is None or point is None:
            if path is not None:
                path.unlink(missing_ok=True)
            skipped.append(file.filename or "")
            continue
        marker = marker_repo.add(
            db_models.Marker(
                id=str(uuid.uuid4()),
                name="",
                description=None,
                photo=image_service.public_url(path),
                latitude=point.latitude,
                longitude=point.longitude,
                layer_id=layer_id,
            )
        )
        created.append(marker.to_dict())

    if not created:
        raise fastapi.HTTPException(
            status_code=400,
            detail="None of the selected images have GPS data",
        )

    logger.info(
        "Imported %d geotagged photos into layer %s (%d skipped)",
        len(created),
        layer_id,
        len(skipped),
    )
    return {"markers": created, "skipped": skipped}
