"""Image upload post-processing: type checks, naming and HEIC conversion.

Uploaded photos are stored under generated names in the upload directory
and served from ``/uploads/``. Browsers cannot display HEIC/HEIF, so those
uploads are transcoded to JPEG with Pillow (through the pillow-heif opener)
and the original is removed. EXIF metadata, including the GPS block, is
carried over so geotagged imports still work after conversion.

Example:
    Finalize a stored upload:
        >>> from mapnotes.services import images
        >>> path = images.finalize_upload(saved_path, settings)
        >>> images.public_url(path)
        '/uploads/3f2a...c1.jpg'
"""

from __future__ import annotations

import logging
import pathlib
import uuid
from typing import TYPE_CHECKING

import pillow_heif
from PIL import Image

if TYPE_CHECKING:
    from mapnotes.core import config

logger = logging.getLogger(__name__)

pillow_heif.register_heif_opener()

ALLOWED_EXTENSIONS = frozenset(
    {".jpeg", ".jpg", ".png", ".gif", ".webp", ".heic", ".heif"}
)
ALLOWED_MIME_TOKENS = ("jpeg", "jpg", "png", "gif", "webp", "heic", "heif")
HEIF_EXTENSIONS = frozenset({".heic", ".heif"})
UPLOADS_URL_PREFIX = "/uploads"


class ImageConversionError(RuntimeError):
    """Raised when a HEIC/HEIF upload cannot be transcoded to JPEG.

    Any partial JPEG output has already been removed when this is raised.
    """


def is_allowed_image(filename: str | None, content_type: str | None) -> bool:
    """Check that both the extension and the MIME type name an image format.

    Args:
        filename: Client-supplied file name.
        content_type: Client-supplied MIME type.

    Returns:
        True if the upload looks like a supported raster image.
    """
    if not filename or not content_type:
        return False
    extension = pathlib.Path(filename).suffix.lower()
    mime = content_type.lower()
    return extension in ALLOWED_EXTENSIONS and any(
        token in mime for token in ALLOWED_MIME_TOKENS
    )


def generate_filename(original: str | None) -> str:
    """Build a unique storage name that keeps the original extension."""
    extension = pathlib.Path(original or "").suffix.lower()
    return f"{uuid.uuid4().hex}{extension}"


def public_url(path: pathlib.Path) -> str:
    """Return the URL an uploaded file is served from."""
    return f"{UPLOADS_URL_PREFIX}/{path.name}"


def convert_heic_to_jpeg(source_path: pathlib.Path, quality: int) -> pathlib.Path:
    """Transcode a HEIC/HEIF image to JPEG next to the source file.

    The source is deleted once the JPEG has been written. On failure the
    partial JPEG is removed and the source is left for the caller.

    Args:
        source_path: Path of the stored HEIC/HEIF upload.
        quality: JPEG quality (1-100).

    Returns:
        Path of the written ``.jpg`` file.

    Raises:
        ImageConversionError: If the image cannot be decoded or written.
    """
    target_path = source_path.with_suffix(".jpg")
    try:
        with Image.open(source_path) as image:
            exif = image.info.get("exif")
            rgb = image.convert("RGB")
            if exif:
                rgb.save(target_path, "JPEG", quality=quality, exif=exif)
            else:
                rgb.save(target_path, "JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        target_path.unlink(missing_ok=True)
        raise ImageConversionError(
            f"Failed to convert {source_path.name} to JPEG: {exc}"
        ) from exc

    source_path.unlink(missing_ok=True)
    logger.info("Converted %s to %s", source_path.name, target_path.name)
    return target_path


def finalize_upload(
    path: pathlib.Path,
    settings: config.Settings,
) -> pathlib.Path:
    """Post-process a stored upload and return the path to serve.

    HEIC/HEIF files are converted to JPEG; other formats pass through
    unchanged. When conversion fails the stored upload is deleted too, so no
    unreferenced file is left behind.

    Raises:
        ImageConversionError: If HEIC/HEIF conversion fails.
    """
    if path.suffix.lower() not in HEIF_EXTENSIONS:
        return path

    try:
        return convert_heic_to_jpeg(path, settings.heic_jpeg_quality)
    except ImageConversionError:
        path.unlink(missing_ok=True)
        raise
