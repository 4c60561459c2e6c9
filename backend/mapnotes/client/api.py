"""HTTP client for the map notes REST API.

MapNotesClient wraps an ``httpx.Client`` and mirrors the endpoints under
``/api``. Responses are returned as decoded JSON. Any non-success status
raises ApiError with a short, user-facing message; the client never retries.

Example:
    Talk to a running server:
        >>> import httpx
        >>> from mapnotes.client.api import MapNotesClient
        >>> client = MapNotesClient(httpx.Client(base_url="http://localhost:8000"))
        >>> layer = client.ensure_default_layer()
        >>> client.create_marker(
        ...     name="Trailhead",
        ...     latitude=45.81,
        ...     longitude=15.98,
        ...     layer_id=layer["id"],
        ... )

    Any httpx client works, including FastAPI's TestClient:
        >>> from fastapi import testclient
        >>> client = MapNotesClient(testclient.TestClient(app))
"""

from __future__ import annotations

import logging
import mimetypes
import pathlib
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_LAYER_NAME = "Default Layer"


class ApiError(RuntimeError):
    """Raised when the API answers with a non-success status.

    Attributes:
        status_code: HTTP status of the failed response, or None when the
            request never reached the server.
        detail: Error detail reported by the server, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class MapNotesClient:
    """Client for the layers, markers and upload endpoints.

    Args:
        http: httpx client whose base URL points at the server root.
        api_prefix: Path prefix of the REST API.
    """

    def __init__(self, http: httpx.Client, api_prefix: str = "/api") -> None:
        self.http = http
        self.api_prefix = api_prefix.rstrip("/")

    def _request(
        self,
        method: str,
        path: str,
        failure: str,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self.http.request(
                method, f"{self.api_prefix}{path}", **kwargs
            )
        except httpx.HTTPError as exc:
            logger.error("%s: %s", failure, exc)
            raise ApiError(failure) from exc

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail") if isinstance(body, dict) else None
            raise ApiError(failure, response.status_code, detail)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def list_layers(self) -> list[dict[str, Any]]:
        return self._request("GET", "/layers", "Failed to fetch layers")

    def create_layer(
        self,
        name: str,
        color: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"name": name}
        if color is not None:
            body["color"] = color
        return self._request(
            "POST", "/layers", "Failed to create layer", json=body
        )

    def update_layer(self, layer_id: str, **changes: Any) -> dict[str, Any]:
        """Update a layer's ``name``, ``color`` or ``visible`` flag."""
        return self._request(
            "PUT",
            f"/layers/{layer_id}",
            "Failed to update layer",
            json=changes,
        )

    def delete_layer(self, layer_id: str) -> None:
        """Delete a layer. The server removes its markers with it."""
        self._request("DELETE", f"/layers/{layer_id}", "Failed to delete layer")

    def ensure_default_layer(self) -> dict[str, Any]:
        """Return the first layer, creating "Default Layer" when none exist.

        Markers always need a layer to go into, so the client calls this
        before offering marker placement.
        """
        layers = self.list_layers()
        if layers:
            return layers[0]
        logger.info("No layers found, creating %r", DEFAULT_LAYER_NAME)
        return self.create_layer(DEFAULT_LAYER_NAME)

    def list_markers(self, layer_id: str | None = None) -> list[dict[str, Any]]:
        params = {"layerId": layer_id} if layer_id else None
        return self._request(
            "GET", "/markers", "Failed to fetch markers", params=params
        )

    def list_labels(self) -> list[str]:
        return self._request("GET", "/markers/labels", "Failed to fetch labels")

    def create_marker(
        self,
        *,
        latitude: float,
        longitude: float,
        layer_id: str,
        name: str = "",
        description: str | None = None,
        photo: str | None = None,
        labels: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": name,
            "latitude": latitude,
            "longitude": longitude,
            "layerId": layer_id,
        }
        if description is not None:
            body["description"] = description
        if photo is not None:
            body["photo"] = photo
        if labels is not None:
            body["labels"] = labels
        return self._request(
            "POST", "/markers", "Failed to create marker", json=body
        )

    def update_marker(self, marker_id: str, **changes: Any) -> dict[str, Any]:
        """Partially update a marker.

        Keyword names follow the API (``layerId`` may also be passed as
        ``layer_id``). Leave ``labels`` out to keep the stored labels.
        """
        if "layer_id" in changes:
            changes["layerId"] = changes.pop("layer_id")
        return self._request(
            "PUT",
            f"/markers/{marker_id}",
            "Failed to update marker",
            json=changes,
        )

    def delete_marker(self, marker_id: str) -> None:
        self._request(
            "DELETE", f"/markers/{marker_id}", "Failed to delete marker"
        )

    @staticmethod
    def _file_part(path: pathlib.Path) -> tuple[str, bytes, str]:
        content_type = (
            mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        )
        if path.suffix.lower() in (".heic", ".heif"):
            content_type = f"image/{path.suffix.lower().lstrip('.')}"
        return (path.name, path.read_bytes(), content_type)

    def upload_image(self, path: pathlib.Path) -> str:
        """Upload one image and return the URL it is served from."""
        result = self._request(
            "POST",
            "/upload/image",
            "Failed to upload image",
            files={"image": self._file_part(path)},
        )
        return str(result["url"])

    def upload_images(self, paths: list[pathlib.Path]) -> list[str]:
        """Upload several images; images that fail conversion are omitted."""
        result = self._request(
            "POST",
            "/upload/images",
            "Failed to upload images",
            files=[("images", self._file_part(path)) for path in paths],
        )
        return [str(url) for url in result["urls"]]
