"""Tests for the FastAPI main application factory and health checks.

This module validates that:
    - The FastAPI app is correctly instantiated via main.create_app,
    - OpenAPI metadata (title, version) matches the project contract,
    - The API routers and the uploads mount are registered,
    - API handlers are synchronous and run in the threadpool,
    - Parse errors, missing records and storage failures map to 400,
      404 and 500.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, cast

from fastapi import routing, testclient

from mapnotes import main
from mapnotes.api import layers as api_layers
from mapnotes.core import config
from mapnotes.db import database

if TYPE_CHECKING:
    import pathlib


def test_create_app(settings: config.Settings) -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app(settings)
    assert app.title == "Map Notes"
    assert app.version == "0.1.0"
    assert settings.upload_dir.is_dir()


def test_health_endpoint(client: testclient.TestClient) -> None:
    """Test the health check endpoint returns ok status."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_app_includes_routers(settings: config.Settings) -> None:
    """Test that all API routers and the uploads mount are registered."""
    app = main.create_app(settings)
    routes: list[str] = [
        cast(str, getattr(route, "path", ""))
        for route in app.routes  # type: ignore[attr-defined]
        if hasattr(route, "path")
    ]
    for path in (
        "/health",
        "/api/layers",
        "/api/layers/{layer_id}",
        "/api/markers",
        "/api/markers/labels",
        "/api/markers/{marker_id}",
        "/api/upload/image",
        "/api/upload/images",
        "/api/upload/geotagged",
        "/api/geocode",
        "/uploads",
    ):
        assert path in routes


def test_api_handlers_run_in_threadpool(settings: config.Settings) -> None:
    """Test API handlers are plain functions so blocking I/O runs off the loop."""
    app = main.create_app(settings)
    handlers = [
        route.endpoint
        for route in app.routes
        if isinstance(route, routing.APIRoute) and route.path.startswith("/api")
    ]
    assert handlers
    for handler in handlers:
        assert not inspect.iscoroutinefunction(handler), handler.__name__


def test_uploads_are_served(
    client: testclient.TestClient,
    settings: config.Settings,
) -> None:
    """Test files in the upload directory are served under /uploads."""
    path: pathlib.Path = settings.upload_dir / "hello.txt"
    path.write_text("hi")
    response = client.get("/uploads/hello.txt")
    assert response.status_code == 200
    assert response.text == "hi"


def test_storage_error_maps_to_500(settings: config.Settings) -> None:
    """Test storage failures answer 500 with a static message."""

    class BrokenRepo(database.InMemoryLayerRepository):
        def all(self) -> list:  # type: ignore[override]
            raise database.StorageError("connection refused")

    app = main.create_app(settings)
    app.dependency_overrides[api_layers._get_repo] = lambda: BrokenRepo()
    client = testclient.TestClient(app)
    try:
        response = client.get("/api/layers")
        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
    finally:
        app.dependency_overrides.clear()


def test_unexpected_error_maps_to_500(settings: config.Settings) -> None:
    """Test unhandled exceptions answer 500 with a static message."""

    class BrokenRepo(database.InMemoryLayerRepository):
        def all(self) -> list:  # type: ignore[override]
            raise KeyError("boom")

    app = main.create_app(settings)
    app.dependency_overrides[api_layers._get_repo] = lambda: BrokenRepo()
    client = testclient.TestClient(app, raise_server_exceptions=False)
    try:
        response = client.get("/api/layers")
        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
    finally:
        app.dependency_overrides.clear()
