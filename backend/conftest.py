"""Pytest configuration exposing the mapnotes package and shared fixtures."""

from __future__ import annotations

import pathlib
import sys
from typing import TYPE_CHECKING

import pytest

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from fastapi import testclient  # noqa: E402

from mapnotes import main  # noqa: E402
from mapnotes.api import layers as api_layers  # noqa: E402
from mapnotes.api import markers as api_markers  # noqa: E402
from mapnotes.api import upload as api_upload  # noqa: E402
from mapnotes.core import config  # noqa: E402
from mapnotes.db import database  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> config.Settings:
    """Settings writing uploads to a temporary directory."""
    return config.Settings(
        upload_dir=tmp_path / "uploads",
        max_image_size_bytes=1024 * 1024,
        max_batch_images=5,
    )


@pytest.fixture
def store() -> database.InMemoryStore:
    return database.InMemoryStore()


@pytest.fixture
def client(
    settings: config.Settings,
    store: database.InMemoryStore,
) -> Iterator[testclient.TestClient]:
    """TestClient wired to in-memory repositories sharing ``store``."""
    layer_repo = database.InMemoryLayerRepository(store)
    marker_repo = database.InMemoryMarkerRepository(store)

    app = main.create_app(settings)
    app.dependency_overrides[config.get_settings] = lambda: settings
    app.dependency_overrides[api_layers._get_repo] = lambda: layer_repo
    app.dependency_overrides[api_markers._get_repo] = lambda: marker_repo
    app.dependency_overrides[api_upload._get_layer_repo] = lambda: layer_repo
    app.dependency_overrides[api_upload._get_marker_repo] = lambda: marker_repo
    try:
        yield testclient.TestClient(app)
    finally:
        app.dependency_overrides.clear()
