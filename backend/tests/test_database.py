"""Tests for the layer and marker repositories.

The in-memory repositories are exercised directly. The PostgreSQL
repositories are covered through their row conversion helpers and the
generated UPDATE statement, which need no running database.
"""

from __future__ import annotations

import dataclasses
import datetime

import pytest

from mapnotes.db import database
from mapnotes.db import models as db_models


def _repos() -> tuple[
    database.InMemoryLayerRepository,
    database.InMemoryMarkerRepository,
]:
    store = database.InMemoryStore()
    return (
        database.InMemoryLayerRepository(store),
        database.InMemoryMarkerRepository(store),
    )


def _marker(marker_id: str, layer_id: str, **kwargs: object) -> db_models.Marker:
    values: dict[str, object] = {
        "id": marker_id,
        "name": marker_id,
        "description": None,
        "photo": None,
        "latitude": 1.0,
        "longitude": 2.0,
        "layer_id": layer_id,
    }
    values.update(kwargs)
    return db_models.Marker(**values)  # type: ignore[arg-type]


def test_layer_list_has_marker_counts() -> None:
    """Test layers are listed oldest first with marker counts."""
    layers, markers = _repos()
    first = datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC)
    second = datetime.datetime(2024, 1, 2, tzinfo=datetime.UTC)
    layers.add(db_models.Layer(id="b", name="B", created_at=second))
    layers.add(db_models.Layer(id="a", name="A", created_at=first))
    markers.add(_marker("m1", "a"))
    markers.add(_marker("m2", "a"))

    result = list(layers.all())
    assert [layer.id for layer in result] == ["a", "b"]
    assert [layer.marker_count for layer in result] == [2, 0]


def test_layer_update() -> None:
    """Test partial layer update."""
    layers, _ = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    updated = layers.update("a", visible=False)
    assert updated.visible is False
    assert updated.name == "A"
    assert layers.get("a") == updated


def test_layer_update_missing() -> None:
    """Test updating a missing layer raises RecordNotFoundError."""
    layers, _ = _repos()
    with pytest.raises(database.RecordNotFoundError):
        layers.update("missing", name="x")


def test_layer_update_unknown_field() -> None:
    """Test unknown fields are rejected."""
    layers, _ = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    with pytest.raises(ValueError):
        layers.update("a", owner="me")


def test_layer_delete_cascades() -> None:
    """Test deleting a layer removes its markers and keeps others."""
    layers, markers = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    layers.add(db_models.Layer(id="b", name="B"))
    markers.add(_marker("m1", "a"))
    markers.add(_marker("m2", "a"))
    markers.add(_marker("m3", "b"))

    layers.delete("a")

    assert layers.get("a") is None
    assert [marker.id for marker in markers.all()] == ["m3"]


def test_layer_delete_missing() -> None:
    """Test deleting a missing layer raises RecordNotFoundError."""
    layers, _ = _repos()
    with pytest.raises(database.RecordNotFoundError):
        layers.delete("missing")


def test_markers_newest_first_with_layer() -> None:
    """Test markers are listed newest first with their layer joined."""
    layers, markers = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    markers.add(_marker("m1", "a"))
    markers.add(_marker("m2", "a"))

    result = list(markers.all())
    assert [marker.id for marker in result] == ["m2", "m1"]
    assert result[0].layer is not None
    assert result[0].layer.name == "A"


def test_markers_filter_by_layer() -> None:
    """Test filtering markers by layer id."""
    layers, markers = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    layers.add(db_models.Layer(id="b", name="B"))
    markers.add(_marker("m1", "a"))
    markers.add(_marker("m2", "b"))
    assert [marker.id for marker in markers.all("b")] == ["m2"]


def test_marker_add_unknown_layer() -> None:
    """Test adding a marker to a missing layer fails."""
    _, markers = _repos()
    with pytest.raises(database.RecordNotFoundError):
        markers.add(_marker("m1", "missing"))


def test_marker_update_and_delete() -> None:
    """Test updating and deleting a marker."""
    layers, markers = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    markers.add(_marker("m1", "a"))

    updated = markers.update("m1", name="Renamed", labels='["x"]')
    assert updated.name == "Renamed"
    assert updated.label_list() == ["x"]

    markers.delete("m1")
    assert markers.get("m1") is None
    with pytest.raises(database.RecordNotFoundError):
        markers.delete("m1")


def test_marker_update_to_missing_layer() -> None:
    """Test moving a marker to a missing layer fails."""
    layers, markers = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    markers.add(_marker("m1", "a"))
    with pytest.raises(database.RecordNotFoundError):
        markers.update("m1", layer_id="missing")
    assert markers.get("m1").layer_id == "a"  # type: ignore[union-attr]


def test_all_labels_text() -> None:
    """Test raw label text is returned for every marker."""
    layers, markers = _repos()
    layers.add(db_models.Layer(id="a", name="A"))
    markers.add(_marker("m1", "a", labels='["x"]'))
    markers.add(_marker("m2", "a", labels="bad"))
    assert sorted(markers.all_labels_text()) == ['["x"]', "bad"]


def test_postgres_layer_row_roundtrip() -> None:
    """Test layer row conversion keeps every column."""
    layer = db_models.Layer(id="a", name="A", color="#000", visible=False)
    row = database.PostgresLayerRepository._to_row(layer)
    assert database.PostgresLayerRepository._from_row(row) == layer

    row["marker_count"] = 5
    counted = database.PostgresLayerRepository._from_row(row)
    assert counted.marker_count == 5


def test_postgres_marker_from_joined_row() -> None:
    """Test a joined marker row builds the marker and its layer."""
    now = datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC)
    marker = _marker("m1", "a", labels='["x"]', created_at=now, updated_at=now)
    row = database.PostgresMarkerRepository._to_row(marker)
    row.update(
        {
            "layer_name": "A",
            "layer_color": "#111111",
            "layer_visible": True,
            "layer_created_at": now,
            "layer_updated_at": now,
        }
    )

    result = database.PostgresMarkerRepository._from_row(row)
    assert dataclasses.replace(result, layer=None) == marker
    assert result.layer is not None
    assert result.layer.id == "a"
    assert result.layer.color == "#111111"


def test_postgres_marker_from_row_without_layer() -> None:
    """Test missing layer columns leave the layer unset."""
    marker = _marker("m1", "a")
    row = database.PostgresMarkerRepository._to_row(marker)
    row["labels"] = None
    result = database.PostgresMarkerRepository._from_row(row)
    assert result.layer is None
    assert result.labels == "[]"


def test_update_sql_shape() -> None:
    """Test the UPDATE statement covers the changed columns."""
    statement = database._PostgresRepository._update_sql(
        "markers", {"name": "x", "latitude": 1.0}
    )
    assert isinstance(statement, database.sql.Composed)
    parts = list(statement.seq)
    identifiers = [
        part.string for part in _flatten(parts) if isinstance(
            part, database.sql.Identifier
        )
    ]
    assert identifiers == ["markers", "name", "latitude"]


def _flatten(parts: list[object]) -> list[object]:
    flat: list[object] = []
    for part in parts:
        if isinstance(part, database.sql.Composed):
            flat.extend(_flatten(list(part.seq)))
        else:
            flat.append(part)
    return flat


def test_repository_factories_return_postgres(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test the factories build PostgreSQL repositories."""
    monkeypatch.setattr(
        database._PostgresRepository, "_ensure_schema", lambda self: None
    )
    settings = object()
    layer_repo = database.get_layer_repository(settings)  # type: ignore[arg-type]
    marker_repo = database.get_marker_repository(settings)  # type: ignore[arg-type]
    assert isinstance(layer_repo, database.PostgresLayerRepository)
    assert isinstance(marker_repo, database.PostgresMarkerRepository)


def test_postgres_connect_failure_is_storage_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a connection failure surfaces as StorageError."""

    def fail_connect(_url: str) -> None:
        raise database.psycopg2.OperationalError("refused")

    monkeypatch.setattr(database.psycopg2, "connect", fail_connect)
    monkeypatch.setattr(
        database._PostgresRepository, "_schema_ready", set()
    )

    class FakeSettings:
        database_url = "postgresql://nowhere/none"

    with pytest.raises(database.StorageError):
        database.PostgresLayerRepository(FakeSettings())  # type: ignore[arg-type]
