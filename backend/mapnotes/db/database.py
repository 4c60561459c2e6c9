"""Database helpers and repositories for layers and markers."""

from __future__ import annotations

import contextlib
import dataclasses
import datetime
import logging
from typing import TYPE_CHECKING, Any, Protocol, cast

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2 import sql

from mapnotes.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from mapnotes.core import config

logger = logging.getLogger(__name__)

LAYER_FIELDS = frozenset({"name", "color", "visible"})
MARKER_FIELDS = frozenset(
    {
        "name",
        "description",
        "photo",
        "latitude",
        "longitude",
        "labels",
        "layer_id",
    }
)


class RecordNotFoundError(LookupError):
    """Raised when a layer or marker id does not exist.

    Repositories raise this from update and delete calls on a missing id, and
    from marker writes that reference a missing layer. The API layer turns it
    into a 404 (or a 400 when the missing record is a referenced layer).
    """


class StorageError(RuntimeError):
    """Raised when the database cannot be reached or a statement fails.

    Wraps psycopg2 errors so the API layer can answer with a generic 500
    without depending on the driver.
    """


def _check_fields(changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")


class LayerRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving layers.

    Implementations provide persistence for Layer objects, supporting both
    in-memory (testing) and PostgreSQL (production) backends.
    """

    def all(self) -> Iterable[db_models.Layer]: ...

    def get(self, layer_id: str) -> db_models.Layer | None: ...

    def add(self, layer: db_models.Layer) -> db_models.Layer: ...

    def update(self, layer_id: str, **changes: Any) -> db_models.Layer: ...

    def delete(self, layer_id: str) -> None: ...


class MarkerRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving markers."""

    def all(
        self,
        layer_id: str | None = None,
    ) -> Iterable[db_models.Marker]: ...

    def get(self, marker_id: str) -> db_models.Marker | None: ...

    def add(self, marker: db_models.Marker) -> db_models.Marker: ...

    def update(self, marker_id: str, **changes: Any) -> db_models.Marker: ...

    def delete(self, marker_id: str) -> None: ...

    def all_labels_text(self) -> Iterable[str | None]: ...


@dataclasses.dataclass
class InMemoryStore:
    """Tables shared by the in-memory layer and marker repositories.

    Dictionaries keep insertion order, which doubles as creation order when
    two records carry the same timestamp.
    """

    layers: dict[str, db_models.Layer] = dataclasses.field(
        default_factory=dict
    )
    markers: dict[str, db_models.Marker] = dataclasses.field(
        default_factory=dict
    )


class InMemoryLayerRepository(LayerRepositoryProtocol):
    """Simple in-memory layer store for tests and local development.

    Data is lost when the process exits. Pass the same InMemoryStore to an
    InMemoryMarkerRepository so marker counts and cascading deletes work.
    """

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store or InMemoryStore()

    def all(self) -> Iterable[db_models.Layer]:
        """Get all layers with marker counts, oldest first."""
        counts: dict[str, int] = {}
        for marker in self.store.markers.values():
            counts[marker.layer_id] = counts.get(marker.layer_id, 0) + 1
        layers = sorted(
            self.store.layers.values(),
            key=lambda layer: layer.created_at,
        )
        return [
            dataclasses.replace(layer, marker_count=counts.get(layer.id, 0))
            for layer in layers
        ]

    def get(self, layer_id: str) -> db_models.Layer | None:
        return self.store.layers.get(layer_id)

    def add(self, layer: db_models.Layer) -> db_models.Layer:
        self.store.layers[layer.id] = layer
        return layer

    def update(self, layer_id: str, **changes: Any) -> db_models.Layer:
        _check_fields(changes, LAYER_FIELDS)
        layer = self.store.layers.get(layer_id)
        if layer is None:
            raise RecordNotFoundError(f"Layer {layer_id} not found")
        updated = dataclasses.replace(
            layer,
            **changes,
            updated_at=datetime.datetime.now(tz=datetime.UTC),
        )
        self.store.layers[layer_id] = updated
        return updated

    def delete(self, layer_id: str) -> None:
        """Delete a layer together with every marker it owns."""
        if layer_id not in self.store.layers:
            raise RecordNotFoundError(f"Layer {layer_id} not found")
        self.store.markers = {
            marker_id: marker
            for marker_id, marker in self.store.markers.items()
            if marker.layer_id != layer_id
        }
        del self.store.layers[layer_id]


class InMemoryMarkerRepository(MarkerRepositoryProtocol):
    """Simple in-memory marker store for tests and local development."""

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store or InMemoryStore()

    def _join(self, marker: db_models.Marker) -> db_models.Marker:
        return dataclasses.replace(
            marker,
            layer=self.store.layers.get(marker.layer_id),
        )

    def _require_layer(self, layer_id: str) -> None:
        if layer_id not in self.store.layers:
            raise RecordNotFoundError(f"Layer {layer_id} not found")

    def all(self, layer_id: str | None = None) -> Iterable[db_models.Marker]:
        """Get markers with their layer joined, newest first."""
        markers = [
            marker
            for marker in reversed(self.store.markers.values())
            if layer_id is None or marker.layer_id == layer_id
        ]
        markers.sort(key=lambda marker: marker.created_at, reverse=True)
        return [self._join(marker) for marker in markers]

    def get(self, marker_id: str) -> db_models.Marker | None:
        marker = self.store.markers.get(marker_id)
        return self._join(marker) if marker is not None else None

    def add(self, marker: db_models.Marker) -> db_models.Marker:
        self._require_layer(marker.layer_id)
        self.store.markers[marker.id] = marker
        return self._join(marker)

    def update(self, marker_id: str, **changes: Any) -> db_models.Marker:
        _check_fields(changes, MARKER_FIELDS)
        marker = self.store.markers.get(marker_id)
        if marker is None:
            raise RecordNotFoundError(f"Marker {marker_id} not found")
        if "layer_id" in changes:
            self._require_layer(changes["layer_id"])
        updated = dataclasses.replace(
            marker,
            **changes,
            updated_at=datetime.datetime.now(tz=datetime.UTC),
        )
        self.store.markers[marker_id] = updated
        return self._join(updated)

    def delete(self, marker_id: str) -> None:
        if self.store.markers.pop(marker_id, None) is None:
            raise RecordNotFoundError(f"Marker {marker_id} not found")

    def all_labels_text(self) -> Iterable[str | None]:
        return [marker.labels for marker in self.store.markers.values()]


class _PostgresRepository:
    """Connection and schema handling shared by the PostgreSQL repositories.

    Each ``_cursor()`` block runs in its own transaction: it commits when the
    block exits normally and rolls back when it raises.
    """

    CREATE_TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS layers (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      color TEXT NOT NULL DEFAULT '#FF5733',
      visible BOOLEAN NOT NULL DEFAULT TRUE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE TABLE IF NOT EXISTS markers (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL DEFAULT '',
      description TEXT,
      photo TEXT,
      latitude DOUBLE PRECISION NOT NULL,
      longitude DOUBLE PRECISION NOT NULL,
      labels TEXT NOT NULL DEFAULT '[]',
      layer_id TEXT NOT NULL REFERENCES layers(id) ON DELETE CASCADE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS markers_layer_id_idx ON markers (layer_id);
    """

    _schema_ready: set[str] = set()

    def __init__(self, settings: config.Settings) -> None:
        """Initialize repository with database settings.

        Args:
            settings: Application settings containing database connection URL.
        """
        self.settings = settings
        self._ensure_schema()

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        try:
            conn = psycopg2.connect(self.settings.database_url)
        except psycopg2.Error as exc:
            raise StorageError("Could not connect to the database") from exc
        try:
            with conn, conn.cursor(
                cursor_factory=psycopg2.extras.RealDictCursor
            ) as cur:
                yield cur
        except psycopg2.errors.ForeignKeyViolation:
            raise
        except psycopg2.Error as exc:
            raise StorageError(str(exc).strip()) from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create the layers and markers tables once per database URL."""
        if self.settings.database_url in self._schema_ready:
            return
        with self._cursor() as cur:
            cur.execute(self.CREATE_TABLES_SQL)
        self._schema_ready.add(self.settings.database_url)
        logger.info("Database schema ensured")

    @staticmethod
    def _update_sql(
        table: str,
        changes: dict[str, Any],
    ) -> sql.Composed:
        assignments = [
            sql.SQL("{} = {}").format(
                sql.Identifier(name),
                sql.Placeholder(name),
            )
            for name in changes
        ]
        assignments.append(sql.SQL("updated_at = now()"))
        return sql.SQL("UPDATE {} SET {} WHERE id = {} RETURNING id").format(
            sql.Identifier(table),
            sql.SQL(", ").join(assignments),
            sql.Placeholder("id"),
        )


class PostgresLayerRepository(_PostgresRepository, LayerRepositoryProtocol):
    """PostgreSQL-backed repository for layers."""

    LIST_SQL = """
    SELECT l.*, COUNT(m.id) AS marker_count
    FROM layers l
    LEFT JOIN markers m ON m.layer_id = l.id
    GROUP BY l.id
    ORDER BY l.created_at ASC;
    """

    def all(self) -> Iterable[db_models.Layer]:
        with self._cursor() as cur:
            cur.execute(self.LIST_SQL)
            rows = cur.fetchall()
        return [self._from_row(cast(dict[str, object], row)) for row in rows]

    def get(self, layer_id: str) -> db_models.Layer | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM layers WHERE id = %s", (layer_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._from_row(cast(dict[str, object], row))

    def add(self, layer: db_models.Layer) -> db_models.Layer:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO layers (
                    id, name, color, visible, created_at, updated_at
                ) VALUES (%(id)s, %(name)s, %(color)s, %(visible)s,
                    %(created_at)s, %(updated_at)s)
                RETURNING *;
                """,
                self._to_row(layer),
            )
            row = cur.fetchone()
        return self._from_row(cast(dict[str, object], row))

    def update(self, layer_id: str, **changes: Any) -> db_models.Layer:
        _check_fields(changes, LAYER_FIELDS)
        with self._cursor() as cur:
            cur.execute(
                self._update_sql("layers", changes),
                {**changes, "id": layer_id},
            )
            if cur.fetchone() is None:
                raise RecordNotFoundError(f"Layer {layer_id} not found")
            cur.execute("SELECT * FROM layers WHERE id = %s", (layer_id,))
            row = cur.fetchone()
        return self._from_row(cast(dict[str, object], row))

    def delete(self, layer_id: str) -> None:
        """Delete a layer and its markers in a single transaction."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM markers WHERE layer_id = %s", (layer_id,))
            removed_markers = cur.rowcount
            cur.execute("DELETE FROM layers WHERE id = %s", (layer_id,))
            if cur.rowcount == 0:
                raise RecordNotFoundError(f"Layer {layer_id} not found")
        logger.info(
            "Deleted layer %s with %d markers", layer_id, removed_markers
        )

    @staticmethod
    def _to_row(layer: db_models.Layer) -> dict[str, object]:
        """Convert a Layer to a parameter dictionary for insertion."""
        return {
            "id": layer.id,
            "name": layer.name,
            "color": layer.color,
            "visible": layer.visible,
            "created_at": layer.created_at,
            "updated_at": layer.updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.Layer:
        """Convert a database row dictionary to a Layer.

        Args:
            row: Dictionary from a layers query, optionally carrying a
                ``marker_count`` column.

        Returns:
            Layer with all fields populated.
        """
        marker_count = row.get("marker_count")
        return db_models.Layer(
            id=str(row["id"]),
            name=str(row["name"]),
            color=str(row["color"]),
            visible=bool(row["visible"]),
            created_at=cast(datetime.datetime, row["created_at"]),
            updated_at=cast(datetime.datetime, row["updated_at"]),
            marker_count=(
                int(cast(int, marker_count))
                if marker_count is not None
                else None
            ),
        )


class PostgresMarkerRepository(_PostgresRepository, MarkerRepositoryProtocol):
    """PostgreSQL-backed repository for markers."""

    SELECT_SQL = """
    SELECT m.*,
        l.name AS layer_name,
        l.color AS layer_color,
        l.visible AS layer_visible,
        l.created_at AS layer_created_at,
        l.updated_at AS layer_updated_at
    FROM markers m
    JOIN layers l ON l.id = m.layer_id
    """

    def all(self, layer_id: str | None = None) -> Iterable[db_models.Marker]:
        query = self.SELECT_SQL
        params: tuple[str, ...] = ()
        if layer_id is not None:
            query += " WHERE m.layer_id = %s"
            params = (layer_id,)
        query += " ORDER BY m.created_at DESC;"
        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._from_row(cast(dict[str, object], row)) for row in rows]

    def _select_one(
        self,
        cur: psycopg2.extras.RealDictCursor,
        marker_id: str,
    ) -> db_models.Marker | None:
        cur.execute(self.SELECT_SQL + " WHERE m.id = %s;", (marker_id,))
        row = cur.fetchone()
        if row is None:
            return None
        return self._from_row(cast(dict[str, object], row))

    def get(self, marker_id: str) -> db_models.Marker | None:
        with self._cursor() as cur:
            return self._select_one(cur, marker_id)

    def add(self, marker: db_models.Marker) -> db_models.Marker:
        try:
            with self._cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO markers (
                        id, name, description, photo, latitude, longitude,
                        labels, layer_id, created_at, updated_at
                    ) VALUES (%(id)s, %(name)s, %(description)s, %(photo)s,
                        %(latitude)s, %(longitude)s, %(labels)s,
                        %(layer_id)s, %(created_at)s, %(updated_at)s);
                    """,
                    self._to_row(marker),
                )
                created = self._select_one(cur, marker.id)
        except psycopg2.errors.ForeignKeyViolation as exc:
            raise RecordNotFoundError(
                f"Layer {marker.layer_id} not found"
            ) from exc
        return cast(db_models.Marker, created)

    def update(self, marker_id: str, **changes: Any) -> db_models.Marker:
        _check_fields(changes, MARKER_FIELDS)
        try:
            with self._cursor() as cur:
                cur.execute(
                    self._update_sql("markers", changes),
                    {**changes, "id": marker_id},
                )
                if cur.fetchone() is None:
                    raise RecordNotFoundError(f"Marker {marker_id} not found")
                updated = self._select_one(cur, marker_id)
        except psycopg2.errors.ForeignKeyViolation as exc:
            raise RecordNotFoundError(
                f"Layer {changes.get('layer_id')} not found"
            ) from exc
        return cast(db_models.Marker, updated)

    def delete(self, marker_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM markers WHERE id = %s", (marker_id,))
            if cur.rowcount == 0:
                raise RecordNotFoundError(f"Marker {marker_id} not found")

    def all_labels_text(self) -> Iterable[str | None]:
        with self._cursor() as cur:
            cur.execute("SELECT labels FROM markers;")
            rows = cur.fetchall()
        return [cast(str | None, row["labels"]) for row in rows]

    @staticmethod
    def _to_row(marker: db_models.Marker) -> dict[str, object]:
        """Convert a Marker to a parameter dictionary for insertion."""
        return {
            "id": marker.id,
            "name": marker.name,
            "description": marker.description,
            "photo": marker.photo,
            "latitude": marker.latitude,
            "longitude": marker.longitude,
            "labels": marker.labels,
            "layer_id": marker.layer_id,
            "created_at": marker.created_at,
            "updated_at": marker.updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.Marker:
        """Convert a joined marker row to a Marker with its layer attached.

        Args:
            row: Dictionary from SELECT_SQL. Columns prefixed ``layer_``
                describe the owning layer; when they are absent the marker
                is returned without a layer.

        Returns:
            Marker with all fields populated.
        """
        layer = None
        if row.get("layer_name") is not None:
            layer = db_models.Layer(
                id=str(row["layer_id"]),
                name=str(row["layer_name"]),
                color=str(row["layer_color"]),
                visible=bool(row["layer_visible"]),
                created_at=cast(datetime.datetime, row["layer_created_at"]),
                updated_at=cast(datetime.datetime, row["layer_updated_at"]),
            )
        return db_models.Marker(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            description=cast(str | None, row.get("description")),
            photo=cast(str | None, row.get("photo")),
            latitude=float(cast(float, row["latitude"])),
            longitude=float(cast(float, row["longitude"])),
            labels=str(row.get("labels") or "[]"),
            layer_id=str(row["layer_id"]),
            created_at=cast(datetime.datetime, row["created_at"]),
            updated_at=cast(datetime.datetime, row["updated_at"]),
            layer=layer,
        )


def get_layer_repository(settings: config.Settings) -> LayerRepositoryProtocol:
    """Factory function to create a layer repository.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgresLayerRepository instance for production use.
    """
    return PostgresLayerRepository(settings)


def get_marker_repository(
    settings: config.Settings,
) -> MarkerRepositoryProtocol:
    """Factory function to create a marker repository.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgresMarkerRepository instance for production use.
    """
    return PostgresMarkerRepository(settings)
