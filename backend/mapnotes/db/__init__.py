"""Database interface and repository abstractions.

This module consolidates database interfaces/protocols and repository patterns
for layers and markers. It provides a stable import location for repository
dependency injection throughout the application, supporting production
(PostgreSQL) and testing (in-memory) backends.

Example:
    Use in a service or FastAPI dependency:
        >>> from mapnotes.db import database
        >>> layers = database.get_layer_repository(settings)
        >>> markers = database.get_marker_repository(settings)
"""
