"""Map Notes backend package.

This package contains the backend for a map annotation application. Users
group point markers into named, coloured layers, attach photos and free-text
labels to them, and overlay georeferenced images on street and satellite
base maps.

- REST endpoints for layer and marker CRUD under ``/api``
- Image uploads with HEIC/HEIF to JPEG conversion, served from ``/uploads``
- Bulk import of geotagged photos as markers using their EXIF GPS position
- A client library (``mapnotes.client``) holding the non-visual half of the
  browser client: API calls, overlay geometry, marker features, gesture
  detection and geolocation state

See README and module sub-docstrings for details on architecture and usage.
"""
