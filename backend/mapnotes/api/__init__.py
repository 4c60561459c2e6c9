"""API router subpackage for the map notes backend.

This package organizes REST endpoints for core map annotation functionality.
Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - layers: Endpoints for creating, listing, editing and deleting layers.
    - markers: Endpoints for marker CRUD and the label vocabulary.
    - upload: Endpoints for image upload, HEIC conversion and bulk import of
      geotagged photos.
    - geocode: Address search proxied to a Nominatim-compatible service.

Routers are grouped by major feature domain to promote clarity and
independent testing.
"""
