"""API router subpackage for the overlap service.

This package organizes the REST endpoints consumed by the map client.
Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - upload: Zipped shapefile upload and load into PostGIS.
    - overlap: Pairwise intersection of two stored layers as GeoJSON.
    - layers: Listing and describing the loaded spatial tables.
"""
