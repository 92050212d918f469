"""Shapefile ingestion and layer overlap service.

This package contains a FastAPI backend that loads zipped shapefiles into
PostGIS and computes pairwise intersections between stored layers.

- Uploaded archives are extracted into per-request workspaces with Zip Slip
  and size checks, and removed once the request ends
- Shapefiles are loaded with ogr2ogr as multi-part geometries stamped with a
  fixed SRID (EPSG:4326 by default), replacing any table of the same name
- Table names are sanitized and validated before they reach ogr2ogr or SQL
- Overlaps are computed by PostGIS; areas are geodesic square metres and
  results are returned as GeoJSON FeatureCollections
"""
