"""Data models for spatial layers, uploads and overlap queries.

This module defines the plain data structures passed between the API layer,
the services and the spatial store. Spatial layers themselves live in
PostGIS; ``SpatialLayer`` is only a description read back from the store,
never a cache of its rows.

Every loaded table uses the same column names, exposed here as
``GEOMETRY_COLUMN`` and ``FID_COLUMN`` so the loader and the query builder
cannot drift apart. ``GEOMETRY_FILE_SUFFIX`` marks the file an upload is
loaded from.

Example:
    Describe an overlap request bounded to Java:
        >>> from geooverlap.db.models import OverlapRequest
        >>> request = OverlapRequest(
        ...     layer1="parcels",
        ...     layer2="forest_areas",
        ...     bbox=(105.0, -9.0, 115.0, -5.0),
        ... )
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from typing_extensions import TypedDict

if TYPE_CHECKING:
    import pathlib

BBox = tuple[float, float, float, float]

GEOMETRY_COLUMN = "geom"
FID_COLUMN = "id"
GEOMETRY_FILE_SUFFIX = ".shp"


@dataclasses.dataclass
class SpatialLayer:
    """A table in the spatial store as seen through ``GET /layers/{name}``.

    Attributes:
        name: Table identifier (``[a-z0-9_]+``).
        feature_count: Number of rows in the table.
        srid: SRID registered for the geometry column.
        geom_type: Registered geometry type, e.g. ``"MULTIPOLYGON"``.
        bbox: Extent as (minx, miny, maxx, maxy), None for an empty table.
    """

    name: str
    feature_count: int
    srid: int | None
    geom_type: str | None
    bbox: BBox | None


@dataclasses.dataclass
class UploadJob:
    """Paths owned by one upload request.

    ``geometry_path`` and ``table_name`` are filled in as the pipeline
    advances. All paths are removed when the request ends.
    """

    archive_path: pathlib.Path
    workdir: pathlib.Path
    geometry_path: pathlib.Path | None = None
    table_name: str | None = None


@dataclasses.dataclass(frozen=True)
class OverlapRequest:
    layer1: str
    layer2: str
    bbox: BBox | None = None


@dataclasses.dataclass(frozen=True)
class OverlapRow:
    """One matched pair as returned by the spatial store."""

    id1: Any
    id2: Any
    area_m2: float
    geometry: dict[str, Any] | None


class FeatureProperties(TypedDict):
    id1: Any
    id2: Any
    luas_overlap_m2: float


class Feature(TypedDict):
    type: str
    geometry: dict[str, Any] | None
    properties: FeatureProperties


class FeatureCollection(TypedDict):
    type: str
    features: list[Feature]
