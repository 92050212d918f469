"""Pairwise overlap between two stored layers.

This module builds a PostGIS spatial join between two tables, executes it
through the spatial store and shapes the rows into a GeoJSON
FeatureCollection. Intersection and area are computed by PostGIS: area is
taken on the geography type, so ``luas_overlap_m2`` is in square metres on
the ellipsoid rather than in squared degrees.

Table names are the only parts of the statement that cannot be bound as
parameters. They are validated with ``identifiers.validate`` and composed
with ``psycopg2.sql.Identifier``; bbox coordinates and the SRID are bound
as named parameters.

Example:
    Overlap two layers inside a bounding box:
        >>> from geooverlap.db import database, models
        >>> from geooverlap.services import overlap

        >>> request = models.OverlapRequest(
        ...     layer1="parcels",
        ...     layer2="forest_areas",
        ...     bbox=overlap.parse_bbox("105,-9,115,-5"),
        ... )
        >>> collection = overlap.find_overlaps(
        ...     database.get_spatial_store(), request, srid=4326
        ... )
        >>> collection["features"][0]["properties"]
        {'id1': 1, 'id2': 7, 'luas_overlap_m2': 5321.8}
"""

from __future__ import annotations

import json
import logging
import math
from typing import TYPE_CHECKING, Any, cast

from psycopg2 import sql

from geooverlap.db import models as db_models
from geooverlap.utils import identifiers

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geooverlap.db import database

logger = logging.getLogger(__name__)

_OVERLAP_SQL = """
SELECT
  a.{fid} AS id1,
  b.{fid} AS id2,
  ST_Area(i.geom::geography) AS area_m2,
  CASE WHEN ST_IsEmpty(i.geom) THEN NULL ELSE ST_AsGeoJSON(i.geom) END
    AS geom_json
FROM {layer1} AS a
JOIN {layer2} AS b
  ON ST_Intersects(a.{geom}, b.{geom})
CROSS JOIN LATERAL (
  SELECT ST_Intersection(a.{geom}, b.{geom}) AS geom
) AS i
{bbox_filter}
ORDER BY id1, id2
"""

_BBOX_FILTER_SQL = """
WHERE ST_Intersects(
  a.{geom},
  ST_MakeEnvelope(%(minx)s, %(miny)s, %(maxx)s, %(maxy)s, %(srid)s)
)
"""


def parse_bbox(raw: str | None) -> db_models.BBox | None:
    """Parse ``"minx,miny,maxx,maxy"`` into a bbox, or None.

    Permissive on purpose: anything that is not four finite numbers with
    ``minx <= maxx`` and ``miny <= maxy`` yields None, and the query runs
    unfiltered.
    """
    if not raw:
        return None
    parts = raw.split(",")
    if len(parts) != 4:
        return None
    try:
        minx, miny, maxx, maxy = (float(part) for part in parts)
    except ValueError:
        return None
    if not all(math.isfinite(v) for v in (minx, miny, maxx, maxy)):
        return None
    if minx > maxx or miny > maxy:
        return None
    return (minx, miny, maxx, maxy)


def resolve_layer(value: str | None, default: str) -> str:
    """Sanitize a user-supplied layer name, falling back to ``default``.

    Raises:
        InvalidIdentifier: If the sanitized name is not a valid identifier.
    """
    candidate = default if value is None or value == "" else value
    return identifiers.validate(identifiers.sanitize(candidate))


def build_overlap_sql(
    layer1: str,
    layer2: str,
    bbox: db_models.BBox | None = None,
    srid: int = 4326,
) -> tuple[sql.Composed, dict[str, Any]]:
    """Compose the overlap statement and its parameters.

    Args:
        layer1: Left table; bbox filtering applies to its rows.
        layer2: Right table.
        bbox: Optional (minx, miny, maxx, maxy) in ``srid`` coordinates.
        srid: Reference system of the bbox envelope.

    Returns:
        The composed statement and the named parameters to bind with it.

    Raises:
        InvalidIdentifier: If either table name fails validation.
    """
    identifiers.validate(layer1)
    identifiers.validate(layer2)
    geom = sql.Identifier(db_models.GEOMETRY_COLUMN)
    params: dict[str, Any] = {}
    bbox_filter: sql.Composable = sql.SQL("")
    if bbox is not None:
        bbox_filter = sql.SQL(_BBOX_FILTER_SQL).format(geom=geom)
        minx, miny, maxx, maxy = bbox
        params = {
            "minx": minx,
            "miny": miny,
            "maxx": maxx,
            "maxy": maxy,
            "srid": srid,
        }
    query = sql.SQL(_OVERLAP_SQL).format(
        fid=sql.Identifier(db_models.FID_COLUMN),
        geom=geom,
        layer1=sql.Identifier(layer1),
        layer2=sql.Identifier(layer2),
        bbox_filter=bbox_filter,
    )
    return query, params


def _parse_geometry(raw: object) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return cast(dict[str, Any], raw)
    try:
        geometry = json.loads(cast(str, raw))
    except (TypeError, ValueError):
        logger.debug("Dropping unparsable overlap geometry")
        return None
    return geometry if isinstance(geometry, dict) else None


def row_to_overlap(row: dict[str, Any]) -> db_models.OverlapRow:
    """Convert one store row into an ``OverlapRow``."""
    area = row.get("area_m2")
    return db_models.OverlapRow(
        id1=row.get("id1"),
        id2=row.get("id2"),
        area_m2=max(float(area or 0.0), 0.0),
        geometry=_parse_geometry(row.get("geom_json")),
    )


def to_feature(overlap_row: db_models.OverlapRow) -> db_models.Feature:
    return db_models.Feature(
        type="Feature",
        geometry=overlap_row.geometry,
        properties=db_models.FeatureProperties(
            id1=overlap_row.id1,
            id2=overlap_row.id2,
            luas_overlap_m2=overlap_row.area_m2,
        ),
    )


def to_feature_collection(
    rows: Iterable[db_models.OverlapRow],
) -> db_models.FeatureCollection:
    return db_models.FeatureCollection(
        type="FeatureCollection",
        features=[to_feature(row) for row in rows],
    )


def find_overlaps(
    store: database.SpatialStoreProtocol,
    request: db_models.OverlapRequest,
    srid: int = 4326,
) -> db_models.FeatureCollection:
    """Run the overlap join for ``request`` and return GeoJSON features.

    Args:
        store: Spatial store executing the statement.
        request: Layers to compare and the optional bbox on ``layer1``.
        srid: Reference system of ``request.bbox``.

    Returns:
        A FeatureCollection with one feature per intersecting pair, ordered
        by ``(id1, id2)``. No intersecting pairs gives an empty collection.

    Raises:
        InvalidIdentifier: If a layer name fails validation; the store is not
            contacted.
        QueryFailed: If the store fails; no partial result is returned.
    """
    query, params = build_overlap_sql(
        request.layer1,
        request.layer2,
        request.bbox,
        srid,
    )
    rows = store.fetch_all(query, params or None)
    collection = to_feature_collection(row_to_overlap(row) for row in rows)
    logger.info(
        "Overlap %s x %s: %d pairs",
        request.layer1,
        request.layer2,
        len(collection["features"]),
    )
    return collection
