"""Read-only catalog of the spatial tables loaded by the service.

A layer is any table registered in PostGIS ``geometry_columns`` with the
service's geometry column name in the current schema. Descriptions are
computed from the store on every call; nothing is cached.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from psycopg2 import sql

from geooverlap.core import errors
from geooverlap.db import models as db_models
from geooverlap.utils import identifiers

if TYPE_CHECKING:
    from geooverlap.db import database

_LIST_SQL = """
SELECT f_table_name AS name
FROM geometry_columns
WHERE f_table_schema = current_schema()
  AND f_geometry_column = %(geom)s
ORDER BY f_table_name
"""

_COLUMN_SQL = """
SELECT srid, type AS geom_type
FROM geometry_columns
WHERE f_table_schema = current_schema()
  AND f_table_name = %(name)s
  AND f_geometry_column = %(geom)s
"""

_SUMMARY_SQL = """
SELECT
  n AS feature_count,
  ST_XMin(ext) AS minx,
  ST_YMin(ext) AS miny,
  ST_XMax(ext) AS maxx,
  ST_YMax(ext) AS maxy
FROM (SELECT count(*) AS n, ST_Extent({geom}) AS ext FROM {table}) AS t
"""


def list_layers(store: database.SpatialStoreProtocol) -> list[str]:
    """Names of the loaded layers, sorted; unsafe names are left out."""
    rows = store.fetch_all(_LIST_SQL, {"geom": db_models.GEOMETRY_COLUMN})
    return [
        str(row["name"]) for row in rows if identifiers.is_valid(row["name"])
    ]


def describe_layer(
    store: database.SpatialStoreProtocol,
    name: str,
) -> db_models.SpatialLayer:
    """Compute feature count, SRID, geometry type and extent for ``name``.

    Raises:
        InvalidIdentifier: If ``name`` is not a safe identifier.
        LayerNotFound: If no such spatial table exists.
        QueryFailed: If the store fails.
    """
    identifiers.validate(name)
    params = {"name": name, "geom": db_models.GEOMETRY_COLUMN}
    columns = store.fetch_all(_COLUMN_SQL, params)
    if not columns:
        raise errors.LayerNotFound(name)
    column = columns[0]

    summary_sql = sql.SQL(_SUMMARY_SQL).format(
        geom=sql.Identifier(db_models.GEOMETRY_COLUMN),
        table=sql.Identifier(name),
    )
    rows = store.fetch_all(summary_sql)
    summary = rows[0] if rows else {}
    extent = tuple(summary.get(key) for key in ("minx", "miny", "maxx", "maxy"))
    bbox: db_models.BBox | None = None
    if all(v is not None for v in extent):
        bbox = cast(db_models.BBox, tuple(map(float, extent)))

    srid = column.get("srid")
    geom_type = column.get("geom_type")
    return db_models.SpatialLayer(
        name=name,
        feature_count=int(summary.get("feature_count") or 0),
        srid=int(srid) if srid is not None else None,
        geom_type=str(geom_type) if geom_type is not None else None,
        bbox=bbox,
    )
