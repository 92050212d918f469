"""Vector data ingestion service using ogr2ogr.

This module loads an extracted shapefile into PostGIS as a table named after
the upload. The work is done by an external converter behind the
``GeometryImporter`` protocol; the production implementation shells out to
ogr2ogr.

Every loaded table has the same shape:

- geometry column ``geom`` and feature id column ``id``,
- geometries promoted to their multi-part type (``-nlt PROMOTE_TO_MULTI``),
- the target SRID *assigned* with ``-a_srs``, whatever the source ``.prj``
  says. Nothing is reprojected; sources must already be in the target
  reference system,
- an existing table of the same name is dropped and replaced
  (``-overwrite``).

Example:
    Load a shapefile into PostGIS:
        >>> from geooverlap.core.config import get_settings
        >>> from geooverlap.services import ingest_vector

        >>> settings = get_settings()
        >>> importer = ingest_vector.Ogr2OgrImporter(settings)
        >>> await ingest_vector.load_geometry(
        ...     importer,
        ...     pathlib.Path("parcels.shp"),
        ...     "parcels",
        ...     srid=4326,
        ... )

    The ogr2ogr command executed:
        $ ogr2ogr -f PostgreSQL "PG:host=... dbname=..." parcels.shp \\
        $    -nln parcels -lco GEOMETRY_NAME=geom -lco FID=id \\
        $    -nlt PROMOTE_TO_MULTI -a_srs EPSG:4326 -overwrite
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Protocol

from geooverlap.core import errors
from geooverlap.db import models as db_models
from geooverlap.utils import gdal_helpers, identifiers

if TYPE_CHECKING:
    import pathlib

    from geooverlap.core import config

logger = logging.getLogger(__name__)


class GeometryImporter(Protocol):
    """Capability that materializes a geometry file as a store table.

    Implementations may shell out, call a library or a remote service. They
    receive an already validated table name and raise ``LoadFailed`` on any
    failure.
    """

    async def import_layer(
        self,
        source_path: pathlib.Path,
        table_name: str,
        srid: int,
    ) -> None: ...


def build_ogr2ogr_command(
    source_path: pathlib.Path,
    table_name: str,
    srid: int,
    settings: config.Settings,
) -> tuple[str, ...]:
    """Build the ogr2ogr argument vector for one load."""
    return (
        "ogr2ogr",
        "-f",
        "PostgreSQL",
        settings.ogr_connection,
        str(source_path),
        "-nln",
        table_name,
        "-lco",
        f"GEOMETRY_NAME={db_models.GEOMETRY_COLUMN}",
        "-lco",
        f"FID={db_models.FID_COLUMN}",
        "-nlt",
        "PROMOTE_TO_MULTI",
        "-a_srs",
        f"EPSG:{srid}",
        "-overwrite",
    )


class Ogr2OgrImporter(GeometryImporter):
    """Load geometry files with the ogr2ogr command-line tool."""

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env["PGPASSWORD"] = self.settings.pgpassword
        return env

    async def import_layer(
        self,
        source_path: pathlib.Path,
        table_name: str,
        srid: int,
    ) -> None:
        """Run ogr2ogr for ``source_path`` within the configured timeout.

        Raises:
            LoadFailed: If ogr2ogr is missing, exits non-zero or times out.
                The message carries its stderr.
        """
        command = build_ogr2ogr_command(
            source_path,
            table_name,
            srid,
            self.settings,
        )
        try:
            await gdal_helpers.run_command(
                command,
                timeout=self.settings.import_timeout_seconds,
                env=self._environment(),
            )
        except gdal_helpers.CommandError as exc:
            raise errors.LoadFailed(f"ogr2ogr failed: {exc}") from exc


async def load_geometry(
    importer: GeometryImporter,
    source_path: pathlib.Path,
    table_name: str,
    srid: int,
) -> str:
    """Import ``source_path`` as table ``table_name`` in the spatial store.

    The name is validated before the importer is touched, so a bad name never
    reaches the store.

    Args:
        importer: Converter used to perform the load.
        source_path: Extracted ``.shp`` file.
        table_name: Destination table; must match ``^[a-z0-9_]+$``.
        srid: Reference system stamped onto the loaded geometries.

    Returns:
        The table name that was written.

    Raises:
        InvalidIdentifier: If ``table_name`` is not a safe identifier.
        LoadFailed: If the importer fails.
    """
    identifiers.validate(table_name)
    await importer.import_layer(source_path, table_name, srid)
    logger.info("Imported %s -> %s", source_path.name, table_name)
    return table_name
