"""Zipped shapefile upload endpoint.

A single request carries the whole pipeline: the archive is streamed to a
per-request workspace, extracted, its ``.shp`` located, the table name
derived from the shapefile name, and the geometry loaded into PostGIS with
ogr2ogr. The workspace is removed before the response is sent, whether the
load succeeded or not.

Example:
    Upload a zipped shapefile:
        >>> response = client.post(
        ...     "/upload",
        ...     files={"shpzip": ("parcels.zip", open("parcels.zip", "rb"))},
        ... )
        >>> response.json()
        {'ok': True, 'message': 'Imported to table parcels', 'table': 'parcels'}
"""

from __future__ import annotations

from typing_extensions import TypedDict

import fastapi

from geooverlap.core import config, errors
from geooverlap.services import ingest, ingest_vector, workspace

router = fastapi.APIRouter(tags=["upload"])


class UploadResponse(TypedDict):
    ok: bool
    message: str
    table: str


def _get_importer(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> ingest_vector.GeometryImporter:
    """Resolve the geometry importer dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        GeometryImporter implementation (Ogr2OgrImporter in production).
    """
    return ingest_vector.Ogr2OgrImporter(settings)


@router.post("/upload")
async def upload_shapefile(
    shpzip: fastapi.UploadFile | None = fastapi.File(None),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    importer: ingest_vector.GeometryImporter = fastapi.Depends(_get_importer),  # noqa: B008
) -> UploadResponse:
    """Accept a zipped shapefile and load it into the spatial store.

    Args:
        shpzip: Uploaded zip archive from multipart form data.
        settings: Application settings (injected via FastAPI Depends).
        importer: Converter performing the load (injected via FastAPI
            Depends).

    Returns:
        ``{"ok": true, "message": ..., "table": ...}`` naming the table the
        shapefile was loaded into.

    Raises:
        InvalidInput: If no file was attached (400).
        UploadTooLarge: If the file exceeds the upload limit (413).
        ArchiveCorrupt: If the archive cannot be extracted (500).
        ArchiveInvalid: If it holds no shapefile or unsafe paths (500).
        LoadFailed: If ogr2ogr fails or times out (500).
    """
    if shpzip is None or not shpzip.filename:
        raise errors.InvalidInput("No file uploaded")

    async with workspace.upload_job(settings.storage_dir) as job:
        await workspace.run_to_completion(
            workspace.save_upload,
            shpzip,
            job,
            settings.max_upload_size_bytes,
        )
        table_name = await ingest.ingest_archive(job, importer, settings)

    return UploadResponse(
        ok=True,
        message=f"Imported to table {table_name}",
        table=table_name,
    )
