"""Upload pipeline: archive on disk to table in the spatial store."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from geooverlap.services import archive, ingest_vector, workspace
from geooverlap.utils import identifiers

if TYPE_CHECKING:
    from geooverlap.core import config
    from geooverlap.db import models as db_models


async def ingest_archive(
    job: db_models.UploadJob,
    importer: ingest_vector.GeometryImporter,
    settings: config.Settings,
) -> str:
    """Extract the job's archive and load its shapefile.

    The archive must already be saved at ``job.archive_path``. Cleanup is the
    caller's business (see ``workspace.upload_job``). If the task is cancelled
    during extraction, the extracting thread is stopped and awaited before the
    cancellation propagates.

    Args:
        job: Workspace holding the uploaded archive.
        importer: Converter used for the load.
        settings: Provides the target SRID and the extraction size cap.

    Returns:
        Name of the table the geometry was loaded into.

    Raises:
        ArchiveCorrupt: If the archive cannot be extracted.
        ArchiveInvalid: If it holds no shapefile or unsafe paths.
        InvalidIdentifier: If the shapefile name yields no usable table name.
        LoadFailed: If the import fails.
    """
    stop = threading.Event()
    job.geometry_path = await workspace.run_to_completion(
        archive.unpack,
        job.archive_path,
        job.workdir,
        settings.max_extracted_size_bytes,
        stop,
        stop=stop,
    )
    job.table_name = identifiers.derive_table_name(job.geometry_path.name)
    return await ingest_vector.load_geometry(
        importer,
        job.geometry_path,
        job.table_name,
        settings.target_srid,
    )
