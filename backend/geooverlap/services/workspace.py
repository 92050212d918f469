"""Per-request upload workspaces.

Each upload gets a fresh ``UploadJob``: the raw archive is stored as
``<storage_dir>/<uuid>.zip`` and extracted into ``<storage_dir>/<uuid>/``.
``upload_job`` removes both when the request ends, whatever the outcome,
including cancellation. Removal problems are logged and never replace the
request's own result or error.

Example:
    >>> async with upload_job(settings.storage_dir) as job:
    ...     await run_to_completion(save_upload, file, job, max_size)
    ...     await run_to_completion(archive.unpack, job.archive_path, job.workdir)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import uuid
from typing import TYPE_CHECKING, Any, TypeVar

from geooverlap.core import errors
from geooverlap.db import models as db_models

if TYPE_CHECKING:
    import pathlib
    import threading
    from collections.abc import AsyncIterator, Callable

    import fastapi

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHUNK_SIZE = 1024 * 1024


def allocate(storage_dir: pathlib.Path) -> db_models.UploadJob:
    """Reserve collision-free archive and extraction paths under ``storage_dir``.

    Nothing but ``storage_dir`` itself is created; the archive file appears
    when the upload is saved and the extraction directory when it is unpacked.
    """
    storage_dir.mkdir(parents=True, exist_ok=True)
    token = uuid.uuid4().hex
    return db_models.UploadJob(
        archive_path=storage_dir / f"{token}.zip",
        workdir=storage_dir / token,
    )


def cleanup(job: db_models.UploadJob) -> None:
    """Remove the uploaded archive and the extraction directory.

    Best-effort: failures are logged as warnings and not raised.
    """
    try:
        job.archive_path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove upload %s: %s", job.archive_path, exc)
    try:
        if job.workdir.exists():
            shutil.rmtree(job.workdir)
    except OSError as exc:
        logger.warning("Could not remove workdir %s: %s", job.workdir, exc)


async def run_to_completion(
    func: Callable[..., T],
    /,
    *args: Any,
    stop: threading.Event | None = None,
) -> T:
    """Run ``func(*args)`` in a worker thread that outlives cancellation.

    A thread cannot be interrupted, so when the awaiting task is cancelled the
    ``stop`` event (if any) is set and the thread is awaited to the end before
    ``CancelledError`` propagates. Nothing the thread writes afterwards can
    land in a workspace that was already removed.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        if stop is not None:
            stop.set()
        await asyncio.wait({future})
        if not future.cancelled():
            future.exception()  # the cancellation is what propagates
        raise


@contextlib.asynccontextmanager
async def upload_job(
    storage_dir: pathlib.Path,
) -> AsyncIterator[db_models.UploadJob]:
    """Scope an ``UploadJob`` to an ``async with`` block and clean it up on exit.

    Removal runs in a worker thread so a large extraction tree does not stall
    the event loop.
    """
    job = allocate(storage_dir)
    try:
        yield job
    finally:
        await run_to_completion(cleanup, job)


def save_upload(
    file: fastapi.UploadFile,
    job: db_models.UploadJob,
    max_size: int,
) -> pathlib.Path:
    """Persist an uploaded file to the job's archive path with size validation.

    Args:
        file: FastAPI UploadFile object containing the file data.
        job: Workspace the file belongs to.
        max_size: Maximum allowed file size in bytes.

    Returns:
        Path to the saved archive.

    Raises:
        UploadTooLarge: If the file exceeds the maximum size limit. The
            partial file is left for ``cleanup`` to remove.
    """
    size = 0
    with job.archive_path.open("wb") as out:
        for chunk in iter(lambda: file.file.read(CHUNK_SIZE), b""):
            size += len(chunk)
            if size > max_size:
                raise errors.UploadTooLarge("Upload too large")

            out.write(chunk)

    return job.archive_path
