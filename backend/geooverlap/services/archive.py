"""Zipped shapefile extraction.

Uploaded archives are untrusted. Every member path is checked before any byte
is written: absolute paths, drive letters and ``..`` segments are rejected
(Zip Slip), as are archives whose declared uncompressed size exceeds the
configured cap. Only after the whole member list passes are the entries
written, one by one, under the destination directory.

The primary geometry file is the ``.shp`` found at the top level of the
extracted tree; its ``.dbf``/``.shx``/``.prj`` siblings are left for
ogr2ogr to pick up.
"""

from __future__ import annotations

import logging
import pathlib
import shutil
import zipfile
from typing import TYPE_CHECKING

from geooverlap.core import errors
from geooverlap.db import models as db_models

if TYPE_CHECKING:
    import threading

logger = logging.getLogger(__name__)


def _is_bad_member(name: str) -> bool:
    if not name.strip():
        return True
    if name.startswith(("/", "\\")) or ":" in name:
        return True
    parts = pathlib.PurePosixPath(name.replace("\\", "/")).parts
    return ".." in parts


def _target_path(destination: pathlib.Path, name: str) -> pathlib.Path:
    """Resolve ``name`` under ``destination`` or reject it."""
    if _is_bad_member(name):
        raise errors.ArchiveInvalid(f"Unsafe path in archive: {name!r}")
    target = (destination / name.replace("\\", "/")).resolve()
    if not target.is_relative_to(destination):
        raise errors.ArchiveInvalid(f"Unsafe path in archive: {name!r}")
    return target


def _check_members(
    members: list[zipfile.ZipInfo],
    destination: pathlib.Path,
    max_size: int | None,
) -> list[tuple[zipfile.ZipInfo, pathlib.Path]]:
    total = 0
    planned = []
    for info in members:
        planned.append((info, _target_path(destination, info.filename)))
        total += info.file_size
        if max_size is not None and total > max_size:
            raise errors.ArchiveInvalid("Archive expands beyond the size limit")
    return planned


def find_geometry_file(directory: pathlib.Path) -> pathlib.Path:
    """Return the top-level ``.shp`` file in ``directory``.

    Matching is case-insensitive; with several candidates the first in sorted
    order wins.

    Raises:
        ArchiveInvalid: If no geometry file is present.
    """
    candidates = sorted(
        path
        for path in directory.iterdir()
        if path.is_file()
        and path.name.lower().endswith(db_models.GEOMETRY_FILE_SUFFIX)
    )
    if not candidates:
        raise errors.ArchiveInvalid("SHP file not found inside ZIP.")
    return candidates[0]


def unpack(
    archive_path: pathlib.Path,
    destination: pathlib.Path,
    max_size: int | None = None,
    stop: threading.Event | None = None,
) -> pathlib.Path:
    """Extract ``archive_path`` into a fresh ``destination`` directory.

    Args:
        archive_path: Uploaded zip file.
        destination: Directory to extract into. It is created here and must
            not already hold files.
        max_size: Optional cap on the total uncompressed size in bytes.
        stop: Checked before each entry; once set, extraction is abandoned
            with ``ArchiveCorrupt``.

    Returns:
        Path of the primary geometry file inside ``destination``.

    Raises:
        ArchiveCorrupt: If the file is not a readable zip archive or an entry
            fails to extract.
        ArchiveInvalid: If an entry would escape ``destination``, the archive
            is too large once expanded, or it holds no ``.shp`` file.
    """
    destination.mkdir(parents=True, exist_ok=True)
    if any(destination.iterdir()):
        raise errors.ArchiveInvalid(f"Destination is not empty: {destination}")
    root = destination.resolve()

    try:
        with zipfile.ZipFile(archive_path) as zf:
            planned = _check_members(zf.infolist(), root, max_size)
            for info, target in planned:
                if stop is not None and stop.is_set():
                    raise errors.ArchiveCorrupt("Extraction cancelled")
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as exc:
        raise errors.ArchiveCorrupt(f"Could not extract archive: {exc}") from exc
    except (OSError, RuntimeError, NotImplementedError) as exc:
        # RuntimeError: encrypted members; NotImplementedError: unknown codec.
        raise errors.ArchiveCorrupt(f"Could not extract archive: {exc}") from exc

    geometry_path = find_geometry_file(destination)
    logger.info("Extracted %s -> %s", archive_path.name, geometry_path.name)
    return geometry_path
