"""Table identifier sanitizing and validation.

Table names are the only values that cannot be bound as query parameters,
so every name that reaches ogr2ogr or a SQL statement goes through
``validate`` first. ``sanitize`` turns arbitrary user text (shapefile names,
query strings) into a candidate that usually validates.

Example:
    >>> sanitize("Parcels 2024.v2")
    'parcels_2024_v2'
    >>> validate("parcels")
    'parcels'
    >>> validate("")
    Traceback (most recent call last):
    ...
    geooverlap.core.errors.InvalidIdentifier: Invalid table name: ''
"""

from __future__ import annotations

import re

from geooverlap.core import errors
from geooverlap.db import models as db_models

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_]")
_VALID_IDENTIFIER = re.compile(r"[a-z0-9_]+")


def sanitize(value: str) -> str:
    """Lower-case ``value`` and replace anything outside ``[a-z0-9_]``."""
    return _UNSAFE_CHARS.sub("_", value.lower())


def is_valid(value: object) -> bool:
    return isinstance(value, str) and _VALID_IDENTIFIER.fullmatch(value) is not None


def validate(value: str) -> str:
    """Return ``value`` unchanged if it is a safe table identifier.

    Raises:
        InvalidIdentifier: If ``value`` is empty or holds characters outside
            ``[a-z0-9_]``.
    """
    if not is_valid(value):
        raise errors.InvalidIdentifier(value)
    return value


def derive_table_name(filename: str) -> str:
    """Derive the target table name for an extracted geometry file.

    The geometry suffix is dropped case-insensitively, the rest is sanitized
    and validated.

    Args:
        filename: Base name of the geometry file, e.g. ``"Parcels.SHP"``.

    Returns:
        Validated table identifier, e.g. ``"parcels"``.

    Raises:
        InvalidIdentifier: If nothing usable remains (``".shp"`` alone).
    """
    stem = filename
    if stem.lower().endswith(db_models.GEOMETRY_FILE_SUFFIX):
        stem = stem[: -len(db_models.GEOMETRY_FILE_SUFFIX)]
    return validate(sanitize(stem))
