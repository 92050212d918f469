"""Layer overlap endpoint.

Example:
    Overlap two layers inside a bounding box:
        >>> response = client.get(
        ...     "/overlap",
        ...     params={
        ...         "layer1": "parcels",
        ...         "layer2": "forest_areas",
        ...         "bbox": "105,-9,115,-5",
        ...     },
        ... )
        >>> response.json()["type"]
        'FeatureCollection'
"""

from __future__ import annotations

import asyncio

import fastapi

from geooverlap.core import config
from geooverlap.db import database
from geooverlap.db import models as db_models
from geooverlap.services import overlap

router = fastapi.APIRouter(tags=["overlap"])


def _get_store() -> database.SpatialStoreProtocol:
    """Resolve the shared spatial store dependency."""
    return database.get_spatial_store()


@router.get("/overlap")
async def get_overlap(
    bbox: str | None = None,
    layer1: str | None = None,
    layer2: str | None = None,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    store: database.SpatialStoreProtocol = fastapi.Depends(_get_store),  # noqa: B008
) -> db_models.FeatureCollection:
    """Intersect every feature of ``layer1`` with every feature of ``layer2``.

    Omitted layers fall back to the configured defaults. Supplied names are
    sanitized the same way uploads are, then validated. A ``bbox`` that is not
    four finite, ordered numbers is ignored.

    Args:
        bbox: ``"minx,miny,maxx,maxy"`` restricting ``layer1`` rows.
        layer1: Left layer name.
        layer2: Right layer name.
        settings: Application settings (injected via FastAPI Depends).
        store: Spatial store (injected via FastAPI Depends).

    Returns:
        GeoJSON FeatureCollection, one feature per intersecting pair with
        ``id1``, ``id2`` and ``luas_overlap_m2`` properties.

    Raises:
        InvalidIdentifier: If a layer name is unusable (400).
        QueryFailed: If the spatial store fails (500).
    """
    request = db_models.OverlapRequest(
        layer1=overlap.resolve_layer(layer1, settings.default_layer1),
        layer2=overlap.resolve_layer(layer2, settings.default_layer2),
        bbox=overlap.parse_bbox(bbox),
    )
    return await asyncio.to_thread(
        overlap.find_overlaps,
        store,
        request,
        settings.target_srid,
    )
