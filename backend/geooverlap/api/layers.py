"""Spatial layer listing and description endpoints.

Example:
    List the loaded layers:
        >>> client.get("/layers").json()
        {'layers': ['forest_areas', 'parcels']}

    Describe one layer:
        >>> client.get("/layers/parcels").json()
        {'name': 'parcels', 'feature_count': 42, 'srid': 4326,
         'geom_type': 'MULTIPOLYGON', 'bbox': [106.7, -6.4, 106.9, -6.1]}
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any

import fastapi

from geooverlap.api import overlap as api_overlap
from geooverlap.db import database
from geooverlap.services import layers

router = fastapi.APIRouter(prefix="/layers", tags=["layers"])


@router.get("")
async def list_layers(
    store: database.SpatialStoreProtocol = fastapi.Depends(api_overlap._get_store),  # noqa: B008
) -> dict[str, list[str]]:
    """List the spatial tables available for overlap queries."""
    return {"layers": await asyncio.to_thread(layers.list_layers, store)}


@router.get("/{name}")
async def get_layer(
    name: str,
    store: database.SpatialStoreProtocol = fastapi.Depends(api_overlap._get_store),  # noqa: B008
) -> dict[str, Any]:
    """Describe one layer: feature count, SRID, geometry type and extent.

    Raises:
        InvalidIdentifier: If ``name`` is not a safe identifier (400).
        LayerNotFound: If the layer does not exist (404).
    """
    layer = await asyncio.to_thread(layers.describe_layer, store, name)
    result = dataclasses.asdict(layer)
    if result["bbox"] is not None:
        result["bbox"] = list(result["bbox"])
    return result
