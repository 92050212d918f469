"""End-to-end flow: upload a zipped shapefile, then overlap it with itself.

The importer and the spatial store are in-test fakes sharing one dict of
"tables", so the flow exercises the real endpoints, workspace handling,
name derivation and query composition without PostGIS or GDAL.
"""

from __future__ import annotations

import io
import pathlib
import zipfile
from typing import Any

from fastapi import testclient
from psycopg2 import sql

from geooverlap import main
from geooverlap.api import overlap as api_overlap
from geooverlap.api import upload as api_upload
from geooverlap.core import config, errors

PARCEL_AREAS = {1: 1500.0, 2: 820.25, 3: 42.0}


class FakeWarehouse:
    """Importer and store backed by the same in-memory table registry."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[int, float]] = {}

    async def import_layer(
        self,
        source_path: pathlib.Path,
        table_name: str,
        srid: int,
    ) -> None:
        assert source_path.exists()
        self.tables[table_name] = dict(PARCEL_AREAS)

    def fetch_all(self, query: Any, params: Any = None) -> list[dict[str, Any]]:
        layer1, layer2 = _table_identifiers(query)
        for name in (layer1, layer2):
            if name not in self.tables:
                raise errors.QueryFailed(f'relation "{name}" does not exist')
        if layer1 != layer2:
            return []
        return [
            {"id1": fid, "id2": fid, "area_m2": area, "geom_json": None}
            for fid, area in sorted(self.tables[layer1].items())
        ]


def _table_identifiers(composable: sql.Composable) -> list[str]:
    names: list[str] = []

    def walk(part: sql.Composable) -> None:
        if isinstance(part, sql.Identifier):
            names.extend(part.strings)
        elif isinstance(part, sql.Composed):
            for child in part.seq:
                walk(child)

    walk(composable)
    return [name for name in names if name not in ("id", "geom")]


def _zip_bytes(members: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


def test_upload_then_self_overlap(tmp_path: pathlib.Path) -> None:
    settings = config.Settings(storage_dir=tmp_path / "uploads")
    settings.ensure_directories()
    warehouse = FakeWarehouse()
    app = main.create_app()
    app.dependency_overrides[config.get_settings] = lambda: settings
    app.dependency_overrides[api_upload._get_importer] = lambda: warehouse
    app.dependency_overrides[api_overlap._get_store] = lambda: warehouse
    client = testclient.TestClient(app)

    upload = client.post(
        "/upload",
        files={
            "shpzip": (
                "parcels.zip",
                _zip_bytes({"parcels.shp": b"shp", "parcels.dbf": b"dbf"}),
            )
        },
    )
    assert upload.status_code == 200
    assert upload.json()["table"] == "parcels"
    assert list(settings.storage_dir.iterdir()) == []

    response = client.get("/overlap", params={"layer1": "parcels", "layer2": "parcels"})

    assert response.status_code == 200
    features = response.json()["features"]
    assert len(features) == len(PARCEL_AREAS)
    for feature in features:
        props = feature["properties"]
        assert props["id1"] == props["id2"]
        assert props["luas_overlap_m2"] == PARCEL_AREAS[props["id1"]]


def test_overlap_against_unloaded_layer_fails() -> None:
    warehouse = FakeWarehouse()
    app = main.create_app()
    app.dependency_overrides[api_overlap._get_store] = lambda: warehouse
    client = testclient.TestClient(app)

    response = client.get("/overlap", params={"layer1": "parcels", "layer2": "forest"})

    assert response.status_code == 500
    assert response.json()["ok"] is False
