"""Tests for application configuration and settings.

This module contains unit tests for the Settings Pydantic model and
application configuration logic in geooverlap.core.config. It ensures
that default values, environment overrides, directory creation logic,
connection helpers and get_settings caching work as expected.
"""

from __future__ import annotations

import pathlib

import pytest

from geooverlap.core import config


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that Settings has expected default values."""
    for name in ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE", "PORT"):
        monkeypatch.delenv(name, raising=False)
    settings = config.Settings(_env_file=None)  # type: ignore[call-arg]
    assert settings.pghost == "localhost"
    assert settings.pgport == 5432
    assert settings.pguser == "postgres"
    assert settings.pgdatabase == "sigap2025"
    assert settings.port == 3000
    assert settings.target_srid == 4326
    assert settings.max_upload_size_bytes == 512 * 1024 * 1024
    assert settings.allow_origins == ["*"]


def test_settings_read_libpq_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Connection and port settings follow the PG* / PORT variables."""
    monkeypatch.setenv("PGHOST", "db.internal")
    monkeypatch.setenv("PGPORT", "6543")
    monkeypatch.setenv("PGDATABASE", "gis")
    monkeypatch.setenv("PORT", "8080")
    settings = config.Settings(_env_file=None)  # type: ignore[call-arg]
    assert settings.pghost == "db.internal"
    assert settings.pgport == 6543
    assert settings.pgdatabase == "gis"
    assert settings.port == 8080


def test_ogr_connection_omits_password() -> None:
    settings = config.Settings(
        pghost="db",
        pgport=5433,
        pguser="loader",
        pgpassword="s3cret",
        pgdatabase="gis",
    )
    assert settings.ogr_connection == "PG:host=db port=5433 user=loader dbname=gis"
    assert "s3cret" not in settings.ogr_connection


def test_connection_kwargs() -> None:
    settings = config.Settings(pghost="db", pgpassword="pw", pgdatabase="gis")
    kwargs = settings.connection_kwargs()
    assert kwargs["host"] == "db"
    assert kwargs["password"] == "pw"
    assert kwargs["dbname"] == "gis"


def test_settings_ensure_directories(tmp_path: pathlib.Path) -> None:
    """Test that ensure_directories creates the storage directory."""
    storage_dir = tmp_path / "uploads"
    settings = config.Settings(storage_dir=storage_dir)
    assert not storage_dir.exists()
    settings.ensure_directories()
    assert storage_dir.exists()


def test_get_settings_cached() -> None:
    """Test that get_settings returns cached instance."""
    config.get_settings.cache_clear()
    settings1 = config.get_settings()
    settings2 = config.get_settings()
    assert settings1 is settings2
    config.get_settings.cache_clear()
