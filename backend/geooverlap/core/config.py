"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the PostGIS connection parameters, the listening address, the upload
storage directory, ingestion limits and the fallback overlap layers.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from geooverlap.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.pghost, settings.pgdatabase)

    Environment variables can override defaults:
        >>> PGHOST=db.internal
        >>> PGPASSWORD=secret
        >>> PORT=8000
        >>> IMPORT_TIMEOUT_SECONDS=60
"""

import functools
import pathlib

import pydantic_settings


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.
    The connection fields use the libpq variable names (PGHOST, PGPORT,
    PGUSER, PGPASSWORD, PGDATABASE) so the same environment drives both
    psycopg2 and ogr2ogr.

    Attributes:
        pghost: PostGIS server host.
        pgport: PostGIS server port.
        pguser: Database role used for loads and queries.
        pgpassword: Password for ``pguser``.
        pgdatabase: Database holding the spatial tables.
        host: Interface the HTTP server binds to.
        port: Port the HTTP server listens on.
        storage_dir: Directory for uploaded archives and extraction dirs.
        target_srid: SRID stamped onto every loaded layer.
        import_timeout_seconds: Upper bound for one ogr2ogr run.
        max_upload_size_bytes: Maximum accepted upload size (default 512MB).
        max_extracted_size_bytes: Maximum total uncompressed archive size.
        default_layer1: Layer used when ``layer1`` is omitted from a query.
        default_layer2: Layer used when ``layer2`` is omitted from a query.
        pool_min_size: Connections kept open by the pool.
        pool_max_size: Upper bound on pooled connections.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        log_level: Root logging level used by the server entry point.
    """

    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = "postgres"
    pgdatabase: str = "sigap2025"
    host: str = "0.0.0.0"
    port: int = 3000
    storage_dir: pathlib.Path = pathlib.Path("/tmp/geooverlap/uploads")
    target_srid: int = 4326
    import_timeout_seconds: float = 300.0
    max_upload_size_bytes: int = 512 * 1024 * 1024
    max_extracted_size_bytes: int = 2 * 1024 * 1024 * 1024
    default_layer1: str = "pippib_ar_250k_2025_1"
    default_layer2: str = "kwshutan_overlap"
    pool_min_size: int = 1
    pool_max_size: int = 10
    allow_origins: list[str] = ["*"]
    log_level: str = "INFO"

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def ogr_connection(self) -> str:
        """OGR PostgreSQL datasource string, without the password.

        The password is handed to ogr2ogr through ``PGPASSWORD`` so it does
        not show up in the process list.
        """
        return (
            f"PG:host={self.pghost} port={self.pgport} "
            f"user={self.pguser} dbname={self.pgdatabase}"
        )

    def connection_kwargs(self) -> dict[str, object]:
        """Keyword arguments for ``psycopg2.connect`` and its pools."""
        return {
            "host": self.pghost,
            "port": self.pgport,
            "user": self.pguser,
            "password": self.pgpassword,
            "dbname": self.pgdatabase,
        }

    def ensure_directories(self) -> None:
        """Create the upload storage directory if it is missing."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance with directories initialized.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Directories are created on first call.
    Subsequent calls return the same cached instance.

    Returns:
        Settings instance with all configuration values populated and
        directories ensured to exist.

    Example:
        The settings are cached, so multiple calls return the same instance:
            >>> settings1 = get_settings()
            >>> settings2 = get_settings()
            >>> assert settings1 is settings2  # Same instance
    """
    settings = Settings()
    settings.ensure_directories()
    return settings
