"""Error taxonomy shared by the ingestion and overlap pipelines.

Every failure a request can run into is a ``ServiceError`` subclass carrying
the HTTP status it maps to. The FastAPI exception handler registered in
``geooverlap.main`` turns them into ``{"ok": false, "message": ...}``
responses, so services raise these instead of ``fastapi.HTTPException``.
"""


class ServiceError(Exception):
    """Base class for request-level failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(ServiceError):
    """User-correctable request problem (missing file, bad parameter)."""

    status_code = 400


class InvalidIdentifier(InvalidInput):
    """A table identifier failed the ``^[a-z0-9_]+$`` check."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Invalid table name: {identifier!r}")
        self.identifier = identifier


class UploadTooLarge(InvalidInput):
    """The uploaded file exceeds ``max_upload_size_bytes``."""

    status_code = 413


class LayerNotFound(ServiceError):
    """No table with the requested name exists in the spatial store."""

    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Layer not found: {name}")
        self.name = name


class ArchiveInvalid(ServiceError):
    """Archive is readable but unusable (no .shp, unsafe entry paths)."""


class ArchiveCorrupt(ServiceError):
    """Archive could not be read or extracted."""


class LoadFailed(ServiceError):
    """The geometry importer exited uncleanly, could not start or timed out."""


class QueryFailed(ServiceError):
    """The spatial store rejected or failed a query."""
