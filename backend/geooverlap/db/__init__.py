"""Spatial store access and shared data models.

``database`` holds the store protocol and its PostGIS implementation backed
by a process-wide psycopg2 connection pool; ``models`` holds the dataclasses
exchanged between the API layer and the services.

Example:
    Use in a service or FastAPI dependency:
        >>> from geooverlap.db import database
        >>> store = database.get_spatial_store()
"""
