"""Persistence layer: database, ORM models and repositories."""

from playbridge.infrastructure.persistence.database import Database
from playbridge.infrastructure.persistence.repositories import (
    DownloadJobRepository,
    ExportJobRepository,
    ImportJobRepository,
    PlaylistRepository,
)

__all__ = [
    "Database",
    "DownloadJobRepository",
    "ExportJobRepository",
    "ImportJobRepository",
    "PlaylistRepository",
]
