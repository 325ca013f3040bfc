"""Persistence layer: SQLAlchemy models, database session management and repositories."""

from tunesync.infrastructure.persistence.database import Database
from tunesync.infrastructure.persistence.models import Base, LibraryEntryModel
from tunesync.infrastructure.persistence.repositories import LibraryEntryRepository

__all__ = ["Base", "Database", "LibraryEntryModel", "LibraryEntryRepository"]
