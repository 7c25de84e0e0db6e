"""SQLAlchemy ORM models for the StudyDeck database."""

from backend.models.base import Base
from backend.models.store_entry import StoreEntry

__all__ = ["Base", "StoreEntry"]
