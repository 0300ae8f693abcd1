"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDMixin
from models.bookmark import Bookmark
from models.user import User

__all__ = ["Base", "Bookmark", "TimestampMixin", "UUIDMixin", "User"]
