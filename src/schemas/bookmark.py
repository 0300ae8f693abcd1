"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 2000


def parse_tag_input(raw: str | list[str] | None) -> list[str]:
    """
    Derive the tag list from user input.

    Accepts the comma-separated string typed into the form or an already split
    list. Each entry is trimmed; empty entries and repeats are dropped while the
    input order is preserved.

    >>> parse_tag_input("tech, work, , design")
    ['tech', 'work', 'design']
    """
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else raw
    tags: list[str] = []
    for part in parts:
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


class BookmarkCreate(BaseModel):
    """Schema for creating a new bookmark."""

    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    # Not validated as absolute; display code adds a scheme when missing
    url: str = Field(min_length=1)
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    image_url: str | None = None
    tags: list[str] = []
    is_pinned: bool = False

    @field_validator("title", "url", mode="before")
    @classmethod
    def strip_required(cls, v: str) -> str:
        """Trim surrounding whitespace so blank values fail min_length."""
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", "image_url", mode="before")
    @classmethod
    def empty_to_none(cls, v: str | None) -> str | None:
        """Store blank optional strings as null."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: str | list[str] | None) -> list[str]:
        """Split, trim and de-duplicate tags."""
        return parse_tag_input(v)


class BookmarkUpdate(BaseModel):
    """
    Schema for updating an existing bookmark.

    Only the pin flag is mutable; content fields are fixed at creation.
    """

    is_pinned: bool


class BookmarkResponse(BaseModel):
    """Schema for bookmark responses and change-feed payloads."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    title: str
    url: str
    description: str | None = None
    image_url: str | None = None
    tags: list[str] = []
    is_pinned: bool = False
    created_at: datetime
