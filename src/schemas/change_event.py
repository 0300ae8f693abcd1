"""Schemas for the per-user bookmark change feed."""
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, model_validator

from schemas.bookmark import BookmarkResponse


class ChangeType(StrEnum):
    """Kind of change delivered on the feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    One change to a user's bookmark collection.

    INSERT carries `new`, DELETE carries `old`, UPDATE carries both.
    """

    event_type: ChangeType
    new: BookmarkResponse | None = None
    old: BookmarkResponse | None = None

    @model_validator(mode="after")
    def check_payload(self) -> "ChangeEvent":
        """Ensure the record required by the event type is present."""
        if self.event_type in (ChangeType.INSERT, ChangeType.UPDATE) and self.new is None:
            raise ValueError(f"{self.event_type} event requires 'new'")
        if self.event_type == ChangeType.DELETE and self.old is None:
            raise ValueError("DELETE event requires 'old'")
        return self

    @property
    def record(self) -> BookmarkResponse:
        """The record the event is about (new value when there is one)."""
        return self.new if self.new is not None else self.old  # type: ignore[return-value]

    @property
    def record_id(self) -> UUID:
        """Identifier of the affected record."""
        return self.record.id

    @property
    def user_id(self) -> UUID:
        """Owner of the affected record."""
        return self.record.user_id
