"""Schemas for the page metadata endpoint."""
from pydantic import BaseModel


class PageMetadata(BaseModel):
    """
    Link-preview metadata extracted from a web page.

    Every field may be empty. `image` is either empty or an absolute URL.
    """

    title: str = ""
    description: str = ""
    image: str = ""


class ErrorResponse(BaseModel):
    """Error body returned by the metadata endpoint."""

    error: str
