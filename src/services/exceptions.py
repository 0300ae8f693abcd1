"""Shared exceptions for service layer operations."""


class MetadataExtractionError(Exception):
    """
    Raised when page metadata cannot be extracted.

    Covers network failures, non-success HTTP statuses, blocked targets and
    parse failures alike. The message carries the underlying cause for logging;
    it is never shown to API clients.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to extract metadata from {url}: {reason}")
