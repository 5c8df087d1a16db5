"""Exception hierarchy shared by ingestion, retrieval and serving."""

from __future__ import annotations


class RagError(Exception):
    """Base exception for all course_rag errors."""

    kind = "RagError"

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict[str, str | None]:
        return {"error": self.kind, "message": self.message, "detail": self.detail}


class InvalidInput(RagError, ValueError):
    """Malformed payload, missing required field or bad parameters."""

    kind = "InvalidInput"


class Unauthorized(RagError):
    """Ingestion credential missing or mismatched."""

    kind = "Unauthorized"

    def __init__(self, message: str = "unauthorized", detail: str | None = None) -> None:
        super().__init__(message, detail)


class ProviderError(RagError):
    """The embedding provider failed or returned a malformed response.

    ``transient`` marks failures worth retrying (rate limits, timeouts,
    connection resets, 5xx). Auth and validation failures are not.
    """

    kind = "ProviderError"

    def __init__(self, message: str, detail: str | None = None, *, transient: bool = False) -> None:
        super().__init__(message, detail)
        self.transient = transient


class StoreError(RagError):
    """Backing store unavailable, write failure or oversized value."""

    kind = "StoreError"


class NotFound(RagError, KeyError):
    """A record expected to exist is absent."""

    kind = "NotFound"

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message.
        return self.message
