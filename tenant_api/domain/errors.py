"""Error taxonomy shared by the service layer and the HTTP boundary."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    invalid_identity = "invalid_identity"
    validation = "validation_error"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    slug_taken = "slug_taken"
    rate_limited = "rate_limited"


class ServiceError(Exception):
    """Classified failure raised by domain services.

    The ``kind`` carries the classification; the HTTP layer maps it to a status
    code through a single lookup table rather than by exception type.
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, message={self.message!r})"
