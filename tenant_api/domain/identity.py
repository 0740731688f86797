from __future__ import annotations

import uuid
from typing import Any

from .errors import ErrorKind, ServiceError


def parse_identity(value: Any, *, label: str = "id") -> uuid.UUID:
    """Parse an externally supplied identifier, raising ``invalid_identity`` when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise ServiceError(ErrorKind.invalid_identity, f"Invalid {label}")
    try:
        return uuid.UUID(value.strip())
    except ValueError as exc:
        raise ServiceError(ErrorKind.invalid_identity, f"Invalid {label}") from exc


def identity_to_str(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None
