from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .identity import identity_to_str


class UserStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    invited = "invited"
    suspended = "suspended"


@dataclass(slots=True)
class User:
    """Tenant member able to authenticate with an email/password credential."""

    id: uuid.UUID
    email: str
    password_hash: str
    status: UserStatus
    org_id: uuid.UUID | None = None
    role_id: uuid.UUID | None = None
    designation_id: uuid.UUID | None = None
    mobile_number: str | None = None
    last_login_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "User":
        return cls(
            id=doc["id"],
            email=doc["email"],
            password_hash=doc["password_hash"],
            status=UserStatus(doc["status"]),
            org_id=doc.get("org_id"),
            role_id=doc.get("role_id"),
            designation_id=doc.get("designation_id"),
            mobile_number=doc.get("mobile_number"),
            last_login_at=doc.get("last_login_at"),
        )


@dataclass(frozen=True, slots=True)
class UserView:
    """User projection returned from login."""

    id: str
    email: str
    status: str
    org_id: str | None
    role_id: str | None
    designation_id: str | None
    mobile_number: str | None
    last_login_at: str

    @classmethod
    def from_domain(cls, user: User, *, last_login_at: datetime) -> "UserView":
        return cls(
            id=str(user.id),
            email=user.email,
            status=user.status.value,
            org_id=identity_to_str(user.org_id),
            role_id=identity_to_str(user.role_id),
            designation_id=identity_to_str(user.designation_id),
            mobile_number=user.mobile_number,
            last_login_at=last_login_at.isoformat(),
        )
