"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass

from .organisation import OrganisationStatus
from .user import UserView


@dataclass(slots=True)
class CreateOrganisationInput:
    """Inputs required to create an organisation; values are normalised by the service."""

    name: str
    slug: str
    status: OrganisationStatus | None = None


@dataclass(slots=True)
class UpdateOrganisationInput:
    """Partial organisation update; ``None`` means the field was not supplied."""

    name: str | None = None
    slug: str | None = None
    status: OrganisationStatus | None = None


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller resolved from a verified access token."""

    user_id: str
    email: str
    session_id: str
    org_id: str | None = None
    role_id: str | None = None
    designation_id: str | None = None


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Token pair and user projection returned from a successful login."""

    access_token: str
    refresh_token: str
    user: UserView
