from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class OrganisationStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    archived = "archived"


@dataclass(slots=True)
class Organisation:
    """Aggregate root for a tenant."""

    id: uuid.UUID
    name: str
    slug: str
    status: OrganisationStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Organisation":
        return cls(
            id=doc["id"],
            name=doc["name"],
            slug=doc["slug"],
            status=OrganisationStatus(doc["status"]),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )


@dataclass(frozen=True, slots=True)
class OrganisationView:
    """Outward-facing projection with string identity and ISO-8601 timestamps."""

    id: str
    name: str
    slug: str
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, organisation: Organisation) -> "OrganisationView":
        return cls(
            id=str(organisation.id),
            name=organisation.name,
            slug=organisation.slug,
            status=organisation.status.value,
            created_at=organisation.created_at.isoformat(),
            updated_at=organisation.updated_at.isoformat(),
        )


def normalise_name(name: str) -> str:
    return name.strip()


def normalise_slug(slug: str) -> str:
    return slug.strip().lower()
