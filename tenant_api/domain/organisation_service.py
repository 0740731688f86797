"""Organisation (tenant) workflows with slug uniqueness and existence checks."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from .contracts import CreateOrganisationInput, Principal, UpdateOrganisationInput
from .errors import ErrorKind, ServiceError
from .identity import parse_identity
from .organisation import (
    SLUG_PATTERN,
    Organisation,
    OrganisationStatus,
    OrganisationView,
    normalise_name,
    normalise_slug,
)
from ..repository import DocumentRepository, DuplicateDocumentError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _not_found() -> ServiceError:
    return ServiceError(ErrorKind.not_found, "Organisation not found")


def _slug_taken() -> ServiceError:
    return ServiceError(ErrorKind.slug_taken, "Organisation slug already exists")


def _actor_id(actor: Principal | None) -> str:
    return actor.user_id if actor is not None else "system"


def _validated_name(name: str) -> str:
    name = normalise_name(name)
    if not name:
        raise ServiceError(ErrorKind.validation, "Organisation name is required")
    return name


def _validated_slug(slug: str) -> str:
    slug = normalise_slug(slug)
    if not SLUG_PATTERN.fullmatch(slug):
        raise ServiceError(
            ErrorKind.validation,
            "Slug may contain lowercase letters, numbers, and single hyphens",
        )
    return slug


class OrganisationService:
    """Organisation CRUD backed by a document repository."""

    def __init__(
        self,
        repository: DocumentRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._clock = clock

    def list(
        self,
        status: OrganisationStatus | None = None,
        *,
        actor: Principal | None = None,
    ) -> list[OrganisationView]:
        """Return organisations, newest first, optionally restricted to one status."""
        filter_ = {"status": status} if status is not None else None
        documents = self._repository.find_all(filter_)
        logger.debug("listed %d organisations for %s", len(documents), _actor_id(actor))
        return [OrganisationView.from_domain(Organisation.from_document(doc)) for doc in documents]

    def get_by_id(self, organisation_id: str, *, actor: Principal | None = None) -> OrganisationView:
        organisation = self._load(organisation_id)
        logger.debug("organisation %s read by %s", organisation.id, _actor_id(actor))
        return OrganisationView.from_domain(organisation)

    def create(
        self,
        payload: CreateOrganisationInput,
        *,
        actor: Principal | None = None,
    ) -> OrganisationView:
        """Create an organisation after normalising its name and slug.

        The slug pre-check gives a precise error for the common case; the
        storage unique index decides concurrent creates.
        """
        name = _validated_name(payload.name)
        slug = _validated_slug(payload.slug)

        if self._repository.find_one({"slug": slug}) is not None:
            raise _slug_taken()

        now = self._clock()
        try:
            doc = self._repository.insert(
                {
                    "name": name,
                    "slug": slug,
                    "status": payload.status or OrganisationStatus.active,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        except DuplicateDocumentError as exc:
            raise _slug_taken() from exc

        organisation = Organisation.from_document(doc)
        logger.info("organisation %s (%s) created by %s", organisation.id, slug, _actor_id(actor))
        return OrganisationView.from_domain(organisation)

    def update(
        self,
        organisation_id: str,
        payload: UpdateOrganisationInput,
        *,
        actor: Principal | None = None,
    ) -> OrganisationView:
        """Apply a partial update; resubmitting the current slug is always allowed."""
        current = self._load(organisation_id)
        patch: dict[str, Any] = {}

        if payload.name is not None:
            patch["name"] = _validated_name(payload.name)

        if payload.slug is not None:
            slug = _validated_slug(payload.slug)
            if slug != current.slug:
                existing = self._repository.find_one({"slug": slug})
                if existing is not None and existing["id"] != current.id:
                    raise _slug_taken()
            patch["slug"] = slug

        if payload.status is not None:
            patch["status"] = payload.status

        patch["updated_at"] = self._clock()

        try:
            doc = self._repository.find_and_update(current.id, patch)
        except DuplicateDocumentError as exc:
            raise _slug_taken() from exc
        if doc is None:
            raise _not_found()

        logger.info(
            "organisation %s updated by %s (fields: %s)",
            current.id,
            _actor_id(actor),
            ", ".join(sorted(patch)),
        )
        return OrganisationView.from_domain(Organisation.from_document(doc))

    def delete(self, organisation_id: str, *, actor: Principal | None = None) -> None:
        identity = parse_identity(organisation_id, label="organisation id")
        if not self._repository.delete(identity):
            raise _not_found()
        logger.info("organisation %s deleted by %s", identity, _actor_id(actor))

    def _load(self, organisation_id: str) -> Organisation:
        identity = parse_identity(organisation_id, label="organisation id")
        doc = self._repository.find_by_id(identity)
        if doc is None:
            raise _not_found()
        return Organisation.from_document(doc)
