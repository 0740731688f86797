from __future__ import annotations

import re
import time
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Mapping

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tenant_api.api import routes
from tenant_api.api.errors import register_exception_handlers
from tenant_api.config import Settings
from tenant_api.domain.auth_service import AuthService
from tenant_api.domain.organisation_service import OrganisationService
from tenant_api.repository import DuplicateDocumentError
from tenant_api.security.passwords import PasswordHasher
from tenant_api.security.rate_limiter import SlidingWindowRateLimiter
from tenant_api.security.tokens import TokenSigner


class FakeDocumentRepository:
    """In-memory repository mimicking the Postgres document store, unique indexes included."""

    def __init__(self, name: str, unique: Mapping[str, Callable[[Any], Any]] | None = None) -> None:
        self.name = name
        self._docs: dict[uuid.UUID, dict[str, Any]] = {}
        self._unique = dict(unique or {})
        self.writes: list[tuple[str, uuid.UUID]] = []

    def _store(self, doc: Mapping[str, Any]) -> dict[str, Any]:
        return {key: value.value if isinstance(value, Enum) else value for key, value in doc.items()}

    def _check_unique(self, candidate: Mapping[str, Any], document_id: uuid.UUID) -> None:
        for field, normalise in self._unique.items():
            if candidate.get(field) is None:
                continue
            key = normalise(candidate[field])
            for other_id, other in self._docs.items():
                if other_id != document_id and other.get(field) is not None and normalise(other[field]) == key:
                    raise DuplicateDocumentError(self.name, f"{self.name}_{field}_key")

    @staticmethod
    def _matches(doc: Mapping[str, Any], filter_: Mapping[str, Any]) -> bool:
        for key, expected in filter_.items():
            value = doc.get(key)
            if isinstance(expected, re.Pattern):
                if not isinstance(value, str) or expected.search(value) is None:
                    return False
            elif isinstance(expected, Enum):
                if value != expected.value:
                    return False
            elif value != expected:
                return False
        return True

    def find_all(self, filter_: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        results = [dict(doc) for doc in self._docs.values() if self._matches(doc, filter_ or {})]
        results.sort(key=lambda doc: doc["created_at"], reverse=True)
        return results

    def find_one(self, filter_: Mapping[str, Any]) -> dict[str, Any] | None:
        for doc in self._docs.values():
            if self._matches(doc, filter_):
                return dict(doc)
        return None

    def find_by_id(self, document_id: uuid.UUID) -> dict[str, Any] | None:
        doc = self._docs.get(document_id)
        return dict(doc) if doc is not None else None

    def insert(self, doc: Mapping[str, Any]) -> dict[str, Any]:
        document_id = doc.get("id") or uuid.uuid4()
        stored = self._store({**doc, "id": document_id})
        self._check_unique(stored, document_id)
        self._docs[document_id] = stored
        self.writes.append(("insert", document_id))
        return dict(stored)

    def find_and_update(self, document_id: uuid.UUID, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        current = self._docs.get(document_id)
        if current is None:
            return None
        updated = {**current, **self._store(patch)}
        self._check_unique(updated, document_id)
        self._docs[document_id] = updated
        self.writes.append(("update", document_id))
        return dict(updated)

    def delete(self, document_id: uuid.UUID) -> bool:
        if self._docs.pop(document_id, None) is None:
            return False
        self.writes.append(("delete", document_id))
        return True


class FakeClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_access_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        jwt_issuer="tenant-api-test",
        access_ttl_seconds=900,
        refresh_ttl_seconds=7 * 24 * 3600,
        password_hash_rounds=4,
        rate_limit_requests=2,
        rate_limit_window_seconds=60,
    )


@pytest.fixture
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.password_hash_rounds)


@pytest.fixture
def signer(settings: Settings) -> TokenSigner:
    issued_at = time.time()
    return TokenSigner(settings.jwt_issuer, clock=lambda: issued_at)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_repository() -> FakeDocumentRepository:
    return FakeDocumentRepository("users", unique={"email": str.lower})


@pytest.fixture
def organisation_repository() -> FakeDocumentRepository:
    return FakeDocumentRepository("organisations", unique={"slug": str})


@pytest.fixture
def auth_service(user_repository, signer, hasher, settings, clock) -> AuthService:
    return AuthService(user_repository, signer=signer, hasher=hasher, settings=settings, clock=clock)


@pytest.fixture
def organisation_service(organisation_repository, clock) -> OrganisationService:
    return OrganisationService(organisation_repository, clock=clock)


@pytest.fixture
def seed_user(user_repository: FakeDocumentRepository, hasher: PasswordHasher):
    """Insert a user document with a hashed password and return the stored document."""

    def _seed(email: str, password: str = "correct horse", status: str = "active", **extra: Any):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return user_repository.insert(
            {
                "email": email,
                "password_hash": hasher.hash(password),
                "status": status,
                "created_at": now,
                "updated_at": now,
                **extra,
            }
        )

    return _seed


@pytest.fixture
def api_client(settings, signer, auth_service, organisation_service):
    """Provide a FastAPI test client wired to in-memory repositories."""
    app = FastAPI()
    app.include_router(routes.router)
    register_exception_handlers(app)
    app.state.settings = settings
    app.state.token_signer = signer
    app.state.rate_limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.state.auth_service = auth_service
    app.state.organisation_service = organisation_service

    with TestClient(app) as client:
        yield client
