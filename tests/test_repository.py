from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone

from tenant_api.domain.organisation import OrganisationStatus
from tenant_api.repository import (
    ORGANISATIONS,
    USERS,
    build_filter,
    decode_document,
    encode_document,
)


def test_encode_document_serialises_domain_values_and_drops_identity():
    created = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    org_id = uuid.uuid4()

    body = encode_document(
        {
            "id": uuid.uuid4(),
            "status": OrganisationStatus.archived,
            "created_at": created,
            "org_id": org_id,
            "name": "Acme",
        }
    )

    assert body == {
        "status": "archived",
        "created_at": "2024-05-01T12:30:00+00:00",
        "org_id": str(org_id),
        "name": "Acme",
    }


def test_decode_document_restores_typed_fields():
    row_id = uuid.uuid4()
    org_id = uuid.uuid4()

    doc = decode_document(
        USERS,
        row_id,
        {
            "email": "jane@example.com",
            "org_id": str(org_id),
            "role_id": None,
            "last_login_at": "2024-05-01T12:30:00+00:00",
        },
    )

    assert doc["id"] == row_id
    assert doc["org_id"] == org_id
    assert doc["role_id"] is None
    assert doc["last_login_at"] == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def test_build_filter_without_criteria_matches_everything():
    _, params = build_filter(None)
    assert params == []


def test_build_filter_uses_containment_for_plain_values():
    _, params = build_filter({"status": OrganisationStatus.active})
    assert [param.obj for param in params] == [{"status": "active"}]


def test_build_filter_passes_pattern_source_for_regex_values():
    _, params = build_filter(
        {"email": re.compile(r"^jane\.doe@example\.com$", re.IGNORECASE), "status": "active"}
    )
    assert params[0] == r"^jane\.doe@example\.com$"
    assert params[1].obj == {"status": "active"}


def test_collections_declare_unique_indexes():
    assert ORGANISATIONS.unique_indexes == (("organisations_slug_key", "doc->>'slug'"),)
    assert USERS.unique_indexes == (("users_email_key", "lower(doc->>'email')"),)
