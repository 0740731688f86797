from __future__ import annotations

import time

import jwt
import pytest

from tenant_api.security.passwords import PasswordHasher
from tenant_api.security.rate_limiter import login_rate_key
from tenant_api.security.tokens import TokenSigner

SECRET = "signing-secret"


def test_sign_adds_registered_claims():
    signer = TokenSigner("issuer-a", clock=lambda: 1_700_000_000)
    token = signer.sign({"sub": "user-1"}, ttl_seconds=60, secret=SECRET)

    claims = jwt.decode(token, SECRET, algorithms=["HS256"], options={"verify_exp": False})

    assert claims == {"sub": "user-1", "iss": "issuer-a", "iat": 1_700_000_000, "exp": 1_700_000_060}


def test_verify_round_trips_claims_and_checks_token_type():
    signer = TokenSigner("issuer-a")
    token = signer.sign({"sub": "user-1", "token_type": "access"}, ttl_seconds=60, secret=SECRET)

    assert signer.verify(token, SECRET, token_type="access")["sub"] == "user-1"
    with pytest.raises(jwt.InvalidTokenError):
        signer.verify(token, SECRET, token_type="refresh")


def test_verify_rejects_expired_token():
    signer = TokenSigner("issuer-a", clock=lambda: time.time() - 3600)
    token = signer.sign({"sub": "user-1"}, ttl_seconds=60, secret=SECRET)

    with pytest.raises(jwt.ExpiredSignatureError):
        signer.verify(token, SECRET)


def test_verify_rejects_tampered_token():
    signer = TokenSigner("issuer-a")
    token = signer.sign({"sub": "user-1"}, ttl_seconds=60, secret=SECRET)
    header, payload, signature = token.split(".")
    forged = jwt.encode({"sub": "admin", "iss": "issuer-a", "iat": 0, "exp": 2**31}, "other", algorithm="HS256")
    tampered = ".".join([header, forged.split(".")[1], signature])

    with pytest.raises(jwt.InvalidSignatureError):
        signer.verify(tampered, SECRET)


def test_verify_rejects_foreign_issuer():
    token = TokenSigner("issuer-a").sign({"sub": "user-1"}, ttl_seconds=60, secret=SECRET)

    with pytest.raises(jwt.InvalidIssuerError):
        TokenSigner("issuer-b").verify(token, SECRET)


def test_password_hasher_verifies_matching_password_only():
    hasher = PasswordHasher(rounds=4)
    hashed = hasher.hash("s3cret-pass")

    assert hashed != "s3cret-pass"
    assert hasher.verify("s3cret-pass", hashed)
    assert not hasher.verify("S3cret-pass", hashed)
    assert hasher.hash("s3cret-pass") != hashed


def test_password_hasher_treats_malformed_hash_as_mismatch():
    assert not PasswordHasher(rounds=4).verify("anything", "not-a-bcrypt-hash")


def test_login_rate_key_normalises_and_hides_email():
    key = login_rate_key("  Jane@Example.com ")

    assert key == login_rate_key("jane@example.com")
    assert key.startswith("login:")
    assert "jane" not in key
