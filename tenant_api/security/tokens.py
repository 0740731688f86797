"""Signing and verification of the service's HS256 JWTs."""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping

import jwt

ALGORITHM = "HS256"


class TokenSigner:
    """Issues and verifies compact HMAC-signed tokens for a single issuer.

    Secrets and TTLs are supplied per call so that access and refresh tokens can
    be minted from the same claims with different keys and lifetimes.
    """

    def __init__(self, issuer: str, *, clock: Callable[[], float] = time.time) -> None:
        self._issuer = issuer
        self._clock = clock

    def sign(self, claims: Mapping[str, Any], *, ttl_seconds: int, secret: str) -> str:
        """Create a signed JWT.

        Parameters
        ----------
        claims:
            Application claims to embed; ``iss``, ``iat`` and ``exp`` are added here.
        ttl_seconds:
            Lifetime of the token measured from now.
        secret:
            HMAC key used for the signature.

        Returns
        -------
        str
            The encoded token.
        """
        now = int(self._clock())
        payload: dict[str, Any] = {
            **claims,
            "iss": self._issuer,
            "iat": now,
            "exp": now + ttl_seconds,
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def verify(self, token: str, secret: str, *, token_type: str | None = None) -> dict[str, Any]:
        """Decode and verify a token, returning its claims.

        Raises
        ------
        jwt.PyJWTError
            Propagated when the token is expired, tampered with, signed by another
            issuer, or carries a different ``token_type`` than requested.
        """
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=self._issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        if token_type is not None and claims.get("token_type") != token_type:
            raise jwt.InvalidTokenError(f"expected {token_type} token")
        return claims
