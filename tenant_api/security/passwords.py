"""Password hashing backed by passlib's bcrypt handler."""

from __future__ import annotations

from passlib.context import CryptContext


class PasswordHasher:
    """Salted bcrypt hashing with constant-time verification."""

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, plaintext: str) -> str:
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``hashed``; malformed hashes never match."""
        try:
            return self._context.verify(plaintext, hashed)
        except ValueError:
            return False

    def dummy_verify(self) -> None:
        """Spend the time of a real verification when there is no stored hash to check."""
        self._context.dummy_verify()
