"""Login workflow: credential verification and access/refresh token issuance."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from .contracts import LoginResult
from .errors import ErrorKind, ServiceError
from .identity import identity_to_str
from .user import User, UserStatus, UserView
from ..config import Settings
from ..repository import DocumentRepository
from ..security.passwords import PasswordHasher
from ..security.tokens import TokenSigner

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Authenticates users and mints the token pair for a new session."""

    def __init__(
        self,
        users: DocumentRepository,
        *,
        signer: TokenSigner,
        hasher: PasswordHasher,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store the user repository, signing/hashing collaborators and token settings."""
        self._users = users
        self._signer = signer
        self._hasher = hasher
        self._settings = settings
        self._clock = clock

    def login(self, email: str, password: str) -> LoginResult:
        """Verify ``email``/``password`` and issue access and refresh tokens.

        An unknown email and a wrong password fail identically with
        ``unauthorized``. A correct credential on an account that is not
        ``active`` fails with ``forbidden`` naming the account status. Only a
        successful login writes to storage: the user's last-login stamp.
        """
        user = self._find_user(email)
        if user is None:
            self._hasher.dummy_verify()
            logger.warning("login rejected: invalid credentials")
            raise ServiceError(ErrorKind.unauthorized, INVALID_CREDENTIALS)

        if not self._hasher.verify(password, user.password_hash):
            logger.warning("login rejected: invalid credentials")
            raise ServiceError(ErrorKind.unauthorized, INVALID_CREDENTIALS)

        if user.status is not UserStatus.active:
            logger.warning("login rejected for user %s with status %s", user.id, user.status.value)
            raise ServiceError(ErrorKind.forbidden, f"User is {user.status.value}")

        login_time = self._clock()
        claims: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "org_id": identity_to_str(user.org_id),
            "role_id": identity_to_str(user.role_id),
            "designation_id": identity_to_str(user.designation_id),
            "session_id": str(uuid.uuid4()),
        }
        access_token = self._signer.sign(
            {**claims, "token_type": "access"},
            ttl_seconds=self._settings.access_ttl_seconds,
            secret=self._settings.jwt_access_secret,
        )
        refresh_token = self._signer.sign(
            {**claims, "token_type": "refresh"},
            ttl_seconds=self._settings.refresh_ttl_seconds,
            secret=self._settings.jwt_refresh_secret,
        )

        stamped = self._users.find_and_update(
            user.id, {"last_login_at": login_time, "updated_at": login_time}
        )
        if stamped is None:
            logger.warning("login rejected: user %s removed during login", user.id)
            raise ServiceError(ErrorKind.unauthorized, INVALID_CREDENTIALS)
        logger.info("user %s logged in (session %s)", user.id, claims["session_id"])

        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            user=UserView.from_domain(user, last_login_at=login_time),
        )

    def _find_user(self, email: str) -> User | None:
        trimmed = email.strip()
        doc = self._users.find_one({"email": trimmed})
        if doc is None and trimmed:
            pattern = re.compile(f"^{re.escape(trimmed)}$", re.IGNORECASE)
            doc = self._users.find_one({"email": pattern})
        return User.from_document(doc) if doc is not None else None
