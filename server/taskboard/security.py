"""
Authentication: password hashing, credential checks and bearer tokens.

Tokens are self-contained HS256 JWTs carrying the user id (``sub``) and role;
nothing is stored server-side, so there is no revocation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from taskboard.db import DbClient, UserRecord
from taskboard.errors import InvalidCredentials, InvalidToken
from taskboard.policy import Principal, Role

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(hours=24)


def build_password_context(rounds: int = 10) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


class AuthService:
    def __init__(
        self,
        db: DbClient,
        *,
        secret: str,
        algorithm: str = "HS256",
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        bcrypt_rounds: int = 10,
    ):
        if not secret:
            raise ValueError("A JWT secret is required")
        self.db = db
        self.secret = secret
        self.algorithm = algorithm
        self.token_ttl = token_ttl
        self._pwd_context = build_password_context(bcrypt_rounds)

    def hash_password(self, password: str) -> str:
        """Hash a plaintext password with a per-call salt."""
        return self._pwd_context.hash(password)

    def verify_password(self, password: str, hashed: str) -> bool:
        return self._pwd_context.verify(password, hashed)

    def issue_token(self, user: UserRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "sub": user.id,
            "role": user.role.value,
            "iat": int(now.timestamp()),
            "exp": int((now + self.token_ttl).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def authenticate(self, email: str, password: str) -> tuple[UserRecord, str]:
        """
        Check an email/password pair and return the user with a fresh token.

        Unknown emails and wrong passwords raise the same ``InvalidCredentials``.
        """
        user = self.db.get_user_by_email(email)
        if user is None:
            # Burn a hash comparison so unknown emails take as long as bad passwords.
            self._pwd_context.dummy_verify()
            logger.info("Login rejected: unknown email")
            raise InvalidCredentials()
        if not self.verify_password(password, user.password_hash):
            logger.info("Login rejected: bad password for user %s", user.id)
            raise InvalidCredentials()
        return user, self.issue_token(user)

    def verify(self, token: str) -> Principal:
        """Decode a bearer token. Every failure collapses into ``InvalidToken``."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
            return Principal(user_id=str(payload["sub"]), role=Role(payload["role"]))
        except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidToken() from exc
