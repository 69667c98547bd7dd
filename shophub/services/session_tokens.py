"""Signed, time-limited session tokens."""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum

import jwt

from ..domain.errors import AccountError, ErrorKind
from ..domain.ports.clock import Clock

logger = logging.getLogger(__name__)


class TokenFailure(str, Enum):
    MALFORMED = "malformed"
    EXPIRED = "expired"
    SIGNATURE_INVALID = "signature_invalid"


class SessionTokenError(AccountError):
    """A session token that cannot authenticate anyone."""

    _MESSAGES = {
        TokenFailure.MALFORMED: "Invalid token",
        TokenFailure.EXPIRED: "Token expired",
        TokenFailure.SIGNATURE_INVALID: "Invalid token",
    }

    def __init__(self, reason: TokenFailure) -> None:
        super().__init__(ErrorKind.UNAUTHORIZED, self._MESSAGES[reason])
        self.reason = reason


class SessionTokenService:
    """Issues and verifies the JWTs clients replay on every request."""

    def __init__(
        self,
        secret_key: str,
        clock: Clock,
        expires_days: int = 7,
        algorithm: str = "HS256",
    ) -> None:
        if not secret_key:
            raise RuntimeError("JWT_SECRET is not configured.")
        if secret_key == "change-me":
            logger.warning("JWT_SECRET is using the default value. Configure a secure secret in production.")
        self._secret_key = secret_key
        self._clock = clock
        self._expires = timedelta(days=expires_days)
        self._algorithm = algorithm

    @property
    def max_age_seconds(self) -> int:
        return int(self._expires.total_seconds())

    def issue(self, user_id: int) -> str:
        now = self._clock.now()
        payload = {"sub": str(user_id), "iat": now, "exp": now + self._expires}
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> int:
        """Return the user id encoded in ``token`` or raise :class:`SessionTokenError`."""
        if not token:
            raise SessionTokenError(TokenFailure.MALFORMED)
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidSignatureError as exc:
            raise SessionTokenError(TokenFailure.SIGNATURE_INVALID) from exc
        except jwt.InvalidTokenError as exc:
            raise SessionTokenError(TokenFailure.MALFORMED) from exc

        # Expiry is checked against the injected clock rather than the wall clock.
        try:
            expires_at = int(payload["exp"])
            user_id = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise SessionTokenError(TokenFailure.MALFORMED) from exc
        if self._clock.now().timestamp() >= expires_at:
            raise SessionTokenError(TokenFailure.EXPIRED)
        return user_id
