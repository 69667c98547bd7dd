"""Single-use email verification and password reset tokens.

Only the SHA-256 hash of a token is persisted; the plaintext travels once, in
the link sent to the user.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..domain.models import TokenPurpose
from ..domain.ports.clock import Clock


@dataclass(frozen=True, slots=True)
class IssuedToken:
    purpose: TokenPurpose
    plaintext: str
    token_hash: str
    expires_at: datetime


class ActionTokenGenerator:
    def __init__(
        self,
        clock: Clock,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self._clock = clock
        self._lifetimes = {
            TokenPurpose.EMAIL_VERIFICATION: verification_ttl,
            TokenPurpose.PASSWORD_RESET: reset_ttl,
        }

    def lifetime(self, purpose: TokenPurpose) -> timedelta:
        return self._lifetimes[purpose]

    def generate(self, purpose: TokenPurpose) -> IssuedToken:
        plaintext = secrets.token_urlsafe(32)
        return IssuedToken(
            purpose=purpose,
            plaintext=plaintext,
            token_hash=self.hash_token(plaintext),
            expires_at=self._clock.now() + self._lifetimes[purpose],
        )

    @staticmethod
    def hash_token(plaintext: str) -> str:
        return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()

    def matches(
        self,
        plaintext: str,
        stored_hash: Optional[str],
        stored_expiry: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> bool:
        """True iff ``plaintext`` hashes to ``stored_hash`` and the slot has not expired."""
        if not plaintext or not stored_hash or stored_expiry is None:
            return False
        current = now or self._clock.now()
        if current >= stored_expiry:
            return False
        return hmac.compare_digest(self.hash_token(plaintext), stored_hash)
