"""Salted one-way password hashing."""

from typing import Optional

import bcrypt

from ..domain.errors import AccountError, ErrorKind

# bcrypt only considers the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise AccountError(ErrorKind.VALIDATION_FAILED, "Password is too long")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        """Check ``password`` against a stored hash; a missing or malformed hash never matches."""
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def dummy_verify(self, password: str) -> bool:
        """Spend one full comparison on a hash nothing matches.

        Used when no account exists, so a miss costs as much as a wrong password.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("no-such-account")
        self.verify(password or "-", self._dummy_hash)
        return False
