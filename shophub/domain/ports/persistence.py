from __future__ import annotations

from typing import Optional, Protocol

from ..models import TokenPurpose, User


class UserRepository(Protocol):
    """Credential store holding one record per registered user."""

    def get_user_by_email(self, email: str, include_password: bool = False) -> Optional[User]:
        ...

    def get_user_by_id(self, user_id: int, include_password: bool = False) -> Optional[User]:
        ...

    def get_user_by_token_hash(self, purpose: TokenPurpose, token_hash: str) -> Optional[User]:
        ...

    def consume_token(self, user_id: int, purpose: TokenPurpose, token_hash: str) -> Optional[User]:
        """Atomically clear the slot if it still holds ``token_hash``; ``None`` otherwise."""
        ...

    def save_user(self, user: User) -> User:
        ...

    def close(self) -> None:
        ...
