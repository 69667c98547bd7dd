from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ...domain.errors import AccountError, ErrorKind
from ...domain.models import Address, TokenPurpose, User, UserRole
from ...domain.ports.clock import Clock
from ...domain.ports.persistence import UserRepository
from ...services.action_tokens import ActionTokenGenerator
from ...services.email_service import Notifier
from ...services.passwords import PasswordHasher
from ...services.session_tokens import SessionTokenService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(slots=True)
class SessionGrant:
    """Outcome of every operation that (re)authenticates a user."""

    user: User
    token: str


class AccountService:
    """Registration, login and the email verification / password reset lifecycle.

    All durable state lives in the credential store; the service itself keeps
    nothing between calls.
    """

    def __init__(
        self,
        store: UserRepository,
        hasher: PasswordHasher,
        session_tokens: SessionTokenService,
        action_tokens: ActionTokenGenerator,
        notifier: Notifier,
        clock: Clock,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._session_tokens = session_tokens
        self._action_tokens = action_tokens
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------
    def register(self, email: str, password: str, name: str) -> SessionGrant:
        email_clean = email.strip().lower()
        if self._store.get_user_by_email(email_clean):
            raise AccountError(ErrorKind.CONFLICT, "Email already registered")

        user = User(
            id=None,
            email=email_clean,
            name=name.strip(),
            password_hash=self._hasher.hash(password),
        )
        issued = self._action_tokens.generate(TokenPurpose.EMAIL_VERIFICATION)
        user.set_token(issued.purpose, issued.token_hash, issued.expires_at)
        user = self._store.save_user(user)
        logger.info("Registered user %s", user.id)

        # Registration stands even when the verification email cannot be delivered.
        self._dispatch(self._notifier.send_verification_email, user, issued.plaintext)
        return self._grant(user)

    def login(self, email: str, password: str) -> SessionGrant:
        user = self._store.get_user_by_email(email, include_password=True)
        if user is None:
            valid = self._hasher.dummy_verify(password)
        else:
            valid = self._hasher.verify(password, user.password_hash) and user.is_active
        if not valid:
            logger.info("Rejected login attempt for %s", email.strip().lower())
            raise AccountError(ErrorKind.UNAUTHORIZED, INVALID_CREDENTIALS)

        user.last_login_at = self._clock.now()
        user = self._store.save_user(user)
        return self._grant(user)

    def authenticate(self, token: str) -> User:
        """Resolve a session token to its active user."""
        user_id = self._session_tokens.verify(token)
        user = self._store.get_user_by_id(user_id)
        if user is None:
            raise AccountError(ErrorKind.UNAUTHORIZED, "User no longer exists")
        if not user.is_active:
            raise AccountError(ErrorKind.UNAUTHORIZED, "Account has been deactivated")
        return user

    def get_user(self, user_id: int) -> User:
        user = self._store.get_user_by_id(user_id)
        if user is None:
            raise AccountError(ErrorKind.NOT_FOUND, "User not found")
        return user

    # Email verification ---------------------------------------------------
    def verify_email(self, token: str) -> User:
        user = self._consume(
            TokenPurpose.EMAIL_VERIFICATION, token, "Invalid or expired verification token"
        )
        user.is_email_verified = True
        return self._store.save_user(user)

    def resend_verification(self, user: User) -> bool:
        """Issue a fresh verification token, superseding the previous one.

        Returns whether the email was handed to the transport.
        """
        current = self.get_user(user.id)
        if current.is_email_verified:
            raise AccountError(ErrorKind.ALREADY_VERIFIED, "Email is already verified")

        issued = self._action_tokens.generate(TokenPurpose.EMAIL_VERIFICATION)
        current.set_token(issued.purpose, issued.token_hash, issued.expires_at)
        current = self._store.save_user(current)
        return self._dispatch(self._notifier.send_verification_email, current, issued.plaintext)

    # Password management --------------------------------------------------
    def forgot_password(self, email: str) -> bool:
        """Issue a reset token and email it.

        When delivery fails the token is withdrawn again so no live reset
        token exists without a link to use it. Returns whether delivery worked.
        """
        user = self._store.get_user_by_email(email)
        if user is None:
            raise AccountError(ErrorKind.NOT_FOUND, "No user found with that email")

        issued = self._action_tokens.generate(TokenPurpose.PASSWORD_RESET)
        user.set_token(issued.purpose, issued.token_hash, issued.expires_at)
        user = self._store.save_user(user)

        if self._dispatch(self._notifier.send_password_reset_email, user, issued.plaintext):
            return True

        # A concurrent request may already have superseded this token.
        if self._store.consume_token(user.id, TokenPurpose.PASSWORD_RESET, issued.token_hash):
            logger.warning("Withdrew undelivered password reset token for user %s", user.id)
        return False

    def reset_password(self, token: str, new_password: str) -> SessionGrant:
        user = self._consume(
            TokenPurpose.PASSWORD_RESET, token, "Invalid or expired reset token", require_active=True
        )
        user.password_hash = self._hasher.hash(new_password)
        user = self._store.save_user(user)
        logger.info("Password reset for user %s", user.id)
        return self._grant(user)

    def change_password(self, user: User, current_password: str, new_password: str) -> SessionGrant:
        stored = self._store.get_user_by_id(user.id, include_password=True)
        if stored is None or not self._hasher.verify(current_password, stored.password_hash):
            raise AccountError(ErrorKind.UNAUTHORIZED, "Current password is incorrect")

        stored.password_hash = self._hasher.hash(new_password)
        stored = self._store.save_user(stored)
        logger.info("Password changed for user %s", stored.id)
        return self._grant(stored)

    # Profile & administration --------------------------------------------
    def update_profile(
        self,
        user: User,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[Address] = None,
    ) -> User:
        current = self.get_user(user.id)
        if name:
            current.name = name.strip()
        if phone is not None:
            current.profile.phone = phone
        if address is not None:
            current.profile.address = address
        return self._store.save_user(current)

    def set_active(self, user_id: int, active: bool) -> User:
        """Flip the activation flag. Accounts are never removed."""
        user = self.get_user(user_id)
        if user.is_active != active:
            user.is_active = active
            user = self._store.save_user(user)
            logger.info("User %s %s", user.id, "activated" if active else "deactivated")
        return user

    def ensure_default_admin(self, email: Optional[str], password: Optional[str]) -> Optional[User]:
        if not email or not password:
            return None
        existing = self._store.get_user_by_email(email)
        if existing:
            return existing
        logger.info("Creating default administrator account for %s", email)
        return self._store.save_user(
            User(
                id=None,
                email=email,
                name="Administrator",
                password_hash=self._hasher.hash(password),
                role=UserRole.ADMIN,
                is_email_verified=True,
            )
        )

    # Helpers --------------------------------------------------------------
    def _grant(self, user: User) -> SessionGrant:
        return SessionGrant(user=user, token=self._session_tokens.issue(user.id))

    def _consume(
        self, purpose: TokenPurpose, token: str, message: str, require_active: bool = False
    ) -> User:
        """Find the user holding ``token`` for ``purpose`` and clear the slot.

        Deactivated accounts fail like an unknown token when ``require_active``.
        """
        if not token:
            raise AccountError(ErrorKind.INVALID_OR_EXPIRED, message)
        token_hash = self._action_tokens.hash_token(token)
        user = self._store.get_user_by_token_hash(purpose, token_hash)
        if user is None:
            raise AccountError(ErrorKind.INVALID_OR_EXPIRED, message)
        stored_hash, expires_at = user.token_slot(purpose)
        if not self._action_tokens.matches(token, stored_hash, expires_at):
            raise AccountError(ErrorKind.INVALID_OR_EXPIRED, message)
        if require_active and not user.is_active:
            raise AccountError(ErrorKind.INVALID_OR_EXPIRED, message)
        consumed = self._store.consume_token(user.id, purpose, token_hash)
        if consumed is None:
            raise AccountError(ErrorKind.INVALID_OR_EXPIRED, message)
        return consumed

    @staticmethod
    def _dispatch(send: Callable[[User, str], bool], user: User, token: str) -> bool:
        try:
            delivered = send(user, token)
        except Exception:
            logger.exception("Notification to user %s failed", user.id)
            return False
        if not delivered:
            logger.warning("Notification to user %s was not delivered", user.id)
        return delivered
