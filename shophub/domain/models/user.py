"""User domain model for the ShopHub credential store."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class UserRole(str, Enum):
    STANDARD = "standard"
    ADMIN = "admin"


class TokenPurpose(str, Enum):
    """Side-channel token kinds. Each purpose owns exactly one slot on a user."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class Address:
    """Postal address kept in the user profile."""

    FIELDS = ("street", "city", "state", "zip_code", "country")

    def __init__(
        self,
        street: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        zip_code: Optional[str] = None,
        country: Optional[str] = None,
    ):
        self.street = street
        self.city = city
        self.state = state
        self.zip_code = zip_code
        self.country = country

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in self.FIELDS}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Address"]:
        if not data:
            return None
        return cls(**{name: data.get(name) for name in cls.FIELDS})


class UserProfile:
    """Optional contact details, mutable only by the owning user."""

    def __init__(self, phone: Optional[str] = None, address: Optional[Address] = None):
        self.phone = phone
        self.address = address

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phone": self.phone,
            "address": self.address.to_dict() if self.address else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserProfile":
        data = data or {}
        return cls(phone=data.get("phone"), address=Address.from_dict(data.get("address")))


class User:
    """
    Registered account.

    Attributes:
        id: Unique identifier, ``None`` until first saved
        email: Case-normalized email address (unique)
        name: Display name
        role: Standard customer or administrator
        password_hash: Salted one-way hash; ``None`` when loaded without it
        is_active: Deactivated accounts cannot authenticate
        is_email_verified: Set once the verification link is used
        verification_token_hash / verification_expires_at: Live verification slot
        reset_token_hash / reset_expires_at: Live password reset slot
        last_login_at: Timestamp of the last successful login
        profile: Phone and postal address
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: Optional[int],
        email: str,
        name: str,
        password_hash: Optional[str] = None,
        role: UserRole = UserRole.STANDARD,
        is_active: bool = True,
        is_email_verified: bool = False,
        verification_token_hash: Optional[str] = None,
        verification_expires_at: Optional[datetime] = None,
        reset_token_hash: Optional[str] = None,
        reset_expires_at: Optional[datetime] = None,
        last_login_at: Optional[datetime] = None,
        profile: Optional[UserProfile] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        now = datetime.now(timezone.utc)
        self.id = id
        self.email = email.strip().lower()
        self.name = name
        self.password_hash = password_hash
        self.role = UserRole(role)
        self.is_active = is_active
        self.is_email_verified = is_email_verified
        self.verification_token_hash = verification_token_hash
        self.verification_expires_at = verification_expires_at
        self.reset_token_hash = reset_token_hash
        self.reset_expires_at = reset_expires_at
        self.last_login_at = last_login_at
        self.profile = profile or UserProfile()
        self.created_at = created_at or now
        self.updated_at = updated_at or now

    def token_slot(self, purpose: TokenPurpose) -> Tuple[Optional[str], Optional[datetime]]:
        if purpose is TokenPurpose.EMAIL_VERIFICATION:
            return self.verification_token_hash, self.verification_expires_at
        return self.reset_token_hash, self.reset_expires_at

    def set_token(self, purpose: TokenPurpose, token_hash: str, expires_at: datetime) -> None:
        """Store a token in the slot for ``purpose``, superseding any live one."""
        if purpose is TokenPurpose.EMAIL_VERIFICATION:
            self.verification_token_hash = token_hash
            self.verification_expires_at = expires_at
        else:
            self.reset_token_hash = token_hash
            self.reset_expires_at = expires_at

    def clear_token(self, purpose: TokenPurpose) -> None:
        if purpose is TokenPurpose.EMAIL_VERIFICATION:
            self.verification_token_hash = None
            self.verification_expires_at = None
        else:
            self.reset_token_hash = None
            self.reset_expires_at = None

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} email={self.email} role={self.role.value} "
            f"active={self.is_active} verified={self.is_email_verified}>"
        )
