"""Pydantic schemas for account API endpoints."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from ....domain.models import Address, User

_PASSWORD_CLASSES = (
    re.compile(r"[a-z]"),
    re.compile(r"[A-Z]"),
    re.compile(r"\d"),
    re.compile(r"[@$!%*?&]"),
)
_NAME_PATTERN = re.compile(r"^[A-Za-z\s]+$")


def validate_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not all(pattern.search(value) for pattern in _PASSWORD_CLASSES):
        raise ValueError("Password must contain uppercase, lowercase, number, and special character")
    return value


def validate_display_name(value: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("Name must be between 2 and 50 characters")
    if not _NAME_PATTERN.match(value):
        raise ValueError("Name can only contain letters and spaces")
    return value


class CamelModel(BaseModel):
    """Exchanges camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests --------------------------------------------------------------------
class RegisterRequest(CamelModel):
    name: str
    email: EmailStr
    password: str

    check_name = field_validator("name")(validate_display_name)
    check_password = field_validator("password")(validate_password_strength)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str

    check_password = field_validator("password")(validate_password_strength)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str

    check_password = field_validator("new_password")(validate_password_strength)


class AddressPayload(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None

    def to_domain(self) -> Address:
        return Address(
            street=self.street,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
        )


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = Field(default=None, max_length=32)
    address: Optional[AddressPayload] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return validate_display_name(value) if value is not None else None


# Responses -------------------------------------------------------------------
class ProfilePayload(CamelModel):
    phone: Optional[str] = None
    address: Optional[AddressPayload] = None


class UserSummary(CamelModel):
    id: int
    name: str
    email: str
    role: str
    is_email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value,
            is_email_verified=user.is_email_verified,
        )


class UserDetail(UserSummary):
    is_active: bool
    profile: ProfilePayload
    last_login_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserDetail":
        address = user.profile.address
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value,
            is_email_verified=user.is_email_verified,
            is_active=user.is_active,
            profile=ProfilePayload(
                phone=user.profile.phone,
                address=AddressPayload(**address.to_dict()) if address else None,
            ),
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class SessionResponse(CamelModel):
    success: bool = True
    token: str
    user: UserSummary


class UserResponse(CamelModel):
    success: bool = True
    user: UserDetail


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class DeliveryResponse(CamelModel):
    success: bool = True
    email_sent: bool
    message: str
