"""Domain models for the ShopHub account service."""

from .user import Address, TokenPurpose, User, UserProfile, UserRole

__all__ = [
    "Address",
    "TokenPurpose",
    "User",
    "UserProfile",
    "UserRole",
]
