"""Error taxonomy shared by the account services and the HTTP boundary."""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION_FAILED = "validation_failed"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    ALREADY_VERIFIED = "already_verified"


class AccountError(Exception):
    """Failure of an account operation, safe to show to the client."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"<AccountError kind={self.kind.value} message={self.message!r}>"
