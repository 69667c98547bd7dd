from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.account_service import AccountService
from ...core.config import Settings
from ...core.dependencies import get_account_service, get_settings
from ...domain.errors import AccountError, ErrorKind
from ...domain.models import User, UserRole

_bearer_scheme = HTTPBearer(auto_error=False)


def _session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
) -> Optional[str]:
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    account_service: AccountService = Depends(get_account_service),
    settings: Settings = Depends(get_settings),
) -> User:
    """Authenticate from the bearer header, falling back to the session cookie."""
    token = _session_token(request, credentials, settings)
    if not token:
        raise AccountError(ErrorKind.UNAUTHORIZED, "Not authorized, no token provided")
    return account_service.authenticate(token)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    account_service: AccountService = Depends(get_account_service),
    settings: Settings = Depends(get_settings),
) -> Optional[User]:
    """Resolve the session user if there is one; anonymous requests get ``None``."""
    token = _session_token(request, credentials, settings)
    if not token:
        return None
    try:
        return account_service.authenticate(token)
    except AccountError:
        return None


def require_role(*roles: UserRole) -> Callable[..., User]:
    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise AccountError(ErrorKind.FORBIDDEN, "You do not have permission to perform this action")
        return user

    return dependency


def require_verified_email(user: User = Depends(get_current_user)) -> User:
    if not user.is_email_verified:
        raise AccountError(
            ErrorKind.FORBIDDEN, "Please verify your email before accessing this resource"
        )
    return user


require_admin_user = require_role(UserRole.ADMIN)
