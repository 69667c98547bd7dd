"""API router for registration, login and the credential lifecycle."""

from fastapi import APIRouter, Depends, Response, status

from ....application.services.account_service import AccountService, SessionGrant
from ....core.config import Settings
from ....core.dependencies import get_account_service, get_session_tokens, get_settings
from ....domain.models import User
from ....services.session_tokens import SessionTokenService
from ...api.cookies import clear_session_cookie, set_session_cookie
from ...api.dependencies import get_current_user
from ...api.schemas.auth import (
    ChangePasswordRequest,
    DeliveryResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
    UpdateProfileRequest,
    UserDetail,
    UserResponse,
    UserSummary,
)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _session_response(
    grant: SessionGrant,
    response: Response,
    settings: Settings,
    session_tokens: SessionTokenService,
) -> SessionResponse:
    """Deliver the session token both in the body and as an http-only cookie."""
    set_session_cookie(response, grant.token, settings, session_tokens.max_age_seconds)
    return SessionResponse(token=grant.token, user=UserSummary.from_user(grant.user))


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    response: Response,
    account_service: AccountService = Depends(get_account_service),
    session_tokens: SessionTokenService = Depends(get_session_tokens),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    grant = account_service.register(payload.email, payload.password, payload.name)
    return _session_response(grant, response, settings, session_tokens)


@router.post("/login", response_model=SessionResponse)
def login(
    payload: LoginRequest,
    response: Response,
    account_service: AccountService = Depends(get_account_service),
    session_tokens: SessionTokenService = Depends(get_session_tokens),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    grant = account_service.login(payload.email, payload.password)
    return _session_response(grant, response, settings, session_tokens)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    _: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Clear the session cookie. Issued tokens stay valid until they expire."""
    clear_session_cookie(response, settings)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse(user=UserDetail.from_user(user))


@router.put("/update-profile", response_model=UserResponse)
def update_profile(
    payload: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    account_service: AccountService = Depends(get_account_service),
) -> UserResponse:
    updated = account_service.update_profile(
        user,
        name=payload.name,
        phone=payload.phone,
        address=payload.address.to_domain() if payload.address else None,
    )
    return UserResponse(user=UserDetail.from_user(updated))


@router.get("/verify-email/{token}", response_model=MessageResponse)
def verify_email(
    token: str,
    account_service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    account_service.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=DeliveryResponse)
def resend_verification(
    user: User = Depends(get_current_user),
    account_service: AccountService = Depends(get_account_service),
) -> DeliveryResponse:
    if account_service.resend_verification(user):
        return DeliveryResponse(email_sent=True, message="Verification email sent")
    return DeliveryResponse(
        email_sent=False,
        message="Verification email could not be sent. Please try again later.",
    )


@router.post("/forgot-password", response_model=DeliveryResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    account_service: AccountService = Depends(get_account_service),
) -> DeliveryResponse:
    if account_service.forgot_password(payload.email):
        return DeliveryResponse(email_sent=True, message="Password reset email sent")
    return DeliveryResponse(
        email_sent=False,
        message="Password reset email could not be sent. Please try again later.",
    )


@router.post("/reset-password", response_model=SessionResponse)
def reset_password(
    payload: ResetPasswordRequest,
    response: Response,
    account_service: AccountService = Depends(get_account_service),
    session_tokens: SessionTokenService = Depends(get_session_tokens),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    grant = account_service.reset_password(payload.token, payload.password)
    return _session_response(grant, response, settings, session_tokens)


@router.put("/change-password", response_model=SessionResponse)
def change_password(
    payload: ChangePasswordRequest,
    response: Response,
    user: User = Depends(get_current_user),
    account_service: AccountService = Depends(get_account_service),
    session_tokens: SessionTokenService = Depends(get_session_tokens),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    grant = account_service.change_password(user, payload.current_password, payload.new_password)
    return _session_response(grant, response, settings, session_tokens)
