from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.account_service import AccountService
from ..domain.errors import AccountError, ErrorKind
from ..domain.ports.clock import Clock
from ..infrastructure.clock import SystemClock
from ..infrastructure.persistence.sqlite import SQLiteUserStore
from ..presentation.api.routers import admin as admin_router
from ..presentation.api.routers import auth as auth_router
from ..services.action_tokens import ActionTokenGenerator
from ..services.email_service import EmailService, Notifier
from ..services.passwords import PasswordHasher
from ..services.session_tokens import SessionTokenService

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_OR_EXPIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ALREADY_VERIFIED: status.HTTP_400_BAD_REQUEST,
}


def create_application(
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="ShopHub Accounts", lifespan=_create_lifespan(settings, notifier, clock))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )

    _register_exception_handlers(app, settings)

    app.include_router(auth_router.router)
    app.include_router(admin_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "healthy", "environment": settings.environment}

    return app


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AccountError)
    async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
        return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = []
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
            cause = error.get("ctx", {}).get("error")
            details.append(
                {
                    "field": ".".join(location),
                    "message": str(cause) if isinstance(cause, ValueError) else error.get("msg", ""),
                }
            )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": details},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        if settings.is_production:
            content: Dict[str, Any] = {"error": "Internal Server Error"}
        else:
            content = {"error": str(exc), "stack": traceback.format_exception(exc)}
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def _create_lifespan(settings: Settings, notifier: Optional[Notifier], clock: Optional[Clock]):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        system_clock = clock or SystemClock()
        user_store = SQLiteUserStore(settings.database_path)
        session_tokens = SessionTokenService(
            secret_key=settings.jwt_secret,
            clock=system_clock,
            expires_days=settings.jwt_expires_days,
            algorithm=settings.jwt_algorithm,
        )
        action_tokens = ActionTokenGenerator(
            system_clock,
            verification_ttl=settings.verification_token_ttl,
            reset_ttl=settings.reset_token_ttl,
        )
        email_notifier = notifier or EmailService(
            frontend_base_url=settings.frontend_base_url,
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            from_name=settings.email_from_name,
            verification_ttl=settings.verification_token_ttl,
            reset_ttl=settings.reset_token_ttl,
        )
        account_service = AccountService(
            store=user_store,
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            session_tokens=session_tokens,
            action_tokens=action_tokens,
            notifier=email_notifier,
            clock=system_clock,
        )
        account_service.ensure_default_admin(
            settings.admin_default_email, settings.admin_default_password
        )

        app.state.container = ApplicationContainer(  # type: ignore[attr-defined]
            settings=settings,
            clock=system_clock,
            user_store=user_store,
            session_tokens=session_tokens,
            action_tokens=action_tokens,
            notifier=email_notifier,
            account_service=account_service,
        )
        logger.info("ShopHub accounts started in %s mode", settings.environment)

        try:
            yield
        finally:
            user_store.close()

    return lifespan
