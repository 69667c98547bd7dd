from dataclasses import dataclass

from ..application.services.account_service import AccountService
from .config import Settings
from ..domain.ports.clock import Clock
from ..domain.ports.persistence import UserRepository
from ..services.action_tokens import ActionTokenGenerator
from ..services.email_service import Notifier
from ..services.session_tokens import SessionTokenService


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    clock: Clock
    user_store: UserRepository
    session_tokens: SessionTokenService
    action_tokens: ActionTokenGenerator
    notifier: Notifier
    account_service: AccountService
