from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from shophub.application.services.account_service import AccountService
from shophub.core.app_factory import create_application
from shophub.core.config import Settings
from shophub.domain.models import User
from shophub.infrastructure.clock import SystemClock
from shophub.infrastructure.persistence.sqlite import SQLiteUserStore
from shophub.services.action_tokens import ActionTokenGenerator
from shophub.services.passwords import PasswordHasher
from shophub.services.session_tokens import SessionTokenService

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1n!Secret"


class FakeClock(SystemClock):
    def __init__(self) -> None:
        self._now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now += delta


class RecordingNotifier:
    """Notifier double that records links and can simulate an outage."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = False
        self.raise_error = False

    def send_verification_email(self, user: User, token: str) -> bool:
        return self._record("verification", user, token)

    def send_password_reset_email(self, user: User, token: str) -> bool:
        return self._record("reset", user, token)

    def last_token(self, kind: str) -> str:
        for sent_kind, _, token in reversed(self.sent):
            if sent_kind == kind:
                return token
        raise AssertionError(f"No {kind} email was sent")

    def _record(self, kind: str, user: User, token: str) -> bool:
        if self.raise_error:
            raise ConnectionError("SMTP relay unreachable")
        self.sent.append((kind, user.email, token))
        return not self.fail


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store(tmp_path):
    user_store = SQLiteUserStore(tmp_path / "users.db")
    yield user_store
    user_store.close()


@pytest.fixture
def account_service(store, clock, notifier) -> AccountService:
    return AccountService(
        store=store,
        hasher=PasswordHasher(rounds=4),
        session_tokens=SessionTokenService("test-secret", clock),
        action_tokens=ActionTokenGenerator(clock),
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def settings(monkeypatch, tmp_path) -> Settings:
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("JWT_SECRET", "api-test-secret")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("ADMIN_EMAIL", ADMIN_EMAIL)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    for key in ("SMTP_HOST", "SMTP_USERNAME", "SMTP_FROM_EMAIL", "CORS_ALLOW_ORIGINS"):
        monkeypatch.delenv(key, raising=False)
    return Settings()


@pytest.fixture
def app(settings, notifier, clock):
    return create_application(settings, notifier=notifier, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register(client: TestClient, email="alice@example.com", password="Passw0rd!", name="Alice"):
    return client.post("/api/auth/register", json={"email": email, "password": password, "name": name})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
