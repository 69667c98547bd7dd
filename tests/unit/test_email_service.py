import smtplib
from datetime import timedelta

import pytest

from shophub.domain.models import User
from shophub.services import email_service as email_module
from shophub.services.email_service import EmailService


class FakeSMTP:
    instances = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def send_message(self, msg):
        self.messages.append(msg)


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_login = False
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def user():
    return User(id=7, email="alice@example.com", name="Alice")


def _configured_service(**overrides) -> EmailService:
    options = dict(
        frontend_base_url="https://shop.example.com/",
        smtp_host="smtp.example.com",
        smtp_username="mailer",
        smtp_password="secret",
        from_email="noreply@example.com",
    )
    options.update(overrides)
    return EmailService(**options)


def test_verification_email_carries_link(user):
    service = _configured_service()

    assert service.send_verification_email(user, "abc123") is True

    message = FakeSMTP.instances[0].messages[0]
    assert message["To"] == "alice@example.com"
    assert message["Subject"] == "Verify Your Email - ShopHub"
    body = message.get_payload()[0].get_payload(decode=True).decode("utf-8")
    assert "https://shop.example.com/verify-email/abc123" in body
    assert "24 hours" in body


def test_reset_email_mentions_configured_lifetime(user):
    service = _configured_service(reset_ttl=timedelta(minutes=30))

    assert service.send_password_reset_email(user, "r3set") is True

    body = FakeSMTP.instances[0].messages[0].get_payload()[0].get_payload(decode=True).decode("utf-8")
    assert "https://shop.example.com/reset-password/r3set" in body
    assert "30 minutes" in body


def test_transport_failure_is_reported(user):
    FakeSMTP.fail_login = True
    service = _configured_service()

    assert service.send_password_reset_email(user, "r3set") is False


def test_unconfigured_transport_logs_link(user, caplog):
    service = EmailService(frontend_base_url="http://localhost:5174")

    with caplog.at_level("INFO"):
        assert service.send_verification_email(user, "dev-token") is True

    assert not FakeSMTP.instances
    assert "http://localhost:5174/verify-email/dev-token" in caplog.text
