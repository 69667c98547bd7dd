import threading
from datetime import timedelta

import pytest

from shophub.domain.errors import AccountError, ErrorKind
from shophub.domain.models import Address, TokenPurpose, UserRole


def _register(account_service, email="alice@example.com", password="Passw0rd!", name="Alice"):
    return account_service.register(email, password, name)


# Registration & login ----------------------------------------------------------


def test_register_stores_only_a_hash(account_service, store):
    grant = _register(account_service)

    stored = store.get_user_by_id(grant.user.id, include_password=True)
    assert stored.password_hash != "Passw0rd!"
    assert stored.role is UserRole.STANDARD
    assert not stored.is_email_verified
    assert grant.token


def test_register_sends_verification_link(account_service, store, notifier):
    grant = _register(account_service, email="Alice@Example.com")

    kind, recipient, token = notifier.sent[-1]
    assert (kind, recipient) == ("verification", "alice@example.com")
    stored = store.get_user_by_id(grant.user.id)
    assert stored.verification_token_hash != token
    assert stored.verification_token_hash is not None


def test_register_duplicate_email_conflicts(account_service):
    _register(account_service)

    with pytest.raises(AccountError) as exc_info:
        _register(account_service, email="ALICE@example.com")

    assert exc_info.value.kind is ErrorKind.CONFLICT


@pytest.mark.parametrize("outage", ["fail", "raise_error"])
def test_register_survives_notification_outage(account_service, store, notifier, outage):
    setattr(notifier, outage, True)

    grant = _register(account_service)

    assert grant.token
    assert store.get_user_by_email("alice@example.com") is not None


def test_login_accepts_only_exact_password(account_service):
    _register(account_service)

    assert account_service.login("alice@example.com", "Passw0rd!").token
    for wrong in ("passw0rd!", "Passw0rd", "Passw0rd!!", "Pbssw0rd!"):
        with pytest.raises(AccountError) as exc_info:
            account_service.login("alice@example.com", wrong)
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED


def test_login_records_last_login(account_service, store, clock):
    grant = _register(account_service)
    clock.advance(timedelta(minutes=5))

    account_service.login("alice@example.com", "Passw0rd!")

    assert store.get_user_by_id(grant.user.id).last_login_at == clock.now()


def test_login_failures_are_indistinguishable(account_service):
    grant = _register(account_service)
    account_service.set_active(grant.user.id, False)

    messages = set()
    for email, password in [
        ("nobody@example.com", "Passw0rd!"),
        ("alice@example.com", "wrong"),
        ("alice@example.com", "Passw0rd!"),
    ]:
        with pytest.raises(AccountError) as exc_info:
            account_service.login(email, password)
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        messages.add(exc_info.value.message)

    assert messages == {"Invalid credentials"}


def test_unknown_email_still_costs_a_password_check(account_service, monkeypatch):
    _register(account_service)
    hasher = account_service._hasher
    checks = []
    original_verify = hasher.verify

    def counting_verify(password, password_hash):
        checks.append(password_hash)
        return original_verify(password, password_hash)

    monkeypatch.setattr(hasher, "verify", counting_verify)

    with pytest.raises(AccountError):
        account_service.login("nobody@example.com", "Passw0rd!")

    assert len(checks) == 1
    assert checks[0].startswith("$2")


def test_authenticate_rejects_deactivated_account(account_service):
    grant = _register(account_service)
    assert account_service.authenticate(grant.token).id == grant.user.id

    account_service.set_active(grant.user.id, False)

    with pytest.raises(AccountError) as exc_info:
        account_service.authenticate(grant.token)
    assert exc_info.value.kind is ErrorKind.UNAUTHORIZED


# Email verification ------------------------------------------------------------


def test_verification_token_is_single_use(account_service, notifier):
    _register(account_service)
    token = notifier.last_token("verification")

    user = account_service.verify_email(token)
    assert user.is_email_verified
    assert user.verification_token_hash is None

    with pytest.raises(AccountError) as exc_info:
        account_service.verify_email(token)
    assert exc_info.value.kind is ErrorKind.INVALID_OR_EXPIRED


def test_verification_token_expires(account_service, notifier, clock):
    _register(account_service)
    token = notifier.last_token("verification")
    clock.advance(timedelta(hours=24))

    with pytest.raises(AccountError) as exc_info:
        account_service.verify_email(token)

    assert exc_info.value.kind is ErrorKind.INVALID_OR_EXPIRED


def test_resend_supersedes_previous_token(account_service, notifier):
    grant = _register(account_service)
    first = notifier.last_token("verification")

    assert account_service.resend_verification(grant.user) is True
    second = notifier.last_token("verification")

    with pytest.raises(AccountError):
        account_service.verify_email(first)
    assert account_service.verify_email(second).is_email_verified


def test_resend_after_verification_is_rejected(account_service, notifier):
    grant = _register(account_service)
    account_service.verify_email(notifier.last_token("verification"))

    with pytest.raises(AccountError) as exc_info:
        account_service.resend_verification(grant.user)

    assert exc_info.value.kind is ErrorKind.ALREADY_VERIFIED


def test_resend_reports_failed_delivery(account_service, notifier):
    grant = _register(account_service)
    notifier.fail = True

    assert account_service.resend_verification(grant.user) is False


# Password reset ----------------------------------------------------------------


def test_forgot_password_for_unknown_email(account_service):
    with pytest.raises(AccountError) as exc_info:
        account_service.forgot_password("ghost@example.com")

    assert exc_info.value.kind is ErrorKind.NOT_FOUND


def test_reset_password_flow(account_service, notifier, store):
    grant = _register(account_service)
    assert account_service.forgot_password("alice@example.com") is True
    token = notifier.last_token("reset")

    reset = account_service.reset_password(token, "N3wPassw0rd!")

    assert reset.token
    assert store.get_user_by_id(grant.user.id).reset_token_hash is None
    assert account_service.login("alice@example.com", "N3wPassw0rd!").token
    with pytest.raises(AccountError):
        account_service.login("alice@example.com", "Passw0rd!")
    with pytest.raises(AccountError) as exc_info:
        account_service.reset_password(token, "An0therPass!")
    assert exc_info.value.kind is ErrorKind.INVALID_OR_EXPIRED


def test_reset_token_expires(account_service, notifier, clock):
    _register(account_service)
    account_service.forgot_password("alice@example.com")
    token = notifier.last_token("reset")
    clock.advance(timedelta(hours=1, seconds=1))

    with pytest.raises(AccountError) as exc_info:
        account_service.reset_password(token, "N3wPassw0rd!")

    assert exc_info.value.kind is ErrorKind.INVALID_OR_EXPIRED


def test_new_reset_token_invalidates_old_one(account_service, notifier):
    _register(account_service)
    account_service.forgot_password("alice@example.com")
    first = notifier.last_token("reset")
    account_service.forgot_password("alice@example.com")
    second = notifier.last_token("reset")

    with pytest.raises(AccountError):
        account_service.reset_password(first, "N3wPassw0rd!")
    assert account_service.reset_password(second, "N3wPassw0rd!").token


@pytest.mark.parametrize("outage", ["fail", "raise_error"])
def test_undelivered_reset_token_is_withdrawn(account_service, notifier, store, outage):
    grant = _register(account_service)
    setattr(notifier, outage, True)

    assert account_service.forgot_password("alice@example.com") is False

    stored = store.get_user_by_id(grant.user.id)
    assert stored.token_slot(TokenPurpose.PASSWORD_RESET) == (None, None)


def test_reset_does_not_touch_verification_slot(account_service, store):
    grant = _register(account_service)
    account_service.forgot_password("alice@example.com")

    stored = store.get_user_by_id(grant.user.id)
    assert stored.verification_token_hash is not None
    assert stored.reset_token_hash is not None


# Change password & profile -----------------------------------------------------


def test_change_password_with_wrong_current_password(account_service, store):
    grant = _register(account_service)
    before = store.get_user_by_id(grant.user.id, include_password=True).password_hash

    with pytest.raises(AccountError) as exc_info:
        account_service.change_password(grant.user, "WrongPass1!", "N3wPassw0rd!")

    assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
    assert store.get_user_by_id(grant.user.id, include_password=True).password_hash == before


def test_change_password_rehashes_and_issues_token(account_service, store):
    grant = _register(account_service)
    before = store.get_user_by_id(grant.user.id, include_password=True).password_hash

    changed = account_service.change_password(grant.user, "Passw0rd!", "N3wPassw0rd!")

    assert changed.token
    assert store.get_user_by_id(grant.user.id, include_password=True).password_hash != before
    assert account_service.login("alice@example.com", "N3wPassw0rd!").token


def test_update_profile_keeps_unspecified_fields(account_service):
    grant = _register(account_service)
    account_service.update_profile(grant.user, phone="+1 555 0100")

    updated = account_service.update_profile(
        grant.user, name="Alice Smith", address=Address(city="Springfield")
    )

    assert updated.name == "Alice Smith"
    assert updated.profile.phone == "+1 555 0100"
    assert updated.profile.address.city == "Springfield"


# Administration ----------------------------------------------------------------


def test_set_active_unknown_user(account_service):
    with pytest.raises(AccountError) as exc_info:
        account_service.set_active(12345, False)

    assert exc_info.value.kind is ErrorKind.NOT_FOUND


def test_ensure_default_admin_is_idempotent(account_service):
    created = account_service.ensure_default_admin("root@example.com", "R00t!Secret")
    again = account_service.ensure_default_admin("root@example.com", "R00t!Secret")

    assert created.role is UserRole.ADMIN
    assert created.is_email_verified
    assert again.id == created.id
    assert account_service.ensure_default_admin(None, None) is None


# Single use under concurrency ----------------------------------------------------


def _race(action, token, arguments):
    barrier = threading.Barrier(len(arguments))
    outcomes = []

    def attempt(*args):
        barrier.wait()
        try:
            action(token, *args)
        except AccountError as exc:
            outcomes.append(exc.kind)
        else:
            outcomes.append("ok")

    threads = [threading.Thread(target=attempt, args=args) for args in arguments]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def test_concurrent_resets_accept_token_once(account_service, notifier):
    _register(account_service)
    account_service.forgot_password("alice@example.com")
    token = notifier.last_token("reset")

    outcomes = _race(account_service.reset_password, token, [("NewPassA1!",), ("NewPassB1!",)])

    assert outcomes.count("ok") == 1
    assert outcomes.count(ErrorKind.INVALID_OR_EXPIRED) == 1


def test_concurrent_verifications_accept_token_once(account_service, notifier):
    _register(account_service)
    token = notifier.last_token("verification")

    outcomes = _race(account_service.verify_email, token, [(), (), ()])

    assert outcomes.count("ok") == 1
    assert outcomes.count(ErrorKind.INVALID_OR_EXPIRED) == 2


def test_reset_rejected_for_deactivated_account(account_service, notifier, store):
    grant = _register(account_service)
    account_service.forgot_password("alice@example.com")
    token = notifier.last_token("reset")
    account_service.set_active(grant.user.id, False)

    with pytest.raises(AccountError) as exc_info:
        account_service.reset_password(token, "N3wPassw0rd!")

    assert exc_info.value.kind is ErrorKind.INVALID_OR_EXPIRED
    assert exc_info.value.message == "Invalid or expired reset token"
    assert store.get_user_by_id(grant.user.id).reset_token_hash is not None
