import pytest

from snippetbox.auth.flow import LOGGED_OUT_FLASH, PASSWORD_CHANGED_FLASH, AuthFlow
from snippetbox.auth.session import USER_ID_KEY
from snippetbox.core.errors import DuplicateEmail, InvalidCredentials, ValidationFailed


@pytest.fixture()
def auth(users) -> AuthFlow:
    return AuthFlow(users)


def test_signup_then_login(auth, users, manager):
    user_id = auth.signup("Alice", "alice@example.com", "password123", "password123")
    assert users.authenticate("alice@example.com", "password123") == user_id

    session = manager.load(None)
    before = session.token
    token = auth.login(session, "alice@example.com", "password123")
    assert token == session.token != before
    assert session.get(USER_ID_KEY) == user_id
    assert not manager.valid(before)

    with pytest.raises(InvalidCredentials):
        auth.login(manager.load(None), "alice@example.com", "wrongpass")


def test_signup_validation_is_field_addressable(auth):
    with pytest.raises(ValidationFailed) as exc:
        auth.signup("", "not-an-email", "short", "different")
    errors = exc.value.field_errors
    assert set(errors) == {"name", "email", "password", "password_confirmation"}
    assert "8 characters" in errors["password"]


def test_signup_duplicate_email(auth):
    auth.signup("Alice", "alice@example.com", "password123", "password123")
    with pytest.raises(DuplicateEmail):
        auth.signup("Alicia", "ALICE@example.com", "password456", "password456")


def test_failed_login_keeps_token_and_identity(auth, users, manager):
    users.insert("Alice", "alice@example.com", "password123")
    session = manager.load(None)
    before = session.token
    with pytest.raises(InvalidCredentials):
        auth.login(session, "nobody@example.com", "password123")
    assert session.token == before
    assert session.user_id is None


def test_login_blank_fields(auth, manager):
    with pytest.raises(ValidationFailed) as exc:
        auth.login(manager.load(None), "", "")
    assert set(exc.value.field_errors) == {"email", "password"}


def test_logout_rotates_and_clears_identity(auth, users, manager):
    users.insert("Alice", "alice@example.com", "password123")
    session = manager.load(None)
    auth.login(session, "alice@example.com", "password123")
    logged_in = session.token

    auth.logout(session)
    assert session.token != logged_in
    assert not manager.valid(logged_in)
    assert session.user_id is None
    assert session.pop_flash() == LOGGED_OUT_FLASH


def test_change_password(auth, users, manager):
    user_id = users.insert("Alice", "alice@example.com", "password123")
    session = manager.load(None)
    auth.login(session, "alice@example.com", "password123")
    before = session.token

    with pytest.raises(ValidationFailed) as exc:
        auth.change_password(session, "wrongpass", "newpassword1", "newpassword1")
    assert "current_password" in exc.value.field_errors

    auth.change_password(session, "password123", "newpassword1", "newpassword1")
    assert session.token != before
    assert session.user_id == user_id
    assert session.pop_flash() == PASSWORD_CHANGED_FLASH
    assert users.authenticate("alice@example.com", "newpassword1") == user_id


def test_login_issues_a_new_csrf_token(auth, users, manager):
    users.insert("Alice", "alice@example.com", "password123")
    session = manager.load(None)
    before = session.csrf_token
    auth.login(session, "alice@example.com", "password123")
    assert session.csrf_token != before
