# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Signup, login, logout and password change.

Every change of authentication state rotates the session token, so a token
seen before the change is useless afterwards.
"""

from __future__ import annotations

from snippetbox.auth.session import USER_ID_KEY, Session
from snippetbox.auth.users import UserStore
from snippetbox.core.errors import DuplicateEmail, InvalidCredentials, ValidationFailed
from snippetbox.core.forms import validate_login, validate_password_change, validate_signup
from snippetbox.core.log import get_logger

logger = get_logger(__name__)

LOGGED_OUT_FLASH = "You've been logged out successfully!"
SIGNED_UP_FLASH = "Your signup was successful. Please log in."
PASSWORD_CHANGED_FLASH = "Your password has been updated!"


class AuthFlow:
    def __init__(self, users: UserStore):
        self.users = users

    def signup(self, name: str, email: str, password: str, password_confirmation: str) -> int:
        validate_signup(name, email, password, password_confirmation)
        try:
            return self.users.insert(name, email, password)
        except DuplicateEmail:
            logger.info("signup_duplicate_email")
            raise

    def login(self, session: Session, email: str, password: str) -> str:
        """Authenticate and bind the user to a freshly issued session token."""
        validate_login(email, password)
        user_id = self.users.authenticate(email, password)
        token = session.renew_token()
        session.put(USER_ID_KEY, user_id)
        # a form token seen before login must not work after it
        session.rotate_csrf_token()
        logger.info("login", user_id=user_id)
        return token

    def logout(self, session: Session) -> str:
        user_id = session.user_id
        token = session.destroy()
        session.flash(LOGGED_OUT_FLASH)
        logger.info("logout", user_id=user_id)
        return token

    def change_password(self, session: Session, current: str, new: str, confirmation: str) -> str:
        validate_password_change(current, new, confirmation)
        user_id = session.user_id
        if user_id is None:
            raise InvalidCredentials()
        try:
            self.users.password_update(user_id, current, new)
        except InvalidCredentials:
            raise ValidationFailed({"current_password": "Current password is incorrect"})
        token = session.renew_token()
        session.flash(PASSWORD_CHANGED_FLASH)
        return token
