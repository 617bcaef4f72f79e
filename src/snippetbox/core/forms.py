# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Form field validation.

A `Validator` collects per-field messages (first message per field wins),
then raises them together as `ValidationFailed`.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable

from snippetbox.core.errors import ValidationFailed

EMAIL_RX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

MIN_PASSWORD_LENGTH = 8
MAX_TITLE_LENGTH = 100
PERMITTED_EXPIRES_DAYS = (1, 7, 365)


class Validator:
    def __init__(self) -> None:
        self.field_errors: Dict[str, str] = {}

    def valid(self) -> bool:
        return not self.field_errors

    def add_field_error(self, key: str, message: str) -> None:
        self.field_errors.setdefault(key, message)

    def check_field(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_field_error(key, message)

    def raise_if_invalid(self) -> None:
        if not self.valid():
            raise ValidationFailed(self.field_errors)


def not_blank(value: str) -> bool:
    return bool((value or "").strip())


def max_chars(value: str, n: int) -> bool:
    return len(value or "") <= n


def min_chars(value: str, n: int) -> bool:
    return len(value or "") >= n


def permitted_value(value, permitted: Iterable) -> bool:
    return value in set(permitted)


def matches(value: str, rx: re.Pattern) -> bool:
    return rx.fullmatch(value or "") is not None


def validate_snippet(title: str, content: str, expires: int) -> None:
    v = Validator()
    v.check_field(not_blank(title), "title", "This field cannot be blank")
    v.check_field(max_chars(title, MAX_TITLE_LENGTH), "title", "This field cannot be more than 100 characters long")
    v.check_field(not_blank(content), "content", "This field cannot be blank")
    v.check_field(permitted_value(expires, PERMITTED_EXPIRES_DAYS), "expires", "This field must equal 1, 7 or 365")
    v.raise_if_invalid()


def validate_signup(name: str, email: str, password: str, password_confirmation: str) -> None:
    v = Validator()
    v.check_field(not_blank(name), "name", "This field cannot be blank")
    v.check_field(not_blank(email), "email", "This field cannot be blank")
    v.check_field(matches(email, EMAIL_RX), "email", "This field must be a valid email address")
    v.check_field(not_blank(password), "password", "This field cannot be blank")
    v.check_field(
        min_chars(password, MIN_PASSWORD_LENGTH),
        "password",
        f"This field must be at least {MIN_PASSWORD_LENGTH} characters long",
    )
    v.check_field(password == password_confirmation, "password_confirmation", "Passwords do not match")
    v.raise_if_invalid()


def validate_login(email: str, password: str) -> None:
    v = Validator()
    v.check_field(not_blank(email), "email", "This field cannot be blank")
    v.check_field(matches(email, EMAIL_RX), "email", "This field must be a valid email address")
    v.check_field(not_blank(password), "password", "This field cannot be blank")
    v.raise_if_invalid()


def validate_password_change(current: str, new: str, confirmation: str) -> None:
    v = Validator()
    v.check_field(not_blank(current), "current_password", "This field cannot be blank")
    v.check_field(not_blank(new), "new_password", "This field cannot be blank")
    v.check_field(
        min_chars(new, MIN_PASSWORD_LENGTH),
        "new_password",
        f"This field must be at least {MIN_PASSWORD_LENGTH} characters long",
    )
    v.check_field(not_blank(confirmation), "new_password_confirmation", "This field cannot be blank")
    v.check_field(new == confirmation, "new_password_confirmation", "Passwords do not match")
    v.raise_if_invalid()
