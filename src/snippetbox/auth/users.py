# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snippetbox.auth.passwords import burn_verify, hash_password, verify_password
from snippetbox.core.errors import DuplicateEmail, InvalidCredentials, NotFound, ValidationFailed
from snippetbox.core.log import get_logger
from snippetbox.core.utils import canon_email, utcnow
from snippetbox.infra.db import translate_store_errors
from snippetbox.infra.models import UserRow

logger = get_logger(__name__)


@dataclass(frozen=True)
class User:
    id: int
    name: str
    email: str
    created_at: datetime


def _to_user(row: UserRow) -> User:
    # password_hash deliberately not carried outside the store
    return User(id=int(row.id), name=row.name, email=row.email, created_at=row.created_at)


class UserStore:
    """Credential store: user records plus password hashing/verification."""

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self.clock = clock

    @translate_store_errors
    def insert(self, name: str, email: str, password: str) -> int:
        name = (name or "").strip()
        email = canon_email(email)
        missing = {}
        for key, value in (("name", name), ("email", email), ("password", password)):
            if not value:
                missing[key] = "This field cannot be blank"
        if missing:
            raise ValidationFailed(missing)

        row = UserRow(name=name, email=email, password_hash=hash_password(password), created_at=self.clock())
        with Session(self.engine) as s:
            s.add(row)
            try:
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                raise DuplicateEmail(email) from exc
            user_id = int(row.id)
        logger.info("user_created", user_id=user_id)
        return user_id

    @translate_store_errors
    def authenticate(self, email: str, password: str) -> int:
        with Session(self.engine) as s:
            row = s.execute(select(UserRow).where(UserRow.email == canon_email(email))).scalars().first()
            if row is None:
                burn_verify(password)
                raise InvalidCredentials()
            if not verify_password(row.password_hash, password):
                raise InvalidCredentials()
            return int(row.id)

    @translate_store_errors
    def get(self, user_id: int) -> User:
        with Session(self.engine) as s:
            row = s.get(UserRow, int(user_id))
            if row is None:
                raise NotFound(f"user {user_id}")
            return _to_user(row)

    @translate_store_errors
    def exists(self, user_id: int) -> bool:
        with Session(self.engine) as s:
            return s.execute(select(UserRow.id).where(UserRow.id == int(user_id))).first() is not None

    @translate_store_errors
    def password_update(self, user_id: int, current_password: str, new_password: str) -> None:
        with Session(self.engine) as s:
            row = s.get(UserRow, int(user_id))
            if row is None:
                raise NotFound(f"user {user_id}")
            if not verify_password(row.password_hash, current_password):
                raise InvalidCredentials()
            row.password_hash = hash_password(new_password)
            s.commit()
        logger.info("password_changed", user_id=int(user_id))
