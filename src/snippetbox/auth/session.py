# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Server-side sessions.

The client only ever holds the session token (signed with itsdangerous inside
the cookie); the data lives in a `SessionStore`.

Expiry is a fixed TTL: a session lives `lifetime` seconds from the moment its
token was issued, whatever the activity. `renew_token` issues a new token and
so starts a new lifetime. An expired session is indistinguishable from an
absent one.

Every mutation of one token's data runs under that token's lock. Locks are
per token, so different sessions never wait on each other. A lock entry only
exists while some thread holds or waits on it.
"""

from __future__ import annotations

import copy
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Tuple

from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session as DbSession

from snippetbox.core.errors import NotFound
from snippetbox.core.log import get_logger
from snippetbox.core.utils import utcnow
from snippetbox.infra.db import translate_store_errors
from snippetbox.infra.models import SessionRow

logger = get_logger(__name__)

USER_ID_KEY = "authenticatedUserID"
CSRF_KEY = "csrf_token"
FLASH_KEY = "flash"
REDIRECT_KEY = "redirectPathAfterLogin"

SESSION_SALT = "snippetbox.session.v1"
PURGE_EVERY = 100


def new_token() -> str:
    return secrets.token_urlsafe(32)


# ------------------ Stores ------------------


class SessionStore(Protocol):
    def find(self, token: str) -> Optional[Tuple[Dict[str, Any], datetime]]: ...

    def commit(self, token: str, data: Dict[str, Any], expiry: datetime) -> None: ...

    def delete(self, token: str) -> None: ...

    def delete_expired(self, now: datetime) -> int: ...


class MemoryStore:
    """Process-local store. Fine for a single worker and for tests."""

    def __init__(self) -> None:
        self._items: Dict[str, Tuple[Dict[str, Any], datetime]] = {}
        self._mu = threading.Lock()

    def find(self, token: str) -> Optional[Tuple[Dict[str, Any], datetime]]:
        with self._mu:
            item = self._items.get(token)
            if item is None:
                return None
            data, expiry = item
            return copy.deepcopy(data), expiry

    def commit(self, token: str, data: Dict[str, Any], expiry: datetime) -> None:
        with self._mu:
            self._items[token] = (copy.deepcopy(data), expiry)

    def delete(self, token: str) -> None:
        with self._mu:
            self._items.pop(token, None)

    def delete_expired(self, now: datetime) -> int:
        with self._mu:
            dead = [t for t, (_, exp) in self._items.items() if exp <= now]
            for t in dead:
                del self._items[t]
            return len(dead)


class SqlStore:
    """Sessions in the `sessions` table, shared by every worker on the database."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @translate_store_errors
    def find(self, token: str) -> Optional[Tuple[Dict[str, Any], datetime]]:
        with DbSession(self.engine) as s:
            row = s.execute(select(SessionRow).where(SessionRow.token == token)).scalars().first()
            if row is None:
                return None
            return dict(row.data or {}), row.expiry

    @translate_store_errors
    def commit(self, token: str, data: Dict[str, Any], expiry: datetime) -> None:
        with DbSession(self.engine) as s:
            row = s.get(SessionRow, token)
            if row is None:
                s.add(SessionRow(token=token, data=dict(data), expiry=expiry))
            else:
                row.data = dict(data)
                row.expiry = expiry
            s.commit()

    @translate_store_errors
    def delete(self, token: str) -> None:
        with DbSession(self.engine) as s:
            s.execute(delete(SessionRow).where(SessionRow.token == token))
            s.commit()

    @translate_store_errors
    def delete_expired(self, now: datetime) -> int:
        with DbSession(self.engine) as s:
            res = s.execute(delete(SessionRow).where(SessionRow.expiry <= now))
            s.commit()
            return int(res.rowcount or 0)


# ------------------ Manager ------------------


class SessionManager:
    def __init__(
        self,
        store: SessionStore,
        *,
        lifetime: int = 12 * 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.lifetime = timedelta(seconds=int(lifetime))
        self.clock = clock
        # token -> [lock, number of threads holding or waiting on it]
        self._locks: Dict[str, List[Any]] = {}
        self._locks_mu = threading.Lock()
        self._created = 0

    @contextmanager
    def _lock(self, token: str) -> Iterator[None]:
        with self._locks_mu:
            entry = self._locks.get(token)
            if entry is None:
                entry = self._locks[token] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_mu:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[token]

    def _read(self, token: str) -> Optional[Tuple[Dict[str, Any], datetime]]:
        """Live data for token, or None. Caller holds the token lock."""
        if not token:
            return None
        item = self.store.find(token)
        if item is None:
            return None
        data, expiry = item
        if expiry <= self.clock():
            self.store.delete(token)
            return None
        return data, expiry

    def _require(self, token: str) -> Tuple[Dict[str, Any], datetime]:
        item = self._read(token)
        if item is None:
            raise NotFound("session")
        return item

    def create(self, data: Optional[Dict[str, Any]] = None) -> str:
        token = new_token()
        payload = dict(data or {})
        payload.setdefault(CSRF_KEY, secrets.token_urlsafe(32))
        self.store.commit(token, payload, self.clock() + self.lifetime)
        with self._locks_mu:
            self._created += 1
            due = self._created % PURGE_EVERY == 0
        if due:
            self.purge_expired()
        return token

    def load(self, token: Optional[str]) -> "Session":
        """Handle on the live session for token, or on a brand-new one."""
        if self.valid(token):
            return Session(self, token)
        return Session(self, self.create(), is_new=True)

    def valid(self, token: Optional[str]) -> bool:
        if not token:
            return False
        with self._lock(token):
            return self._read(token) is not None

    def get(self, token: str, key: str, default: Any = None) -> Any:
        with self._lock(token):
            item = self._read(token)
            if item is None:
                return default
            return item[0].get(key, default)

    def put(self, token: str, key: str, value: Any) -> None:
        with self._lock(token):
            data, expiry = self._require(token)
            data[key] = value
            self.store.commit(token, data, expiry)

    def remove(self, token: str, key: str) -> None:
        with self._lock(token):
            data, expiry = self._require(token)
            if key in data:
                del data[key]
                self.store.commit(token, data, expiry)

    def pop(self, token: str, key: str, default: Any = None) -> Any:
        with self._lock(token):
            item = self._read(token)
            if item is None:
                return default
            data, expiry = item
            if key not in data:
                return default
            value = data.pop(key)
            self.store.commit(token, data, expiry)
            return value

    def update(self, token: str, key: str, fn: Callable[[Any], Any]) -> Any:
        """Atomically replace data[key] with fn(data.get(key)); returns the new value."""
        with self._lock(token):
            data, expiry = self._require(token)
            value = fn(data.get(key))
            if key not in data or data[key] != value:
                data[key] = value
                self.store.commit(token, data, expiry)
            return value

    def renew_token(self, old_token: str) -> str:
        """Move the data to a fresh token; the old token stops working at once."""
        with self._lock(old_token):
            item = self._read(old_token)
            data = item[0] if item else {}
            token = self.create(data)
            self.store.delete(old_token)
        return token

    def destroy(self, token: str) -> None:
        with self._lock(token):
            self.store.delete(token)

    def purge_expired(self) -> int:
        n = self.store.delete_expired(self.clock())
        if n:
            logger.info("sessions_purged", count=n)
        return n


class Session:
    """Request-scoped handle on one session.

    Follows the token through renewals so the cookie can be rewritten at the
    end of the request.
    """

    def __init__(self, manager: SessionManager, token: str, *, is_new: bool = False):
        self.manager = manager
        self._token = token
        self.is_new = is_new
        self.rotated = False

    @property
    def token(self) -> str:
        return self._token

    def get(self, key: str, default: Any = None) -> Any:
        return self.manager.get(self._token, key, default)

    def put(self, key: str, value: Any) -> None:
        self.manager.put(self._token, key, value)

    def remove(self, key: str) -> None:
        self.manager.remove(self._token, key)

    def pop(self, key: str, default: Any = None) -> Any:
        return self.manager.pop(self._token, key, default)

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        return self.manager.update(self._token, key, fn)

    def renew_token(self) -> str:
        self._token = self.manager.renew_token(self._token)
        self.rotated = True
        return self._token

    def destroy(self) -> str:
        """Drop every key and move this handle onto a new anonymous session."""
        self.manager.destroy(self._token)
        self._token = self.manager.create()
        self.rotated = True
        return self._token

    @property
    def user_id(self) -> Optional[int]:
        v = self.get(USER_ID_KEY)
        return int(v) if v is not None else None

    @property
    def csrf_token(self) -> str:
        return self.update(CSRF_KEY, lambda v: v or secrets.token_urlsafe(32))

    def rotate_csrf_token(self) -> str:
        return self.update(CSRF_KEY, lambda v: secrets.token_urlsafe(32))

    def flash(self, message: str) -> None:
        self.put(FLASH_KEY, message)

    def pop_flash(self) -> str:
        return self.pop(FLASH_KEY, "") or ""


# ------------------ Cookie ------------------


def _serializer(secret: str) -> URLSafeTimedSerializer:
    if not secret:
        raise RuntimeError("Missing secret key for session cookies")
    return URLSafeTimedSerializer(secret_key=secret, salt=SESSION_SALT)


def sign_token(token: str, *, secret: str) -> str:
    return _serializer(secret).dumps(token)


def unsign_token(value: str, *, secret: str, max_age: int) -> Optional[str]:
    if not value:
        return None
    try:
        token = _serializer(secret).loads(value, max_age=max_age)
    except BadSignature:
        return None
    token = str(token or "").strip()
    return token or None
