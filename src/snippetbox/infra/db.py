# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import functools
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from snippetbox.core.errors import TransientStoreError
from snippetbox.core.log import get_logger
from snippetbox.infra.models import Base

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable)


def get_engine(url: str, *, timeout: float = 3.0) -> Engine:
    """Build the process-wide engine; every store call borrows from its pool.

    `timeout` bounds how long a call may wait on a lock, a pooled connection
    or (PostgreSQL) a running statement.
    """
    if url.startswith("sqlite"):
        # sqlite3 connections are handed between threadpool workers
        return create_engine(
            url,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )
    connect_args = {}
    if url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args=connect_args,
    )


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def translate_store_errors(fn: F) -> F:
    """Surface timeouts and dropped connections as TransientStoreError."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (OperationalError, PoolTimeoutError) as exc:
            logger.warning("store_unavailable", call=fn.__qualname__, error=type(exc).__name__)
            raise TransientStoreError(str(exc)) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                logger.warning("store_connection_lost", call=fn.__qualname__)
                raise TransientStoreError(str(exc)) from exc
            raise

    return wrapper  # type: ignore[return-value]
