# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Snippet persistence.

Expiry is a visibility filter: rows past `expires_at` stay in the table but
every read treats them as absent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Union

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from snippetbox.core.errors import NotFound
from snippetbox.core.utils import utcnow
from snippetbox.infra.db import translate_store_errors
from snippetbox.infra.models import SnippetRow

DEFAULT_LATEST_LIMIT = 10


@dataclass(frozen=True)
class Snippet:
    id: int
    title: str
    content: str
    created_at: datetime
    expires_at: datetime


def _to_snippet(row: SnippetRow) -> Snippet:
    return Snippet(
        id=int(row.id),
        title=row.title,
        content=row.content,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class SnippetStore:
    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] = utcnow):
        self.engine = engine
        self.clock = clock

    @translate_store_errors
    def insert(self, title: str, content: str, expires: Union[int, timedelta]) -> int:
        """Store a snippet; `expires` is a timedelta or a whole number of days."""
        ttl = expires if isinstance(expires, timedelta) else timedelta(days=int(expires))
        if ttl <= timedelta(0):
            raise ValueError("Snippet expiry must be in the future")
        now = self.clock()
        with Session(self.engine) as s:
            row = SnippetRow(title=title, content=content, created_at=now, expires_at=now + ttl)
            s.add(row)
            s.commit()
            return int(row.id)

    @translate_store_errors
    def get(self, snippet_id: int) -> Snippet:
        with Session(self.engine) as s:
            row = (
                s.execute(
                    select(SnippetRow).where(
                        SnippetRow.id == int(snippet_id),
                        SnippetRow.expires_at > self.clock(),
                    )
                )
                .scalars()
                .first()
            )
            if row is None:
                raise NotFound(f"snippet {snippet_id}")
            return _to_snippet(row)

    @translate_store_errors
    def latest(self, limit: int = DEFAULT_LATEST_LIMIT) -> List[Snippet]:
        with Session(self.engine) as s:
            rows = (
                s.execute(
                    select(SnippetRow)
                    .where(SnippetRow.expires_at > self.clock())
                    .order_by(SnippetRow.created_at.desc(), SnippetRow.id.desc())
                    .limit(max(1, int(limit)))
                )
                .scalars()
                .all()
            )
            return [_to_snippet(r) for r in rows]
