# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def canon_email(s: str) -> str:
    """Canonicalise an email for storage and lookups (trim + lower)."""
    return (s or "").strip().lower()


def human_date(dt: datetime) -> str:
    if dt is None:
        return ""
    return dt.strftime("%d %b %Y at %H:%M")
