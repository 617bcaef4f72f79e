# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error kinds shared by the stores, the auth flow and the web layer."""

from __future__ import annotations

from typing import Dict, List, Optional


class SnippetboxError(Exception):
    """Base class for every error the application raises on purpose."""


class ValidationFailed(SnippetboxError):
    """User-correctable input problem, addressable per form field."""

    def __init__(
        self,
        field_errors: Optional[Dict[str, str]] = None,
        non_field_errors: Optional[List[str]] = None,
    ):
        self.field_errors: Dict[str, str] = dict(field_errors or {})
        self.non_field_errors: List[str] = list(non_field_errors or [])
        parts = [f"{k}: {v}" for k, v in self.field_errors.items()] + self.non_field_errors
        super().__init__("; ".join(parts) or "validation failed")


class NotFound(SnippetboxError):
    """Record absent, or present but no longer visible (expired snippet)."""


class DuplicateEmail(SnippetboxError):
    pass


class InvalidCredentials(SnippetboxError):
    """Wrong password or unknown email. The two cases are never told apart."""


class CSRFMismatch(SnippetboxError):
    pass


class Unauthenticated(SnippetboxError):
    pass


class TransientStoreError(SnippetboxError):
    """The data store timed out or dropped the connection; retrying may help."""
