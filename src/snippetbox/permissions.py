# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Route dependencies exposing the request context set up by the pipeline."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from snippetbox.auth.flow import AuthFlow
from snippetbox.auth.session import Session
from snippetbox.auth.users import UserStore
from snippetbox.core.errors import Unauthenticated
from snippetbox.infra.snippet_repo import SnippetStore


def current_session(request: Request) -> Session:
    return request.state.session


def current_user_optional(request: Request) -> Optional[int]:
    return getattr(request.state, "user_id", None)


def require_user(request: Request) -> int:
    user_id = current_user_optional(request)
    if user_id is None:
        raise Unauthenticated()
    return user_id


def get_users(request: Request) -> UserStore:
    return request.app.state.users


def get_snippets(request: Request) -> SnippetStore:
    return request.app.state.snippets


def get_auth(request: Request) -> AuthFlow:
    return request.app.state.auth
