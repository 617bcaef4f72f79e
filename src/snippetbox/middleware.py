# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Request pipeline.

`Pipeline` is a single Starlette middleware that runs an ordered list of
interceptors. Each interceptor has the shape

    async def __call__(request, call_next) -> Response

and may return early instead of calling `call_next`. The default order is
Recovery, SecureHeaders, RequestLogger, SessionAttach, CSRFCheck, AuthGate.
"""

from __future__ import annotations

import hmac
import time
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from snippetbox.auth.session import (
    CSRF_KEY,
    REDIRECT_KEY,
    USER_ID_KEY,
    Session,
    SessionManager,
    sign_token,
    unsign_token,
)
from snippetbox.auth.users import UserStore
from snippetbox.core.config import Settings
from snippetbox.core.errors import CSRFMismatch, TransientStoreError
from snippetbox.core.log import get_logger

logger = get_logger(__name__)

Handler = Callable[[Request], Awaitable[Response]]
Interceptor = Callable[[Request, Handler], Awaitable[Response]]

SECURE_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; style-src 'self'; frame-ancestors 'none'",
    "Referrer-Policy": "origin-when-cross-origin",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "deny",
    "X-XSS-Protection": "0",
}

UNSAFE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
CSRF_FIELD = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

PROTECTED_PATHS = ("/snippet/create", "/user/logout", "/account")
LOGIN_PATH = "/user/login"
LOGIN_FLASH = "Please log in to continue."

RETRY_AFTER_SECONDS = 5


async def run_chain(stages: Sequence[Interceptor], request: Request, endpoint: Handler) -> Response:
    async def step(i: int, req: Request) -> Response:
        if i == len(stages):
            return await endpoint(req)
        return await stages[i](req, lambda r: step(i + 1, r))

    return await step(0, request)


class Pipeline(BaseHTTPMiddleware):
    def __init__(self, app, *, stages: Iterable[Interceptor]):
        super().__init__(app)
        self.stages: List[Interceptor] = list(stages)

    async def dispatch(self, request: Request, call_next: Handler) -> Response:
        return await run_chain(self.stages, request, call_next)


def _apply_secure_headers(response: Response) -> Response:
    for k, v in SECURE_HEADERS.items():
        response.headers[k] = v
    return response


def store_unavailable(request: Request, exc: TransientStoreError) -> Response:
    logger.error("store_unavailable", method=request.method, path=request.url.path, error=str(exc))
    return PlainTextResponse(
        "Service Unavailable",
        status_code=503,
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


class Recovery:
    """Turn any escaped exception into a bare 500; details go to the log only.

    A store that missed its deadline is reported as 503 instead, so clients
    can retry.
    """

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        try:
            return await call_next(request)
        except TransientStoreError as exc:
            return _apply_secure_headers(store_unavailable(request, exc))
        except Exception:
            logger.exception(
                "unhandled_error",
                method=request.method,
                path=request.url.path,
                remote_addr=_remote_addr(request),
            )
            response = PlainTextResponse("Internal Server Error", status_code=500, headers={"Connection": "close"})
            return _apply_secure_headers(response)


class SecureHeaders:
    async def __call__(self, request: Request, call_next: Handler) -> Response:
        response = await call_next(request)
        return _apply_secure_headers(response)


def _remote_addr(request: Request) -> str:
    return request.client.host if request.client else ""


class RequestLogger:
    async def __call__(self, request: Request, call_next: Handler) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            remote_addr=_remote_addr(request),
            proto=f"HTTP/{request.scope.get('http_version', '1.1')}",
            method=request.method,
            uri=request.url.path + (f"?{request.url.query}" if request.url.query else ""),
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


class SessionAttach:
    """Resolve the session cookie into `request.state.session`.

    A missing, forged or expired cookie simply yields a new session. The
    cookie is (re)written whenever the token changed during the request.
    """

    def __init__(
        self,
        manager: SessionManager,
        *,
        secret: str,
        cookie_name: str = "session",
        secure: bool = False,
    ):
        self.manager = manager
        self.secret = secret
        self.cookie_name = cookie_name
        self.secure = secure

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        max_age = int(self.manager.lifetime.total_seconds())
        raw = request.cookies.get(self.cookie_name, "")
        token = unsign_token(raw, secret=self.secret, max_age=max_age)
        session: Session = await run_in_threadpool(self.manager.load, token)
        request.state.session = session

        response = await call_next(request)

        if session.token != token:
            response.set_cookie(
                self.cookie_name,
                sign_token(session.token, secret=self.secret),
                max_age=max_age,
                path="/",
                httponly=True,
                samesite="lax",
                secure=self.secure,
            )
        return response


def check_csrf(expected: Optional[str], submitted: Optional[str]) -> None:
    if not expected or not submitted:
        raise CSRFMismatch()
    if not hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8")):
        raise CSRFMismatch()


async def _submitted_csrf(request: Request) -> Optional[str]:
    header = request.headers.get(CSRF_HEADER)
    if header:
        return header
    ctype = request.headers.get("content-type", "")
    if not ctype.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        return None
    # Read the body first so it is cached and replayed to the route handler.
    await request.body()
    form = await request.form()
    value = form.get(CSRF_FIELD)
    return value if isinstance(value, str) else None


class CSRFCheck:
    async def __call__(self, request: Request, call_next: Handler) -> Response:
        if request.method in UNSAFE_METHODS:
            session: Session = request.state.session
            expected = await run_in_threadpool(session.get, CSRF_KEY)
            submitted = await _submitted_csrf(request)
            try:
                check_csrf(expected, submitted)
            except CSRFMismatch:
                logger.warning("csrf_rejected", method=request.method, path=request.url.path)
                return PlainTextResponse("Bad Request", status_code=400)
        return await call_next(request)


def _is_protected(path: str, protected: Sequence[str]) -> bool:
    for p in protected:
        base = p.rstrip("/")
        if path == base or path.startswith(base + "/"):
            return True
    return False


class AuthGate:
    """Resolve `request.state.user_id`; keep anonymous requests off protected paths."""

    def __init__(
        self,
        users: UserStore,
        *,
        protected: Sequence[str] = PROTECTED_PATHS,
        login_path: str = LOGIN_PATH,
    ):
        self.users = users
        self.protected = tuple(protected)
        self.login_path = login_path

    def _resolve(self, session: Session) -> Optional[int]:
        user_id = session.user_id
        if user_id is None:
            return None
        if not self.users.exists(user_id):
            session.remove(USER_ID_KEY)
            return None
        return user_id

    def _deny(self, session: Session, request: Request) -> None:
        session.flash(LOGIN_FLASH)
        if request.method == "GET":
            session.put(REDIRECT_KEY, request.url.path)

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        session: Session = request.state.session
        user_id = await run_in_threadpool(self._resolve, session)
        request.state.user_id = user_id

        if not _is_protected(request.url.path, self.protected):
            return await call_next(request)

        if user_id is None:
            await run_in_threadpool(self._deny, session, request)
            return RedirectResponse(url=self.login_path, status_code=303)

        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store"
        return response


def default_stages(settings: Settings, *, sessions: SessionManager, users: UserStore) -> List[Interceptor]:
    return [
        Recovery(),
        SecureHeaders(),
        RequestLogger(),
        SessionAttach(
            sessions,
            secret=settings.secret_key,
            cookie_name=settings.cookie_name,
            secure=settings.cookie_secure,
        ),
        CSRFCheck(),
        AuthGate(users),
    ]
