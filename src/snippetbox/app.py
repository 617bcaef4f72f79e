# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.engine import Engine

from snippetbox.auth.flow import SIGNED_UP_FLASH, AuthFlow
from snippetbox.auth.session import REDIRECT_KEY, MemoryStore, Session, SessionManager, SqlStore
from snippetbox.auth.users import UserStore
from snippetbox.core.config import Settings, load_settings
from snippetbox.core.errors import (
    DuplicateEmail,
    InvalidCredentials,
    NotFound,
    TransientStoreError,
    Unauthenticated,
    ValidationFailed,
)
from snippetbox.core.forms import validate_snippet
from snippetbox.core.log import configure_logging, get_logger
from snippetbox.core.utils import human_date
from snippetbox.infra.db import get_engine, init_db
from snippetbox.infra.snippet_repo import SnippetStore
from snippetbox.middleware import LOGIN_PATH, Pipeline, default_stages, store_unavailable
from snippetbox.permissions import (
    current_session,
    get_auth,
    get_snippets,
    get_users,
    require_user,
)

logger = get_logger(__name__)

BASE_DIR = Path(__file__).resolve().parent

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["human_date"] = human_date

SNIPPET_CREATED_FLASH = "Snippet successfully created!"
BAD_CREDENTIALS = "Email or password is incorrect"
EMAIL_IN_USE = "Email address is already in use"


def _render(request: Request, template_name: str, ctx: Optional[dict] = None, *, status_code: int = 200):
    """TemplateResponse wrapper injecting session-derived page state.

    Reading the flash message here consumes it.
    """
    session: Session = request.state.session
    base_ctx = {
        "current_year": datetime.now().year,
        "flash": session.pop_flash(),
        "is_authenticated": getattr(request.state, "user_id", None) is not None,
        "csrf_token": session.csrf_token,
        "form": {},
        "field_errors": {},
        "non_field_errors": [],
    }
    merged = {**base_ctx, **(ctx or {})}
    return templates.TemplateResponse(request, template_name, merged, status_code=status_code)


def _form_error(request: Request, template_name: str, form: dict, exc: ValidationFailed):
    return _render(
        request,
        template_name,
        {"form": form, "field_errors": exc.field_errors, "non_field_errors": exc.non_field_errors},
        status_code=422,
    )


def _parse_id(raw: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise NotFound(f"invalid id {raw!r}")
    if value < 1:
        raise NotFound(f"invalid id {raw!r}")
    return value


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return PlainTextResponse("Not Found", status_code=404)

    @app.exception_handler(Unauthenticated)
    async def _unauthenticated(request: Request, exc: Unauthenticated):
        return RedirectResponse(url=LOGIN_PATH, status_code=303)

    @app.exception_handler(TransientStoreError)
    async def _store_unavailable(request: Request, exc: TransientStoreError):
        return store_unavailable(request, exc)


def _register_routes(app: FastAPI) -> None:
    @app.get("/ping", response_class=PlainTextResponse)
    def ping():
        return "OK"

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request, snippets: SnippetStore = Depends(get_snippets)):
        return _render(request, "home.html", {"snippets": snippets.latest()})

    @app.get("/about", response_class=HTMLResponse)
    def about(request: Request):
        return _render(request, "about.html")

    @app.get("/snippet/view/{snippet_id}", response_class=HTMLResponse)
    def snippet_view(request: Request, snippet_id: str, snippets: SnippetStore = Depends(get_snippets)):
        snippet = snippets.get(_parse_id(snippet_id))
        return _render(request, "view.html", {"snippet": snippet})

    @app.get("/snippet/create", response_class=HTMLResponse)
    def snippet_create_form(request: Request, user_id: int = Depends(require_user)):
        return _render(request, "create.html", {"form": {"expires": 365}})

    @app.post("/snippet/create")
    def snippet_create(
        request: Request,
        title: str = Form(""),
        content: str = Form(""),
        expires: str = Form(""),
        user_id: int = Depends(require_user),
        snippets: SnippetStore = Depends(get_snippets),
        session: Session = Depends(current_session),
    ):
        try:
            days = int(expires)
        except ValueError:
            days = 0
        form = {"title": title, "content": content, "expires": days}
        try:
            validate_snippet(title, content, days)
        except ValidationFailed as exc:
            return _form_error(request, "create.html", form, exc)

        snippet_id = snippets.insert(title.strip(), content, days)
        session.flash(SNIPPET_CREATED_FLASH)
        return RedirectResponse(url=f"/snippet/view/{snippet_id}", status_code=303)

    @app.get("/user/signup", response_class=HTMLResponse)
    def signup_form(request: Request):
        return _render(request, "signup.html")

    @app.post("/user/signup")
    def signup(
        request: Request,
        name: str = Form(""),
        email: str = Form(""),
        password: str = Form(""),
        password_confirmation: str = Form(""),
        auth: AuthFlow = Depends(get_auth),
        session: Session = Depends(current_session),
    ):
        form = {"name": name, "email": email}
        try:
            auth.signup(name, email, password, password_confirmation)
        except ValidationFailed as exc:
            return _form_error(request, "signup.html", form, exc)
        except DuplicateEmail:
            return _form_error(request, "signup.html", form, ValidationFailed({"email": EMAIL_IN_USE}))

        session.flash(SIGNED_UP_FLASH)
        return RedirectResponse(url=LOGIN_PATH, status_code=303)

    @app.get("/user/login", response_class=HTMLResponse)
    def login_form(request: Request):
        if getattr(request.state, "user_id", None) is not None:
            return RedirectResponse(url="/", status_code=303)
        return _render(request, "login.html")

    @app.post("/user/login")
    def login(
        request: Request,
        email: str = Form(""),
        password: str = Form(""),
        auth: AuthFlow = Depends(get_auth),
        session: Session = Depends(current_session),
    ):
        form = {"email": email}
        try:
            auth.login(session, email, password)
        except ValidationFailed as exc:
            return _form_error(request, "login.html", form, exc)
        except InvalidCredentials:
            return _form_error(request, "login.html", form, ValidationFailed(non_field_errors=[BAD_CREDENTIALS]))

        next_path = session.pop(REDIRECT_KEY) or "/snippet/create"
        if not str(next_path).startswith("/") or str(next_path).startswith("//"):
            next_path = "/snippet/create"
        return RedirectResponse(url=next_path, status_code=303)

    @app.post("/user/logout")
    def logout(
        user_id: int = Depends(require_user),
        auth: AuthFlow = Depends(get_auth),
        session: Session = Depends(current_session),
    ):
        auth.logout(session)
        return RedirectResponse(url="/", status_code=303)

    @app.get("/account/view", response_class=HTMLResponse)
    def account_view(
        request: Request,
        user_id: int = Depends(require_user),
        users: UserStore = Depends(get_users),
    ):
        return _render(request, "account.html", {"user": users.get(user_id)})

    @app.get("/account/password/update", response_class=HTMLResponse)
    def password_update_form(request: Request, user_id: int = Depends(require_user)):
        return _render(request, "password.html")

    @app.post("/account/password/update")
    def password_update(
        request: Request,
        current_password: str = Form(""),
        new_password: str = Form(""),
        new_password_confirmation: str = Form(""),
        user_id: int = Depends(require_user),
        auth: AuthFlow = Depends(get_auth),
        session: Session = Depends(current_session),
    ):
        try:
            auth.change_password(session, current_password, new_password, new_password_confirmation)
        except ValidationFailed as exc:
            return _form_error(request, "password.html", {}, exc)
        return RedirectResponse(url="/account/view", status_code=303)


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    users: Optional[UserStore] = None,
    snippets: Optional[SnippetStore] = None,
    sessions: Optional[SessionManager] = None,
) -> FastAPI:
    """Build the application. Collaborators may be passed in (tests do)."""
    settings = settings or load_settings()
    configure_logging(fmt=settings.log_format, level=settings.log_level)

    if engine is None:
        engine = get_engine(settings.database_url, timeout=settings.store_timeout)
    init_db(engine)

    users = users or UserStore(engine)
    snippets = snippets or SnippetStore(engine)
    if sessions is None:
        store = SqlStore(engine) if settings.session_backend == "sql" else MemoryStore()
        sessions = SessionManager(store, lifetime=settings.session_lifetime)

    app = FastAPI(title="Snippetbox", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.engine = engine
    app.state.users = users
    app.state.snippets = snippets
    app.state.sessions = sessions
    app.state.auth = AuthFlow(users)

    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
    _register_error_handlers(app)
    _register_routes(app)
    app.add_middleware(Pipeline, stages=default_stages(settings, sessions=sessions, users=users))

    logger.info("app_created", database=engine.url.render_as_string(hide_password=True), sessions=settings.session_backend)
    return app
