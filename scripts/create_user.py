#!/usr/bin/env python3
from __future__ import annotations

from getpass import getpass

from snippetbox.auth.users import UserStore
from snippetbox.core.config import load_settings
from snippetbox.core.errors import DuplicateEmail, ValidationFailed
from snippetbox.core.forms import validate_signup
from snippetbox.infra.db import get_engine, init_db


def main() -> None:
    settings = load_settings()
    engine = get_engine(settings.database_url, timeout=settings.store_timeout)
    init_db(engine)

    name = input("Name: ").strip()
    email = input("Email: ").strip()
    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")

    try:
        validate_signup(name, email, pw1, pw2)
        user_id = UserStore(engine).insert(name, email, pw1)
    except ValidationFailed as exc:
        raise SystemExit(f"Invalid input: {exc}")
    except DuplicateEmail:
        raise SystemExit(f"Email already registered: {email}")

    print(f"OK -> user #{user_id}")


if __name__ == "__main__":
    main()
