"""Snippetbox entrypoint.

Run with:
  python -m snippetbox
"""

import uvicorn

from snippetbox.core.config import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        "snippetbox.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
