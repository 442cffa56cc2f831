"""Module executed when running ``python -m moviecatalog``.

``python -m moviecatalog`` serves the API; ``python -m moviecatalog populate
--pages N`` imports TMDB listings and exits.
"""

from __future__ import annotations

import sys

import uvicorn

from app.config import settings


def main(argv: list[str] | None = None) -> int:
    """Start the uvicorn server, or run the populate command."""

    args = sys.argv[1:] if argv is None else argv
    if args and args[0] == "populate":
        from app.populate import main as populate_main

        return populate_main(args[1:])

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    raise SystemExit(main())
