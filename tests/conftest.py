"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def database_url(tmp_path) -> str:
    """Return a URL for a throwaway SQLite catalog database."""

    return f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"


def tmdb_details(external_id: int, title: str, **overrides: Any) -> dict[str, Any]:
    """Return a TMDB-style movie detail payload."""

    payload: dict[str, Any] = {
        "id": external_id,
        "title": title,
        "overview": f"Overview of {title}",
        "release_date": "2023-07-19",
        "poster_path": f"/poster-{external_id}.jpg",
        "backdrop_path": f"/backdrop-{external_id}.jpg",
        "genres": [{"id": 28, "name": "Action"}, {"id": 18, "name": "Drama"}],
        "vote_average": 7.8,
        "vote_count": 1200,
        "popularity": 88.5,
        "runtime": 121,
        "budget": 1_000_000,
        "revenue": 5_000_000,
        "original_language": "en",
    }
    payload.update(overrides)
    return payload
