from __future__ import annotations

from app import populate
from app.config import Settings


def test_rejects_non_positive_page_count(capsys) -> None:
    assert populate.main(["--pages", "0"]) == 2
    assert "--pages must be at least 1" in capsys.readouterr().err


def test_fails_without_tmdb_key(monkeypatch, database_url) -> None:
    app_settings = Settings(_env_file=None, DATABASE_URL=database_url, TMDB_API_KEY=None)
    monkeypatch.setattr(populate, "get_settings", lambda: app_settings)

    assert populate.main(["--pages", "1"]) == 1
