"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import Settings


def test_defaults_match_cache_contract() -> None:
    """Cache lifetime and capacity default to five minutes and 100 entries."""

    settings = Settings(_env_file=None)

    assert settings.cache_ttl_seconds == 300
    assert settings.cache_max_entries == 100
    assert settings.sync_default_pages == 5
    assert str(settings.tmdb_api_url).startswith("https://api.themoviedb.org/3")


def test_blank_tmdb_key_is_treated_as_missing() -> None:
    settings = Settings(_env_file=None, TMDB_API_KEY="   ")

    assert settings.tmdb_api_key is None


def test_log_level_is_normalised() -> None:
    settings = Settings(_env_file=None, LOG_LEVEL="debug")

    assert settings.log_level == "DEBUG"


def test_unknown_log_level_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown log level"):
        Settings(_env_file=None, LOG_LEVEL="chatty")


@pytest.mark.parametrize(
    "overrides",
    [{"CACHE_TTL": 0}, {"CACHE_MAX_ENTRIES": 0}, {"TMDB_MAX_RETRIES": 11}],
)
def test_out_of_range_values_rejected(overrides) -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, **overrides)
