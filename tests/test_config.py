from zoneinfo import ZoneInfo

import pytest

from core_memory.config import DEFAULT_DB_PATH, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch):
    for name in ("CORE_MEMORY_DB_PATH", "DB_PATH", "REVIEW_TIMEZONE", "STRICT_MODE", "ALLOWED_CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)

    cfg = Settings(_env_file=None)

    assert cfg.db_path == DEFAULT_DB_PATH
    assert cfg.review_timezone == "UTC"
    assert cfg.tzinfo == ZoneInfo("UTC")
    assert cfg.recent_reviews_limit == 5
    assert cfg.allowed_cors_origins == ()
    assert cfg.strict_mode is True


def test_db_path_alias_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path):
    target = tmp_path / "people.sqlite3"
    monkeypatch.setenv("CORE_MEMORY_DB_PATH", str(target))
    assert Settings(_env_file=None).db_path == str(target)


def test_review_timezone_must_be_known():
    with pytest.raises(ValueError, match="REVIEW_TIMEZONE is not a known timezone"):
        Settings(_env_file=None, review_timezone="Mars/Olympus_Mons")


def test_review_timezone_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("REVIEW_TIMEZONE", "Europe/Berlin")
    assert Settings(_env_file=None).tzinfo == ZoneInfo("Europe/Berlin")


def test_recent_reviews_limit_must_be_positive():
    with pytest.raises(ValueError, match="RECENT_REVIEWS_LIMIT must be at least 1"):
        Settings(_env_file=None, recent_reviews_limit=0)


def test_max_review_sessions_from_environment_and_must_be_positive(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MAX_REVIEW_SESSIONS", "25")
    assert Settings(_env_file=None).max_review_sessions == 25
    with pytest.raises(ValueError, match="MAX_REVIEW_SESSIONS must be at least 1"):
        Settings(_env_file=None, max_review_sessions=0)


def test_cors_origins_are_trimmed_and_deduplicated(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(
        "ALLOWED_CORS_ORIGINS",
        " https://a.example , https://b.example,,https://a.example ",
    )
    assert Settings(_env_file=None).allowed_cors_origins == ("https://a.example", "https://b.example")
