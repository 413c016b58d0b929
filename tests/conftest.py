"""Shared fixtures: every test gets its own SQLite file under tmp_path."""

from pathlib import Path

import pytest

from core_memory.config import Settings
from core_memory.store import ContactStore


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "core_memory.sqlite3"


@pytest.fixture()
def store(db_path: Path) -> ContactStore:
    return ContactStore(str(db_path))


@pytest.fixture()
def app_settings(db_path: Path) -> Settings:
    # .env の影響を受けないよう _env_file=None で明示的に構築する
    return Settings(_env_file=None, db_path=str(db_path), strict_mode=False, mnemonic_seed=7)


@pytest.fixture()
def client(app_settings: Settings, store: ContactStore):
    from fastapi.testclient import TestClient

    from core_memory.main import create_app

    app = create_app(settings=app_settings, store=store)
    with TestClient(app) as test_client:
        yield test_client
