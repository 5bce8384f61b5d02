from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

import database
from config import Settings
from errors import PersistenceError


def _settings(database_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        timezone="Asia/Tokyo",
        income_category_name="Income",
        masked_category_label="Personal expense",
        backup_enabled=False,
        backup_path=Path("unused.csv"),
        scheduler_identity="system@scheduled",
    )


@pytest.fixture(autouse=True)
def fresh_engine():
    database.reset_engine()
    yield
    database.reset_engine()


def test_threads_share_one_session_factory(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'ledger.db'}"
    monkeypatch.setattr(database, "get_settings", lambda: _settings(url))

    with ThreadPoolExecutor(max_workers=8) as pool:
        factories = list(pool.map(lambda _: database.get_sessionmaker(), range(16)))

    assert all(f is factories[0] for f in factories)
    assert factories[0].kw["bind"] is database.get_engine()


def test_failed_engine_build_is_retried(tmp_path, monkeypatch) -> None:
    missing = tmp_path / "missing" / "ledger.db"
    monkeypatch.setattr(
        database, "get_settings", lambda: _settings(f"sqlite:///{missing}")
    )

    with pytest.raises(PersistenceError):
        database.get_engine()
    with pytest.raises(PersistenceError):
        database.get_sessionmaker()

    good = f"sqlite:///{tmp_path / 'ledger.db'}"
    monkeypatch.setattr(database, "get_settings", lambda: _settings(good))

    engine = database.get_engine()
    assert str(engine.url) == good
    with database.session_scope() as session:
        assert session.bind is engine
