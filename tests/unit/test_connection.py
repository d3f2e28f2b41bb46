from __future__ import annotations

from pathlib import Path

import pytest

from fleet_import.db.connection import build_dsn, load_env_file
from fleet_import.models.config_models import DatabaseConfig

_PG_VARS = ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _PG_VARS:
        monkeypatch.delenv(var, raising=False)


def test_dsn_from_config_fallback():
    cfg = DatabaseConfig(host="db", port=6543, user="u", password="p", database="fleet")
    assert build_dsn(cfg) == "host=db port=6543 user=u dbname=fleet password=p"


def test_environment_overrides_config(monkeypatch):
    monkeypatch.setenv("PGHOST", "envhost")
    monkeypatch.setenv("PGUSER", "envuser")
    assert build_dsn(DatabaseConfig(host="db", user="u")) == "host=envhost port=5432 user=envuser dbname=postgres"


def test_database_url_wins(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://x@y/z")
    assert build_dsn(DatabaseConfig(dsn="host=ignored")) == "postgresql://x@y/z"
    assert build_dsn(None) == "postgresql://x@y/z"


def test_env_file_overrides_process_env(temp_workdir: Path, monkeypatch):
    monkeypatch.setenv("PGHOST", "before")
    (temp_workdir / ".env").write_text("PGHOST=from_dotenv\n", encoding="utf-8")
    assert load_env_file(temp_workdir / ".env") is True
    assert build_dsn(None).startswith("host=from_dotenv ")
    assert load_env_file(temp_workdir / "missing.env") is False
