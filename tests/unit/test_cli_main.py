from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pytest

import fleet_import.cli.__main__ as cli
from fleet_import.db.connection import DatabaseConnectionError


@pytest.fixture()
def fake_db(monkeypatch, store):
    @contextmanager
    def fake_cursor(db_cfg):
        yield object()

    monkeypatch.setattr(cli, "db_cursor", fake_cursor)
    monkeypatch.setattr(cli, "PostgresStore", lambda cur, metrics_callback=None: store)
    return store


def test_all_rows_ok_exit_0(write_config, workbook_factory, fake_db, capsys):
    workbook_factory("e.xlsx", {"Empresas": (["Nombre", "Tipo"], [["Acme", "Propia"]])})
    assert cli.main(["--config", str(write_config)]) == cli.EXIT_SUCCESS_ALL
    out = capsys.readouterr().out
    assert "SUMMARY files=1/1 success=1 failed=0 inserted=1 updated=0 rejected=0" in out


def test_row_errors_exit_2(write_config, workbook_factory, fake_db):
    workbook_factory("e.xlsx", {"Empresas": (["Nombre", "Tipo"], [["Acme", "Pública"]])})
    assert cli.main(["--config", str(write_config)]) == cli.EXIT_PARTIAL_FAILURE


def test_config_error_exit_1(temp_workdir: Path):
    assert cli.main(["--config", str(temp_workdir / "config" / "missing.yml")]) == cli.EXIT_FATAL


def test_missing_source_directory_exit_1(write_config, temp_workdir: Path):
    (temp_workdir / "data").rmdir()
    assert cli.main(["--config", str(write_config)]) == cli.EXIT_FATAL


def test_database_unreachable_exit_1(write_config, monkeypatch):
    @contextmanager
    def failing_cursor(db_cfg):
        raise DatabaseConnectionError("cannot connect to database: refused")
        yield  # pragma: no cover

    monkeypatch.setattr(cli, "db_cursor", failing_cursor)
    assert cli.main(["--config", str(write_config)]) == cli.EXIT_FATAL


def test_inspect_data_does_not_touch_database(write_config, workbook_factory, monkeypatch, capsys):
    def forbidden(db_cfg):
        raise AssertionError("database used")

    monkeypatch.setattr(cli, "db_cursor", forbidden)
    workbook_factory(
        "f.xlsx",
        {"Vehiculos": (["Dominio", "Tipo", "Empresa", "Color"], [["ABC123", "Camión", "Acme", "rojo"]])},
    )
    assert cli.main(["--config", str(write_config), "--inspect-data"]) == 0
    out = capsys.readouterr().out
    assert "SHEET: Vehiculos entity=vehicle" in out
    assert "unknown_columns=['Color']" in out
    assert "row 1: {plate: ABC123" in out
