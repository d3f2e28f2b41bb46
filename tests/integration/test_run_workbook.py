from __future__ import annotations

import json
from contextlib import contextmanager

import fleet_import.cli.__main__ as cli
from fleet_import.config.loader import load_config
from fleet_import.services.orchestrator import process_all

"""End-to-end runs over real workbooks against the in-memory store."""

COMPANY_HEADERS = ["Razón Social", "CUIT", "Tipo"]
VEHICLE_HEADERS = ["Dominio", "Tipo", "Marca", "Año", "Empresa", "Activar"]
PERSONNEL_HEADERS = ["Nombre", "Apellido", "DNI", "Tipo", "Licencia", "Nro Legajo", "Empresa"]


def _fleet_workbook(workbook_factory):
    return workbook_factory(
        "flota.xlsx",
        {
            "Vehiculos": (
                VEHICLE_HEADERS,
                [
                    ["ABC123", "Camión", "N/A", 2019, "Logística Norte", None],
                    ["AB123CD", "acoplado", "Randon", 2021, "transportes  del sur", None],
                    ["abc123", "Camión", "Scania", 2020, "Logística Norte", None],
                ],
            ),
            "Personal": (
                PERSONNEL_HEADERS,
                [
                    ["Ana", "Pérez", "30.123.456", "Conductor", "LIC-1", "L-01", "Logística Norte"],
                    ["Juan", "Gómez", "28123456", "Conductor", None, "L-02", "Logística Norte"],
                ],
            ),
            "Empresas": (
                COMPANY_HEADERS,
                [
                    ["Logística Norte", "20-12345678-6", "Propia"],
                    ["Transportes del Sur", None, "Subcontratada"],
                ],
            ),
        },
    )


def test_full_workbook_partial_failure(write_config, workbook_factory, store, temp_workdir):
    _fleet_workbook(workbook_factory)
    result = process_all(load_config(write_config), store)

    assert result.total_files == 1 and result.failed_files == 1
    assert result.total_inserted_rows == 2 + 1 + 1
    assert result.total_rejected_rows == 2 + 1
    assert result.skipped_sheets == 0

    companies = {c["name"]: c for c in store.tables["companies"].values()}
    vehicles = {v["plate"]: v for v in store.tables["vehicles"].values()}
    (person,) = store.tables["personnel"].values()
    norte, sur = companies["Logística Norte"], companies["Transportes del Sur"]
    assert vehicles["AB123CD"]["company_id"] == sur["id"]
    assert vehicles["AB123CD"]["type"] == "Acoplado"
    assert sur["fleet"] == [vehicles["AB123CD"]["id"]]
    assert norte["fleet"] == []
    assert person["national_id"] == "30123456"
    assert person["file_number"] == "L-01"
    assert norte["staff"] == [person["id"]]

    sheets = {s.sheet_name: s for s in result.file_stats[0].sheets}
    assert [s.sheet_name for s in result.file_stats[0].sheets][0] == "Empresas"
    assert sheets["Empresas"].status == "success"
    assert sheets["Vehiculos"].status == "partial"
    assert sheets["Personal"].status == "partial"

    (log,) = (temp_workdir / "logs").glob("errors-*.log")
    records = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]
    by_sheet = {(r["sheet"], r["row"]): r for r in records}
    # 同一バッチ内の重複は両方とも拒否
    assert set(by_sheet) == {("Vehiculos", 3), ("Vehiculos", 5), ("Personal", 4)}
    assert "license_number" in by_sheet[("Personal", 4)]["message"]


def test_reactivation_flow(write_config, workbook_factory, store):
    sur = store.add("companies", name="Transportes del Sur", type="Subcontratada")
    old = store.add("vehicles", plate="ABC123", type="Bitren", company_id=sur, active=False)
    workbook_factory(
        "reactivar.xlsx",
        {
            "Vehiculos": (
                VEHICLE_HEADERS,
                [
                    ["ABC123", "Camión", "Iveco", 2018, sur, "Sí"],
                    ["XYZ987", "Camión", "Iveco", 2018, "Transportes del Sur", "Sí"],
                    ["JKL321", "Camión", "Iveco", 2018, "Transportes del Sur", None],
                ],
            ),
        },
    )
    result = process_all(load_config(write_config), store)
    assert result.failed_files == 0
    assert result.total_updated_rows == 1
    assert result.total_inserted_rows == 2
    vehicles = {v["plate"]: v for v in store.tables["vehicles"].values()}
    assert vehicles["ABC123"]["id"] == old and vehicles["ABC123"]["active"] is True
    assert vehicles["ABC123"]["type"] == "Camión"
    assert vehicles["XYZ987"]["active"] is True
    # Activar 無し: default_active (false)
    assert vehicles["JKL321"]["active"] is False
    assert sorted(store.tables["companies"][sur]["fleet"]) == sorted(v["id"] for v in vehicles.values())


def test_inactive_duplicate_without_activate_flag_is_rejected(write_config, workbook_factory, store):
    sur = store.add("companies", name="Transportes del Sur", type="Subcontratada")
    store.add("vehicles", plate="ABC123", type="Bitren", company_id=sur, active=False)
    workbook_factory(
        "dup.xlsx",
        {"Vehiculos": (VEHICLE_HEADERS, [["ABC123", "Camión", None, None, "Transportes del Sur", None]])},
    )
    result = process_all(load_config(write_config), store)
    assert result.total_rejected_rows == 1
    assert result.file_stats[0].sheets[0].status == "failed"


def test_cli_run_reports_summary_and_exit_code(write_config, workbook_factory, store, monkeypatch, capsys):
    @contextmanager
    def fake_cursor(db_cfg):
        yield object()

    monkeypatch.setattr(cli, "db_cursor", fake_cursor)
    monkeypatch.setattr(cli, "PostgresStore", lambda cur, metrics_callback=None: store)
    _fleet_workbook(workbook_factory)
    assert cli.main(["--config", str(write_config)]) == cli.EXIT_PARTIAL_FAILURE
    out = capsys.readouterr().out
    assert "SUMMARY files=1/1 success=0 failed=1 inserted=4 updated=0 rejected=3 skipped_sheets=0" in out
