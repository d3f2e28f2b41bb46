# Shared pytest fixtures
from __future__ import annotations

import copy
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from fleet_import.db.bulk_write import NO_MATCH, BulkWriteError, BulkWriteResult, WriteError
from fleet_import.logging.init import reset_logging
from fleet_import.models.operations import InsertOperation
from fleet_import.validation.formats import normalize_key


class FakeStore:
    """In-memory store with the same capabilities as PostgresStore.

    Natural keys are unique per table (case-insensitive), like the real
    unique indexes. Lookups compare with normalize_key, like the SQL side.
    ``fail_keys`` makes the write of matching natural keys fail with a data
    error; ``fail_append`` makes dependent writes fail.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {
            "companies": {},
            "vehicles": {},
            "personnel": {},
        }
        self.calls: list[tuple[str, str]] = []
        self.fail_keys: set[str] = set()
        self.fail_append = False
        self.commits = 0
        self.rollbacks = 0

    # -- test helpers
    def add(self, table: str, **record: Any) -> str:
        entity_id = record.pop("id", None) or str(uuid.uuid4())
        record.setdefault("active", True)
        if table == "companies":
            record.setdefault("fleet", [])
            record.setdefault("staff", [])
        self.tables[table][entity_id] = {"id": entity_id, **record}
        return entity_id

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    # -- store capabilities
    def find_by_ids(self, entity, ids):
        self.calls.append(("find_by_ids", entity.name))
        wanted = {i.lower() for i in ids}
        return [
            (rid, rec.get(entity.display_column))
            for rid, rec in self.tables[entity.table].items()
            if rid.lower() in wanted
        ]

    def find_by_names(self, entity, normalized_names):
        self.calls.append(("find_by_names", entity.name))
        wanted = set(normalized_names)
        col = entity.display_column
        return [
            (rid, rec[col])
            for rid, rec in self.tables[entity.table].items()
            if rec.get(col) and normalize_key(rec[col]) in wanted
        ]

    def list_names(self, entity):
        self.calls.append(("list_names", entity.name))
        col = entity.display_column
        return [(rid, rec.get(col)) for rid, rec in self.tables[entity.table].items() if rec.get(col)]

    def find_existing(self, entity, normalized_keys):
        self.calls.append(("find_existing", entity.name))
        wanted = set(normalized_keys)
        col = entity.natural_key
        return [
            (rid, rec[col], rec["active"])
            for rid, rec in self.tables[entity.table].items()
            if rec.get(col) and normalize_key(str(rec[col])) in wanted
        ]

    def bulk_write(self, entity, operations):
        self.calls.append(("bulk_write", entity.name))
        table = self.tables[entity.table]
        key = entity.natural_key
        inserted = modified = 0
        errors: list[WriteError] = []
        affected: dict[int, str] = {}
        for i, op in enumerate(operations):
            payload = dict(op.payload)
            key_value = str(payload.get(key, "")).lower()
            if key_value in self.fail_keys:
                errors.append(WriteError(i, "22001", f"value too long for {key}"))
                continue
            if isinstance(op, InsertOperation):
                clash = any(str(r.get(key, "")).lower() == key_value for r in table.values())
                if clash:
                    errors.append(WriteError(i, "23505", f"duplicate key value violates unique constraint on {key}"))
                    continue
                table[op.entity_id] = {"id": op.entity_id, **payload}
                if entity.table == "companies":
                    table[op.entity_id].setdefault("fleet", [])
                    table[op.entity_id].setdefault("staff", [])
                affected[i] = op.entity_id
                inserted += 1
            else:
                matched = [
                    rid for rid, r in table.items()
                    if all(r.get(c) == v for c, v in op.filter.items())
                ]
                if not matched:
                    errors.append(WriteError(i, NO_MATCH, "no inactive record matched for reactivation"))
                    continue
                table[matched[0]].update(payload)
                affected[i] = matched[0]
                modified += 1
        return BulkWriteResult(inserted, modified, errors, affected)

    def append_references(self, parent_table, column, parent_id, child_ids):
        self.calls.append(("append_references", parent_table))
        if self.fail_append:
            raise BulkWriteError(f"{parent_table}.{column}: connection lost")
        parent = self.tables[parent_table].get(parent_id)
        if parent is None:
            return 0
        current = parent.setdefault(column, [])
        for cid in sorted(set(child_ids)):
            if cid not in current:
                current.append(cid)
        return 1

    @contextmanager
    def transaction(self):
        saved = copy.deepcopy(self.tables)
        try:
            yield
        except BaseException:
            self.tables = saved
            self.rollbacks += 1
            raise
        self.commits += 1


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def company_id(store: FakeStore) -> str:
    return store.add("companies", name="Transportes del Sur", type="Propia")


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
header_row: 2
null_sentinels: ["NULL", "N/A"]
sheet_mappings:
  Vehiculos:
    entity: vehicle
  Empresas:
    entity: company
    default_active: true
  Personal:
    entity: personnel
    columns:
      Nro Legajo: file_number
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def write_workbook(path: Path, sheets: dict[str, tuple[list[str], list[list[Any]]]]) -> Path:
    """Template layout: title on row 1, header on row 2, data from row 3."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, (headers, rows) in sheets.items():
            title = [f"Plantilla {name}"] + [None] * (len(headers) - 1)
            frame = pd.DataFrame([title, headers, *rows])
            frame.to_excel(writer, sheet_name=name, header=False, index=False)
    return path


@pytest.fixture()
def workbook_factory(temp_workdir: Path):
    def factory(name: str, sheets: dict[str, tuple[list[str], list[list[Any]]]]) -> Path:
        return write_workbook(temp_workdir / "data" / name, sheets)
    return factory
