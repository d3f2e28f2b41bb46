from __future__ import annotations

import psycopg2
import pytest

from fleet_import.db.store import PostgresStore
from fleet_import.entities import get_entity


class DummyCursor:
    def __init__(self, rows=None, fail_on=None) -> None:
        self.queries: list[tuple[str, object]] = []
        self.rows = rows or []
        self.fail_on = fail_on

    def execute(self, sql, params=None):
        self.queries.append((sql, params))
        if self.fail_on and sql.startswith(self.fail_on):
            raise psycopg2.InterfaceError("connection already closed")

    def fetchall(self):
        return self.rows


def test_lookup_queries_use_single_statement_with_any():
    cur = DummyCursor(rows=[("id-1", "Acme")])
    store = PostgresStore(cur)
    company = get_entity("company")
    assert store.find_by_names(company, ["acme", "sur"]) == [("id-1", "Acme")]
    store.find_by_ids(company, ["id-1"])
    store.find_existing(get_entity("vehicle"), ["abc123"])
    sqls = [q for q, _ in cur.queries]
    assert sqls[0] == (
        'SELECT "id"::text, "name" FROM "companies" '
        "WHERE lower(regexp_replace(trim(\"name\"), '\\s+', ' ', 'g')) = ANY(%s)"
    )
    assert cur.queries[0][1] == (["acme", "sur"],)
    assert 'WHERE "id"::text = ANY(%s)' in sqls[1]
    assert sqls[2].startswith('SELECT "id"::text, "plate", "active" FROM "vehicles"')
    assert sqls[2].endswith("WHERE lower(regexp_replace(trim(\"plate\"), '\\s+', ' ', 'g')) = ANY(%s)")


def test_empty_lookups_skip_the_database():
    cur = DummyCursor()
    store = PostgresStore(cur)
    company = get_entity("company")
    assert store.find_by_ids(company, []) == []
    assert store.find_by_names(company, []) == []
    assert store.find_existing(company, []) == []
    assert cur.queries == []


def test_transaction_commits():
    cur = DummyCursor()
    with PostgresStore(cur).transaction():
        cur.execute("SELECT 1")
    assert [q for q, _ in cur.queries] == ["BEGIN", "SELECT 1", "COMMIT"]


def test_transaction_rolls_back_and_reraises():
    cur = DummyCursor()
    with pytest.raises(RuntimeError):
        with PostgresStore(cur).transaction():
            raise RuntimeError("boom")
    assert [q for q, _ in cur.queries] == ["BEGIN", "ROLLBACK"]


def test_failed_rollback_keeps_original_error():
    cur = DummyCursor(fail_on="ROLLBACK")
    with pytest.raises(RuntimeError, match="boom"):
        with PostgresStore(cur).transaction():
            raise RuntimeError("boom")
