from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from ..models.config_models import DatabaseConfig

"""PostgreSQL connection helpers.

接続情報の解決優先順位:
    1. `.env` (python-dotenv, override=True で既存環境変数を上書き)
    2. DATABASE_URL / PGDSN (DSN 全体をそのまま使用)
    3. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    4. config の database セクション (不足分のフォールバック)
"""

logger = logging.getLogger(__name__)

__all__ = [
    "DatabaseConnectionError",
    "build_dsn",
    "db_cursor",
    "load_env_file",
]


class DatabaseConnectionError(Exception):
    pass


def load_env_file(path: Path = Path(".env"), override: bool = True) -> bool:
    """Load .env into the process environment; False when the file is absent."""
    if not path.exists():
        return False
    return load_dotenv(dotenv_path=path, override=override)


def build_dsn(db_cfg: DatabaseConfig | None) -> str:
    db_cfg = db_cfg or DatabaseConfig()
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_cursor(db_cfg: DatabaseConfig | None) -> Iterator:
    """Yield a cursor on a fresh connection.

    autocommit is on so that the explicit BEGIN / COMMIT / ROLLBACK issued by
    PostgresStore.transaction() are the only transaction boundaries.
    """
    try:
        conn = psycopg2.connect(build_dsn(db_cfg))
    except psycopg2.Error as e:
        raise DatabaseConnectionError(f"cannot connect to database: {e}".strip()) from e
    conn.autocommit = True
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()
        conn.close()
        logger.debug("database connection closed")
