"""Lightweight SQLite helper shared by the persistent stores."""
from __future__ import annotations

import sqlite3
from contextlib import closing, contextmanager
from typing import Any, List, Tuple


class DB:
    def __init__(self, sqlite_path: str = "fincore_state.sqlite3") -> None:
        self.sqlite_path = sqlite_path

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.sqlite_path)
        try:
            yield conn
        except Exception:
            # a failed statement leaves its write transaction open
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        with self.connect() as conn, closing(conn.cursor()) as cur:
            cur.execute(sql, params)
            conn.commit()
            return cur.rowcount

    def fetchall_dict(self, sql: str, params: Tuple[Any, ...] = ()) -> List[dict]:
        with self.connect() as conn, closing(conn.cursor()) as cur:
            cur.execute(sql, params)
            columns = [col[0] for col in cur.description]
            return [dict(zip(columns, row)) for row in cur.fetchall()]

    def fetchone_dict(self, sql: str, params: Tuple[Any, ...] = ()) -> dict | None:
        with self.connect() as conn, closing(conn.cursor()) as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
            if not row:
                return None
            columns = [col[0] for col in cur.description]
            return dict(zip(columns, row))
