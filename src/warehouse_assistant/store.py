# store.py
# Data access layer: read-only queries against the warehouse inventory.
#
# The executor only depends on the WarehouseStore protocol and the row shapes
# documented on each method. SqliteWarehouseStore is the reference adapter;
# it opens one connection per query and holds nothing between calls.

import sqlite3
from contextlib import closing
from datetime import datetime
from typing import Protocol


class StoreError(Exception):
    """Raised when the underlying inventory store cannot answer a query."""


class WarehouseStore(Protocol):
    def find_materials(self, fragment: str, limit: int) -> list[dict]:
        """Materials whose name contains `fragment` (case-insensitive).

        Rows: id, name, unit, stock, department.
        """
        ...

    def stock_by_location(self, material_id: str) -> list[dict]:
        """Rows: location_id, location_name, stock_quantity."""
        ...

    def top_stocks(self, limit: int) -> list[dict]:
        """Rows ordered by stock descending: name, stock, unit."""
        ...

    def transactions_since(self, material_id: str, since: datetime) -> list[dict]:
        """Rows newest first: type, quantity, timestamp, notes, pic, shift."""
        ...


SCHEMA = """
CREATE TABLE IF NOT EXISTS locations (
    id   TEXT PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS materials (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    unit       TEXT NOT NULL,
    stock      REAL NOT NULL DEFAULT 0,
    department TEXT
);
CREATE TABLE IF NOT EXISTS transactions (
    id          TEXT PRIMARY KEY,
    material_id TEXT NOT NULL REFERENCES materials(id),
    type        TEXT NOT NULL,
    quantity    REAL NOT NULL,
    timestamp   TEXT NOT NULL,
    notes       TEXT,
    pic         TEXT,
    shift       TEXT,
    location_id TEXT REFERENCES locations(id)
);
CREATE INDEX IF NOT EXISTS idx_transactions_material_time
    ON transactions (material_id, timestamp);
"""


class SqliteWarehouseStore:
    """WarehouseStore backed by a local SQLite file."""

    def __init__(self, path: str) -> None:
        self._path = path

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self._path)
        con.row_factory = sqlite3.Row
        return con

    def _query(self, sql: str, params: tuple = ()) -> list[dict]:
        try:
            with closing(self._connect()) as con:
                rows = con.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [dict(r) for r in rows]

    def init_schema(self) -> None:
        try:
            with closing(self._connect()) as con:
                con.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def find_materials(self, fragment: str, limit: int) -> list[dict]:
        return self._query(
            """
            SELECT id, name, unit, stock, department
            FROM materials
            WHERE instr(lower(name), lower(?)) > 0
            ORDER BY name
            LIMIT ?
            """,
            (fragment, limit),
        )

    def stock_by_location(self, material_id: str) -> list[dict]:
        # Net position per location: IN adds, OUT subtracts.
        return self._query(
            """
            SELECT l.id AS location_id, l.name AS location_name,
                   SUM(CASE t.type WHEN 'IN' THEN t.quantity
                                   WHEN 'OUT' THEN -t.quantity
                                   ELSE 0 END) AS stock_quantity
            FROM transactions t
            JOIN locations l ON l.id = t.location_id
            WHERE t.material_id = ?
            GROUP BY l.id, l.name
            HAVING stock_quantity != 0
            ORDER BY l.name
            """,
            (material_id,),
        )

    def top_stocks(self, limit: int) -> list[dict]:
        return self._query(
            "SELECT name, stock, unit FROM materials ORDER BY stock DESC LIMIT ?",
            (limit,),
        )

    def transactions_since(self, material_id: str, since: datetime) -> list[dict]:
        # Compared as UTC via datetime(), whatever offset or separator was stored.
        return self._query(
            """
            SELECT type, quantity, timestamp, notes, pic, shift
            FROM transactions
            WHERE material_id = ? AND datetime(timestamp) >= datetime(?)
            ORDER BY datetime(timestamp) DESC
            """,
            (material_id, since.isoformat()),
        )
