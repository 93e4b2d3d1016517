"""SQLite access layer for the read-only furniture catalog."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sqlite3
from typing import Any

from furniture_finder.catalog import CatalogItem


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CatalogDB:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS catalog_products (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT '',
                    type TEXT NOT NULL DEFAULT '',
                    price REAL NOT NULL DEFAULT 0,
                    width REAL NOT NULL DEFAULT 0,
                    height REAL NOT NULL DEFAULT 0,
                    depth REAL NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_catalog_category ON catalog_products(category);
                CREATE INDEX IF NOT EXISTS idx_catalog_type ON catalog_products(type);
                CREATE INDEX IF NOT EXISTS idx_catalog_price ON catalog_products(price);
                """
            )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> CatalogItem:
        return CatalogItem(
            id=str(row["id"]),
            title=row["title"],
            description=row["description"],
            category=row["category"],
            type=row["type"],
            price=float(row["price"]),
            width=float(row["width"]),
            height=float(row["height"]),
            depth=float(row["depth"]),
        )

    def upsert_catalog(self, items: list[CatalogItem]) -> int:
        timestamp = _utc_now()
        payload: list[tuple[Any, ...]] = [
            (
                item.id,
                item.title,
                item.description,
                item.category,
                item.type,
                item.price,
                item.width,
                item.height,
                item.depth,
                timestamp,
            )
            for item in items
        ]

        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO catalog_products (
                    id, title, description, category, type,
                    price, width, height, depth, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title=excluded.title,
                    description=excluded.description,
                    category=excluded.category,
                    type=excluded.type,
                    price=excluded.price,
                    width=excluded.width,
                    height=excluded.height,
                    depth=excluded.depth,
                    updated_at=excluded.updated_at
                """,
                payload,
            )
        return len(payload)

    def fetch_all(self) -> list[CatalogItem]:
        # seq keeps first-insert order so the candidate cap is reproducible
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, title, description, category, type, price, width, height, depth
                FROM catalog_products
                ORDER BY seq ASC
                """
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def get_product(self, product_id: str) -> CatalogItem | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, title, description, category, type, price, width, height, depth
                FROM catalog_products
                WHERE id = ?
                """,
                (product_id,),
            ).fetchone()
        return self._row_to_item(row) if row else None

    def count_products(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM catalog_products").fetchone()
        return int(row["total"]) if row else 0
