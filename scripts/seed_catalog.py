#!/usr/bin/env python3
"""Loads a JSON catalog export into the local SQLite catalog used by the search API."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from dotenv import load_dotenv
from furniture_finder.catalog import CatalogItem
from furniture_finder.config import Settings
from furniture_finder.db import CatalogDB


def load_items(source: Path) -> list[CatalogItem]:
    if not source.exists():
        raise FileNotFoundError(f"Catalog file not found: {source}")

    parsed = json.loads(source.read_text(encoding="utf-8"))
    if isinstance(parsed, dict):
        parsed = parsed.get("products", [])
    if not isinstance(parsed, list):
        raise ValueError("Catalog file must contain a JSON list of products or {'products': [...]}.")

    items: list[CatalogItem] = []
    for index, raw in enumerate(parsed):
        if not isinstance(raw, dict):
            raise ValueError(f"Catalog entry #{index} is not an object.")
        items.append(CatalogItem.from_mapping(raw))
    return items


def main() -> int:
    load_dotenv(ROOT_DIR / ".env")

    parser = argparse.ArgumentParser(description="Seed the furniture catalog database from JSON.")
    parser.add_argument("source", help="Path to a JSON file with catalog products.")
    parser.add_argument(
        "--db",
        default="",
        help="SQLite path (defaults to FF_DB_PATH or data/catalog.db).",
    )
    args = parser.parse_args()

    settings = Settings.from_env(ROOT_DIR)
    logging.basicConfig(level=settings.log_level)
    db_path = Path(os.path.expanduser(args.db)).resolve() if args.db else settings.db_path
    items = load_items(Path(os.path.expanduser(args.source)).resolve())

    db = CatalogDB(db_path)
    written = db.upsert_catalog(items)
    print(f"Upserted {written} products into {db_path} (total: {db.count_products()})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
