"""Catalog item model and the read-only store contract used by the search pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol


@dataclass(frozen=True)
class CatalogItem:
    id: str
    title: str
    description: str
    category: str
    type: str
    price: float
    width: float = 0.0
    height: float = 0.0
    depth: float = 0.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CatalogItem":
        item_id = raw.get("id", raw.get("_id"))
        if item_id is None or not str(item_id).strip():
            raise ValueError("Catalog item is missing an id.")
        return cls(
            id=str(item_id).strip(),
            title=str(raw.get("title") or ""),
            description=str(raw.get("description") or ""),
            category=str(raw.get("category") or ""),
            type=str(raw.get("type") or ""),
            price=float(raw.get("price") or 0.0),
            width=float(raw.get("width") or 0.0),
            height=float(raw.get("height") or 0.0),
            depth=float(raw.get("depth") or 0.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "type": self.type,
            "price": self.price,
            "width": self.width,
            "height": self.height,
            "depth": self.depth,
        }


class CatalogStore(Protocol):
    def fetch_all(self) -> list[CatalogItem]:
        """Return every catalog item in a stable store order."""
        ...


class InMemoryCatalog:
    def __init__(self, items: Iterable[CatalogItem]) -> None:
        self._items = list(items)

    def fetch_all(self) -> list[CatalogItem]:
        return list(self._items)
