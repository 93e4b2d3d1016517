"""Process-lifetime cache of catalog item embeddings plus vector similarity helpers."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

import numpy as np

from furniture_finder.catalog import CatalogItem
from furniture_finder.providers import CapabilityProvider


_LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
ITEM_TEXT_SEPARATOR = " | "

EmbeddingVector = list[float]


def item_embedding_text(item: CatalogItem) -> str:
    parts = [item.title, item.category, item.type, item.description]
    return ITEM_TEXT_SEPARATOR.join(part for part in parts if part)


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity over the overlapping prefix of ``a`` and ``b``.

    Vectors from differently sized models are compared on their shared leading
    dimensions instead of raising. Returns 0.0 when the overlap is empty or either
    side has zero magnitude over it.
    """
    if a is None or b is None:
        return 0.0
    length = min(len(a), len(b))
    if length == 0:
        return 0.0
    left = np.asarray(a[:length], dtype=np.float64)
    right = np.asarray(b[:length], dtype=np.float64)
    norm_left = float(np.dot(left, left))
    norm_right = float(np.dot(right, right))
    if norm_left == 0.0 or norm_right == 0.0:
        return 0.0
    return float(np.dot(left, right)) / math.sqrt(norm_left * norm_right)


def create_query_embedding(
    provider: CapabilityProvider,
    query_text: str,
    model: str | None = None,
) -> EmbeddingVector:
    vectors = provider.create_embeddings([query_text], model)
    return vectors[0] if vectors else []


class EmbeddingCache:
    """Maps catalog item ids to embedding vectors for the life of the process.

    Entries are never evicted. Concurrent requests may both embed the same
    missing item; the later write wins and the vectors are equivalent.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive.")
        self.batch_size = batch_size
        self._vectors: dict[str, EmbeddingVector] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._vectors

    def get(self, item_id: str) -> EmbeddingVector | None:
        return self._vectors.get(item_id)

    def clear(self) -> None:
        self._vectors.clear()

    def get_or_compute(
        self,
        items: Iterable[CatalogItem],
        provider: CapabilityProvider,
        model: str | None = None,
    ) -> dict[str, EmbeddingVector]:
        """Return vectors for ``items``, embedding only the ones not cached yet.

        Missing items go out in batches of ``batch_size``. A failing batch raises
        and writes nothing; batches that already succeeded stay cached.
        """
        requested = list(items)
        missing = [item for item in requested if item.id not in self._vectors]

        if missing:
            _LOGGER.debug(
                "Embedding %d uncached items in batches of %d (cached=%d)",
                len(missing),
                self.batch_size,
                len(self._vectors),
            )

        for start in range(0, len(missing), self.batch_size):
            batch = missing[start : start + self.batch_size]
            texted = [(item, item_embedding_text(item)) for item in batch]
            texted = [(item, text) for item, text in texted if text.strip()]
            if not texted:
                continue

            vectors = provider.create_embeddings([text for _item, text in texted], model)
            for (item, _text), vector in zip(texted, vectors):
                if vector:
                    self._vectors[item.id] = vector

        out: dict[str, EmbeddingVector] = {}
        for item in requested:
            vector = self._vectors.get(item.id)
            if vector is not None:
                out[item.id] = vector
        return out
