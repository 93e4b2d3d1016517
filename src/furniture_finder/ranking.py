"""Candidate selection before scoring and threshold/sort/truncate after it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from furniture_finder.catalog import CatalogItem
from furniture_finder.config import RankingConfig
from furniture_finder.scoring import ScoredCandidate


@dataclass(frozen=True)
class RankingDiagnostics:
    total_products: int
    filtered_products: int
    considered: int
    price_filtered: bool
    top_score: float
    results_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_products": self.total_products,
            "filtered_products": self.filtered_products,
            "considered": self.considered,
            "price_filtered": self.price_filtered,
            "top_score": self.top_score,
            "results_count": self.results_count,
        }


def price_filter_active(config: RankingConfig) -> bool:
    return bool(
        config.price_range_enabled
        and config.price_range_min is not None
        and config.price_range_max is not None
    )


def apply_price_range(items: Sequence[CatalogItem], config: RankingConfig) -> list[CatalogItem]:
    if not price_filter_active(config):
        return list(items)
    low = float(config.price_range_min)
    high = float(config.price_range_max)
    return [item for item in items if low <= item.price <= high]


def select_candidates(items: Sequence[CatalogItem], config: RankingConfig) -> list[CatalogItem]:
    """First ``max_candidates`` items in store order; a cost cap, not a relevance cut."""
    return list(items[: max(0, int(config.max_candidates))])


def rank(scored: Sequence[ScoredCandidate], config: RankingConfig) -> list[ScoredCandidate]:
    """Drop scores below ``min_score``, sort descending, keep ``top_k``.

    ``sorted`` is stable, so equal scores keep their candidate order.
    """
    kept = [candidate for candidate in scored if candidate.score >= config.min_score]
    kept = sorted(kept, key=lambda candidate: candidate.score, reverse=True)
    return kept[: max(0, int(config.top_k))]


def build_diagnostics(
    *,
    total_products: int,
    filtered_products: int,
    considered: int,
    config: RankingConfig,
    results: Sequence[ScoredCandidate],
) -> RankingDiagnostics:
    return RankingDiagnostics(
        total_products=total_products,
        filtered_products=filtered_products,
        considered=considered,
        price_filtered=price_filter_active(config),
        top_score=results[0].score if results else 0.0,
        results_count=len(results),
    )
