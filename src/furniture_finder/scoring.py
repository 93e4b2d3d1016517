"""Per-candidate relevance signals and the weighted composite score."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Mapping, Sequence

from furniture_finder.analysis import FurnitureAnalysis
from furniture_finder.catalog import CatalogItem
from furniture_finder.config import RankingConfig
from furniture_finder.embedding_cache import cosine_similarity


# Fixed, independent of the caller's image/text/price weights.
TYPE_CATEGORY_WEIGHT = 0.25
TYPE_SHARE = 0.6
CATEGORY_SHARE = 0.4

TYPE_EXACT = 1.0
TYPE_PARTIAL = 0.8
TYPE_IN_TEXT = 0.6
TYPE_SYNONYM = 0.4

CATEGORY_EXACT = 1.0
CATEGORY_PARTIAL = 0.7

MAX_MEAN_PRICE_PENALTY = 0.5

SIMILAR_TYPES: dict[str, tuple[str, ...]] = {
    "bench": ("bench", "stool", "seat", "ottoman"),
    "chair": ("chair", "seat", "stool", "armchair", "recliner"),
    "sofa": ("sofa", "couch", "loveseat", "settee", "divan"),
    "desk": ("desk", "table", "workstation", "writing desk"),
    "table": ("table", "desk", "counter", "dining table", "coffee table", "side table"),
    "cabinet": ("cabinet", "cupboard", "wardrobe", "armoire"),
    "shelf": ("shelf", "shelving", "bookcase", "bookshelf"),
    "bed": ("bed", "mattress", "headboard"),
    "dresser": ("dresser", "chest", "bureau", "drawer"),
    "lamp": ("lamp", "light", "lighting"),
}

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_CURRENCY_PRICE = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)")
_DOLLAR_WORD_PRICE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*dollars?\b", re.IGNORECASE)


@dataclass(frozen=True)
class ScoredCandidate:
    item: CatalogItem
    score: float
    explanation: list[tuple[str, float]] = field(default_factory=list)

    @property
    def sub_scores(self) -> dict[str, float]:
        return dict(self.explanation)

    def explanation_text(self) -> str:
        precision = {"typeMatch": 2, "categoryMatch": 2}
        return ", ".join(f"{name}={value:.{precision.get(name, 3)}f}" for name, value in self.explanation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.item.to_dict(),
            "score": self.score,
            "sub_scores": self.sub_scores,
            "explanation": self.explanation_text(),
        }


def tokenize(text: str) -> list[str]:
    return _NON_ALNUM.sub(" ", (text or "").lower()).split()


def _singular(value: str) -> str:
    return value[:-1] if value.endswith("s") else value


def _item_text(item: CatalogItem) -> str:
    return " ".join([item.title, item.category, item.type, item.description])


def lexical_score(query_text: str, item: CatalogItem) -> float:
    """Share of query tokens (duplicates counted) that appear in the item's text."""
    query_tokens = tokenize(query_text)
    item_tokens = set(tokenize(_item_text(item)))
    if not query_tokens or not item_tokens:
        return 0.0
    overlap = sum(1 for token in query_tokens if token in item_tokens)
    return overlap / len(query_tokens)


def type_match_score(query_type: str | None, item: CatalogItem) -> float:
    wanted = (query_type or "").strip().lower()
    if not wanted:
        return 0.0
    wanted_singular = _singular(wanted)

    product_type = item.type.strip().lower()
    product_singular = _singular(product_type)
    title = item.title.lower()
    description = item.description.lower()

    if product_type:
        if wanted in {product_type, product_singular} or wanted_singular in {product_type, product_singular}:
            return TYPE_EXACT
        if (
            wanted in product_type
            or wanted_singular in product_type
            or product_type in wanted
            or product_type in wanted_singular
        ):
            return TYPE_PARTIAL

    if any(term in text for term in (wanted, wanted_singular) for text in (title, description)):
        return TYPE_IN_TEXT

    related = SIMILAR_TYPES.get(wanted) or SIMILAR_TYPES.get(wanted_singular) or ()
    for term in related:
        for variant in (term, _singular(term)):
            if any(variant in text for text in (product_type, title, description) if text):
                return TYPE_SYNONYM
    return 0.0


def category_match_score(query_category: str | None, item: CatalogItem) -> float:
    wanted = (query_category or "").strip().lower()
    actual = item.category.strip().lower()
    if not wanted or not actual:
        return 0.0
    if wanted == actual:
        return CATEGORY_EXACT
    if wanted in actual or actual in wanted:
        return CATEGORY_PARTIAL
    return 0.0


def extract_target_price(user_text: str | None) -> float | None:
    """Pull a target price from ``$N`` or ``N dollars`` in free text."""
    if not user_text:
        return None
    match = _CURRENCY_PRICE.search(user_text) or _DOLLAR_WORD_PRICE.search(user_text)
    if not match:
        return None
    return float(match.group(1).replace(",", ""))


def mean_price(items: Sequence[CatalogItem]) -> float:
    if not items:
        return 0.0
    return sum(item.price for item in items) / len(items)


def price_score(price: float, *, target_price: float | None, reference_price: float) -> float:
    if target_price is not None:
        ceiling = max(price, target_price)
        if ceiling <= 0:
            return 0.0
        return 1.0 - min(abs(price - target_price) / ceiling, 1.0)

    if reference_price <= 0:
        return MAX_MEAN_PRICE_PENALTY
    return 1.0 - min(abs(price - reference_price) / reference_price, MAX_MEAN_PRICE_PENALTY)


def score_candidate(
    item: CatalogItem,
    *,
    analysis: FurnitureAnalysis,
    query_text: str,
    query_embedding: Sequence[float],
    item_embedding: Sequence[float] | None,
    config: RankingConfig,
    target_price: float | None,
    reference_price: float,
) -> ScoredCandidate:
    # semantic is not clamped: anti-correlated vectors score below zero
    semantic = cosine_similarity(query_embedding, item_embedding) if item_embedding else 0.0
    type_match = type_match_score(analysis.type, item)
    category_match = category_match_score(analysis.category, item)
    lexical = lexical_score(query_text, item)
    price = price_score(item.price, target_price=target_price, reference_price=reference_price)

    type_category = TYPE_SHARE * type_match + CATEGORY_SHARE * category_match
    composite = (
        config.image_weight * semantic
        + TYPE_CATEGORY_WEIGHT * type_category
        + config.text_weight * lexical
        + config.price_proximity_weight * price
    )
    return ScoredCandidate(
        item=item,
        score=composite,
        explanation=[
            ("typeMatch", type_match),
            ("categoryMatch", category_match),
            ("semantic", semantic),
            ("lexical", lexical),
            ("price", price),
        ],
    )


def score_candidates(
    candidates: Sequence[CatalogItem],
    *,
    analysis: FurnitureAnalysis,
    query_text: str,
    query_embedding: Sequence[float],
    item_embeddings: Mapping[str, Sequence[float]],
    config: RankingConfig,
    user_text: str | None = None,
) -> list[ScoredCandidate]:
    target_price = extract_target_price(user_text)
    reference_price = mean_price(candidates)
    return [
        score_candidate(
            item,
            analysis=analysis,
            query_text=query_text,
            query_embedding=query_embedding,
            item_embedding=item_embeddings.get(item.id),
            config=config,
            target_price=target_price,
            reference_price=reference_price,
        )
        for item in candidates
    ]
