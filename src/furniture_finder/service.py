"""Search service orchestrating image analysis, embeddings, scoring, and ranking."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable

from furniture_finder.analysis import FurnitureAnalysis, analyze_furniture_image
from furniture_finder.catalog import CatalogItem, CatalogStore
from furniture_finder.config import RankingConfig, Settings
from furniture_finder.embedding_cache import EmbeddingCache, create_query_embedding
from furniture_finder.providers import CapabilityProvider, ProviderKind, make_provider
from furniture_finder.query import compose_query
from furniture_finder.ranking import (
    RankingDiagnostics,
    apply_price_range,
    build_diagnostics,
    rank,
    select_candidates,
)
from furniture_finder.scoring import ScoredCandidate, score_candidates


_LOGGER = logging.getLogger(__name__)

ProviderFactory = Callable[..., CapabilityProvider]


@dataclass(frozen=True)
class ProviderSelection:
    kind: ProviderKind | str
    api_key: str
    model: str | None = None

    def __repr__(self) -> str:
        return f"ProviderSelection(kind={self.kind!r}, model={self.model!r})"


@dataclass(frozen=True)
class SearchRequest:
    image: bytes
    vision: ProviderSelection
    embedding: ProviderSelection
    query_text: str | None = None
    config: RankingConfig = field(default_factory=RankingConfig)


@dataclass(frozen=True)
class SearchOutcome:
    results: list[ScoredCandidate]
    is_furniture: bool
    diagnostics: RankingDiagnostics
    analysis: FurnitureAnalysis
    config: RankingConfig
    rejection_reason: str | None = None
    vision_description: str | None = None
    query_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [candidate.to_dict() for candidate in self.results],
            "is_furniture": self.is_furniture,
            "debug": {
                "vision_description": self.vision_description,
                "analysis": self.analysis.to_dict(),
                "combined_query_text": self.query_text,
                "config": self.config.to_dict(),
                "rejection_reason": self.rejection_reason,
                **self.diagnostics.to_dict(),
            },
        }


class SearchService:
    def __init__(
        self,
        catalog: CatalogStore,
        cache: EmbeddingCache,
        *,
        settings: Settings | None = None,
        provider_factory: ProviderFactory = make_provider,
    ) -> None:
        self.catalog = catalog
        self.cache = cache
        self.settings = settings or Settings.from_env()
        self._provider_factory = provider_factory
        self._executor = ThreadPoolExecutor(
            max_workers=max(2, self.settings.max_workers),
            thread_name_prefix="embedding-call",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _build_provider(self, selection: ProviderSelection, *, for_embeddings: bool) -> CapabilityProvider:
        model_kwargs = {"embedding_model": selection.model} if for_embeddings else {"vision_model": selection.model}
        return self._provider_factory(
            selection.kind,
            selection.api_key,
            timeout_seconds=self.settings.http_timeout_seconds,
            **model_kwargs,
        )

    def _embed_concurrently(
        self,
        embedder: CapabilityProvider,
        query_text: str,
        candidates: list[CatalogItem],
        model: str | None,
    ) -> tuple[list[float], dict[str, list[float]]]:
        query_future = self._executor.submit(create_query_embedding, embedder, query_text, model)
        items_future = self._executor.submit(self.cache.get_or_compute, candidates, embedder, model)
        wait([query_future, items_future])
        return query_future.result(), items_future.result()

    def search(self, request: SearchRequest) -> SearchOutcome:
        if not request.image:
            raise ValueError("Please upload a valid image file.")

        started = time.monotonic()
        config = request.config
        vision = self._build_provider(request.vision, for_embeddings=False)
        embedder = self._build_provider(request.embedding, for_embeddings=True)
        embedder.ensure_embeddings()

        outcome = analyze_furniture_image(
            vision,
            request.image,
            user_text=request.query_text,
            model=request.vision.model,
        )
        analysis = outcome.analysis

        if not analysis.is_furniture:
            return SearchOutcome(
                results=[],
                is_furniture=False,
                diagnostics=build_diagnostics(
                    total_products=0,
                    filtered_products=0,
                    considered=0,
                    config=config,
                    results=[],
                ),
                analysis=analysis,
                config=config,
                rejection_reason=analysis.rejection_reason,
                vision_description=outcome.classification_content,
                query_text=outcome.classification_content,
            )

        query_text = compose_query(analysis, outcome.vision_description, request.query_text)

        products = self.catalog.fetch_all()
        filtered = apply_price_range(products, config)
        candidates = select_candidates(filtered, config)

        query_embedding, item_embeddings = self._embed_concurrently(
            embedder,
            query_text,
            candidates,
            request.embedding.model,
        )

        scored = score_candidates(
            candidates,
            analysis=analysis,
            query_text=query_text,
            query_embedding=query_embedding,
            item_embeddings=item_embeddings,
            config=config,
            user_text=request.query_text,
        )
        results = rank(scored, config)
        diagnostics = build_diagnostics(
            total_products=len(products),
            filtered_products=len(filtered),
            considered=len(candidates),
            config=config,
            results=results,
        )

        _LOGGER.info(
            "Search ranked %d/%d candidates (catalog=%d, top=%.3f, degraded=%s) in %.0f ms",
            len(results),
            len(candidates),
            len(products),
            diagnostics.top_score,
            analysis.malformed,
            (time.monotonic() - started) * 1000.0,
        )
        return SearchOutcome(
            results=results,
            is_furniture=True,
            diagnostics=diagnostics,
            analysis=analysis,
            config=config,
            vision_description=outcome.vision_description,
            query_text=query_text,
        )
