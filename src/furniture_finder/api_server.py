"""FastAPI entrypoint exposing the furniture image search API."""

from __future__ import annotations

from functools import lru_cache
import logging
import os

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from furniture_finder.config import Settings
from furniture_finder.db import CatalogDB
from furniture_finder.embedding_cache import EmbeddingCache
from furniture_finder.errors import (
    AuthError,
    RateLimitError,
    TransportError,
    UnsupportedCapabilityError,
)
from furniture_finder.providers import ProviderKind, provider_class
from furniture_finder.service import ProviderSelection, SearchRequest, SearchService


_LOGGER = logging.getLogger(__name__)

KEY_HEADERS = {
    ProviderKind.OPENAI: "x-openai-api-key",
    ProviderKind.ANTHROPIC: "x-anthropic-api-key",
    ProviderKind.GOOGLE: "x-google-api-key",
}
EMBEDDING_KEY_HEADER = "x-embedding-api-key"


class SearchConfigModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    maxCandidates: int | None = Field(default=None, ge=10, le=500)
    topK: int | None = Field(default=None, ge=1, le=50)
    minScore: float | None = Field(default=None, ge=0, le=1)
    imageWeight: float | None = Field(default=None, ge=0, le=1)
    textWeight: float | None = Field(default=None, ge=0, le=1)
    priceProximityWeight: float | None = Field(default=None, ge=0, le=1)
    priceRangeEnabled: bool | None = None
    priceRangeMin: float | None = Field(default=None, ge=0)
    priceRangeMax: float | None = Field(default=None, ge=0)
    aiProvider: ProviderKind = ProviderKind.OPENAI
    aiModel: str | None = None
    embeddingProvider: ProviderKind | None = None
    embeddingModel: str | None = None


app = FastAPI(title="Furniture Finder", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("FF_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_service() -> SearchService:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    return SearchService(
        CatalogDB(settings.db_path),
        EmbeddingCache(batch_size=settings.embed_batch_size),
        settings=settings,
    )


def parse_search_config(raw: str) -> SearchConfigModel:
    if not raw.strip():
        return SearchConfigModel()
    try:
        return SearchConfigModel.model_validate_json(raw)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid search config: {exc.errors()}") from exc


def resolve_providers(request: Request, cfg: SearchConfigModel) -> tuple[ProviderSelection, ProviderSelection]:
    """Pick the vision and embedding backends and their keys from request headers.

    When no embedding provider is named, the vision provider is reused if it can
    embed; otherwise OpenAI is used.
    """
    vision_kind = cfg.aiProvider
    vision_key = request.headers.get(KEY_HEADERS[vision_kind], "").strip()
    if not vision_key:
        raise HTTPException(
            status_code=400,
            detail=f"Missing {vision_kind.value} API key. Please provide the {KEY_HEADERS[vision_kind]} header.",
        )

    embedding_kind = cfg.embeddingProvider
    if embedding_kind is None:
        embedding_kind = vision_kind if provider_class(vision_kind).supports_embeddings else ProviderKind.OPENAI

    embedding_key = (
        request.headers.get(EMBEDDING_KEY_HEADER, "").strip()
        or request.headers.get(KEY_HEADERS[embedding_kind], "").strip()
    )
    if not embedding_key:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Missing API key for embedding provider {embedding_kind.value}. "
                f"Please provide {EMBEDDING_KEY_HEADER} or {KEY_HEADERS[embedding_kind]}."
            ),
        )

    return (
        ProviderSelection(kind=vision_kind, api_key=vision_key, model=cfg.aiModel),
        ProviderSelection(kind=embedding_kind, api_key=embedding_key, model=cfg.embeddingModel),
    )


@app.get("/api/health")
def health(service: SearchService = Depends(get_service)) -> dict:
    return {
        "status": "ok",
        "app": "furniture-finder",
        "cached_embeddings": len(service.cache),
    }


@app.post("/api/search")
async def search(
    request: Request,
    image: UploadFile = File(...),
    query_text: str = Form(default=""),
    config: str = Form(default=""),
    service: SearchService = Depends(get_service),
) -> dict:
    payload = await image.read()
    if not payload:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")

    cfg = parse_search_config(config)
    vision, embedding = resolve_providers(request, cfg)
    ranking = service.settings.ranking.merged(cfg.model_dump(exclude_none=True))

    search_request = SearchRequest(
        image=payload,
        vision=vision,
        embedding=embedding,
        query_text=query_text.strip() or None,
        config=ranking,
    )
    try:
        outcome = await run_in_threadpool(service.search, search_request)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except RateLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except UnsupportedCapabilityError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransportError as exc:
        _LOGGER.warning("Provider transport failure: %s", exc)
        raise HTTPException(status_code=502, detail="The AI provider could not be reached. Please try again.") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return outcome.to_dict()
