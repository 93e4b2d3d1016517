#!/usr/bin/env python3
"""Runs one furniture search for a local image file and prints the JSON outcome."""

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
from furniture_finder.config import Settings
from furniture_finder.db import CatalogDB
from furniture_finder.embedding_cache import EmbeddingCache
from furniture_finder.errors import ProviderError
from furniture_finder.providers import ProviderKind, provider_class
from furniture_finder.service import ProviderSelection, SearchRequest, SearchService


KEY_ENV_VARS = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.GOOGLE: "GOOGLE_API_KEY",
}


def main() -> int:
    load_dotenv(ROOT_DIR / ".env")

    parser = argparse.ArgumentParser(description="Search the furniture catalog with an image.")
    parser.add_argument("image", type=Path, help="Image file to analyze.")
    parser.add_argument("--query", default="", help="Optional shopper preferences, e.g. 'oak, under $300'.")
    parser.add_argument("--provider", default="openai", choices=[kind.value for kind in ProviderKind])
    parser.add_argument("--model", default=None, help="Vision model override.")
    parser.add_argument("--embedding-provider", default=None, choices=[kind.value for kind in ProviderKind])
    parser.add_argument("--embedding-model", default=None, help="Embedding model override.")
    parser.add_argument("--top-k", type=int, default=None)
    parser.add_argument("--min-score", type=float, default=None)
    args = parser.parse_args()

    settings = Settings.from_env(ROOT_DIR)
    logging.basicConfig(level=settings.log_level)

    vision_kind = ProviderKind(args.provider)
    if args.embedding_provider:
        embedding_kind = ProviderKind(args.embedding_provider)
    else:
        embedding_kind = vision_kind if provider_class(vision_kind).supports_embeddings else ProviderKind.OPENAI

    service = SearchService(
        CatalogDB(settings.db_path),
        EmbeddingCache(batch_size=settings.embed_batch_size),
        settings=settings,
    )
    request = SearchRequest(
        image=args.image.read_bytes(),
        vision=ProviderSelection(vision_kind, os.getenv(KEY_ENV_VARS[vision_kind], ""), args.model),
        embedding=ProviderSelection(
            embedding_kind,
            os.getenv("EMBEDDING_API_KEY", "") or os.getenv(KEY_ENV_VARS[embedding_kind], ""),
            args.embedding_model,
        ),
        query_text=args.query.strip() or None,
        config=settings.ranking.merged({"top_k": args.top_k, "min_score": args.min_score}),
    )

    try:
        outcome = service.search(request)
    except ProviderError as exc:
        print(f"search failed ({type(exc).__name__}): {exc}", file=sys.stderr)
        return 1
    finally:
        service.close()

    print(json.dumps(outcome.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
