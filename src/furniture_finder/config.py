"""Environment-driven settings and the per-request ranking configuration."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import os
from pathlib import Path
from typing import Any, Mapping


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# camelCase names used by HTTP clients -> dataclass field names
_CONFIG_ALIASES = {
    "maxCandidates": "max_candidates",
    "topK": "top_k",
    "minScore": "min_score",
    "imageWeight": "image_weight",
    "textWeight": "text_weight",
    "priceProximityWeight": "price_proximity_weight",
    "priceRangeEnabled": "price_range_enabled",
    "priceRangeMin": "price_range_min",
    "priceRangeMax": "price_range_max",
}


@dataclass(frozen=True)
class RankingConfig:
    """Caller-supplied knobs for one search request.

    Weights are used as given; nothing checks that they sum to 1.0.
    """

    max_candidates: int = 200
    top_k: int = 20
    min_score: float = 0.35
    image_weight: float = 0.5
    text_weight: float = 0.3
    price_proximity_weight: float = 0.2
    price_range_enabled: bool = False
    price_range_min: float | None = None
    price_range_max: float | None = None

    @classmethod
    def from_env(cls) -> "RankingConfig":
        base = cls()
        return cls(
            max_candidates=_env_int("FF_MAX_CANDIDATES", base.max_candidates),
            top_k=_env_int("FF_TOP_K", base.top_k),
            min_score=_env_float("FF_MIN_SCORE", base.min_score),
            image_weight=_env_float("FF_IMAGE_WEIGHT", base.image_weight),
            text_weight=_env_float("FF_TEXT_WEIGHT", base.text_weight),
            price_proximity_weight=_env_float("FF_PRICE_WEIGHT", base.price_proximity_weight),
        )

    def merged(self, overrides: Mapping[str, Any] | None) -> "RankingConfig":
        """Return a copy with the non-null ``overrides`` applied.

        Keys may be field names or their camelCase aliases; unknown keys are ignored.
        """
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in overrides.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name in known and value is not None:
                changes[name] = value
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Settings:
    db_path: Path
    http_timeout_seconds: float
    embed_batch_size: int
    max_workers: int
    log_level: str
    ranking: RankingConfig

    @classmethod
    def from_env(cls, root_dir: Path | None = None) -> "Settings":
        root = root_dir or Path.cwd()
        db_path = os.getenv("FF_DB_PATH", "").strip()
        timeout = _env_float("FF_HTTP_TIMEOUT_SECONDS", 30.0)
        return cls(
            db_path=Path(db_path) if db_path else root / "data" / "catalog.db",
            http_timeout_seconds=timeout if timeout > 0 else 30.0,
            embed_batch_size=_env_int("FF_EMBED_BATCH_SIZE", 100),
            max_workers=_env_int("FF_MAX_WORKERS", 4),
            log_level=os.getenv("FF_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            ranking=RankingConfig.from_env(),
        )
