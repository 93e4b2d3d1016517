from pathlib import Path

from furniture_finder.config import RankingConfig, Settings


def test_ranking_defaults():
    config = RankingConfig()
    assert (config.max_candidates, config.top_k, config.min_score) == (200, 20, 0.35)
    assert (config.image_weight, config.text_weight, config.price_proximity_weight) == (0.5, 0.3, 0.2)
    assert config.price_range_enabled is False


def test_merged_accepts_camel_case_and_ignores_nulls():
    config = RankingConfig().merged(
        {"topK": 5, "minScore": None, "price_range_enabled": True, "aiProvider": "google"}
    )

    assert config.top_k == 5
    assert config.min_score == 0.35
    assert config.price_range_enabled is True


def test_ranking_from_env(monkeypatch):
    monkeypatch.setenv("FF_TOP_K", "7")
    monkeypatch.setenv("FF_MIN_SCORE", "0.1")
    monkeypatch.setenv("FF_MAX_CANDIDATES", "not-a-number")

    config = RankingConfig.from_env()

    assert config.top_k == 7
    assert config.min_score == 0.1
    assert config.max_candidates == 200


def test_settings_from_env(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("FF_DB_PATH", raising=False)
    monkeypatch.delenv("FF_HTTP_TIMEOUT_SECONDS", raising=False)
    monkeypatch.setenv("FF_EMBED_BATCH_SIZE", "25")
    monkeypatch.setenv("FF_LOG_LEVEL", "debug")

    settings = Settings.from_env(tmp_path)

    assert settings.db_path == tmp_path / "data" / "catalog.db"
    assert settings.embed_batch_size == 25
    assert settings.log_level == "DEBUG"
    assert settings.http_timeout_seconds == 30.0
