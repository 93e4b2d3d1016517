import json

from fastapi.testclient import TestClient
import pytest

from furniture_finder.api_server import app, get_service
from furniture_finder.catalog import InMemoryCatalog
from furniture_finder.embedding_cache import EmbeddingCache
from furniture_finder.errors import AuthError, RateLimitError, TransportError
from furniture_finder.service import SearchService

from conftest import FURNITURE_REPLY, PNG_BYTES, FakeProvider, make_factory


@pytest.fixture
def wire(settings, bench_catalog):
    """Installs a SearchService backed by fake providers; returns the factory call log."""
    created = []

    def _wire(vision, embedder):
        calls = []
        service = SearchService(
            InMemoryCatalog(bench_catalog),
            EmbeddingCache(),
            settings=settings,
            provider_factory=make_factory(vision, embedder, calls),
        )
        created.append(service)
        app.dependency_overrides[get_service] = lambda: service
        return calls

    yield _wire
    app.dependency_overrides.clear()
    for service in created:
        service.close()


@pytest.fixture
def client():
    return TestClient(app)


def _post(client, headers, config=None, query_text=""):
    data = {"query_text": query_text}
    if config is not None:
        data["config"] = json.dumps(config)
    return client.post(
        "/api/search",
        files={"image": ("bench.png", PNG_BYTES, "image/png")},
        data=data,
        headers=headers,
    )


def test_health(client, wire):
    wire(FakeProvider(), FakeProvider())

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "app": "furniture-finder", "cached_embeddings": 0}


def test_search_returns_results_and_debug(client, wire):
    wire(FakeProvider([FURNITURE_REPLY, "A long oak bench."]), FakeProvider())

    response = _post(client, {"x-openai-api-key": "sk-test"}, {"topK": 2, "minScore": 0}, "oak please")

    assert response.status_code == 200
    body = response.json()
    assert body["is_furniture"] is True
    assert len(body["results"]) == 2
    assert body["debug"]["config"]["top_k"] == 2
    assert body["debug"]["combined_query_text"].endswith("user preferences: oak please")
    assert set(body["results"][0]) == {"product", "score", "sub_scores", "explanation"}


def test_non_furniture_response(client, wire):
    wire(FakeProvider(["NOT_FURNITURE: a bicycle"]), FakeProvider())

    response = _post(client, {"x-openai-api-key": "sk-test"})

    assert response.status_code == 200
    assert response.json()["is_furniture"] is False
    assert response.json()["debug"]["rejection_reason"] == "a bicycle"


def test_missing_vision_key_is_bad_request(client, wire):
    wire(FakeProvider(), FakeProvider())

    response = _post(client, {})

    assert response.status_code == 400
    assert "x-openai-api-key" in response.json()["detail"]


def test_anthropic_vision_falls_back_to_openai_embeddings(client, wire):
    calls = wire(FakeProvider([FURNITURE_REPLY, "Oak bench."]), FakeProvider())

    missing = _post(client, {"x-anthropic-api-key": "ak-test"}, {"aiProvider": "anthropic"})
    assert missing.status_code == 400

    response = _post(
        client,
        {"x-anthropic-api-key": "ak-test", "x-openai-api-key": "sk-test"},
        {"aiProvider": "anthropic"},
    )
    assert response.status_code == 200
    assert [(kind, key) for kind, key, _kwargs in calls] == [("anthropic", "ak-test"), ("openai", "sk-test")]


def test_embedding_key_header_wins(client, wire):
    calls = wire(FakeProvider([FURNITURE_REPLY, "Oak bench."]), FakeProvider())

    response = _post(
        client,
        {"x-google-api-key": "g-test", "x-embedding-api-key": "emb-test"},
        {"aiProvider": "google"},
    )

    assert response.status_code == 200
    assert calls[1][:2] == ("google", "emb-test")


@pytest.mark.parametrize("config", [{"topK": 100}, {"minScore": 2}, {"aiProvider": "mistral"}])
def test_invalid_config_is_bad_request(client, wire, config):
    wire(FakeProvider(), FakeProvider())

    response = _post(client, {"x-openai-api-key": "sk-test"}, config)

    assert response.status_code == 400


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (AuthError("bad key"), 401),
        (RateLimitError("slow down"), 429),
        (TransportError("boom"), 502),
    ],
)
def test_provider_errors_map_to_status_codes(client, wire, error, status):
    wire(FakeProvider(vision_error=error), FakeProvider())

    response = _post(client, {"x-openai-api-key": "sk-test"})

    assert response.status_code == status


def test_unsupported_embedding_backend_is_bad_request(client, wire):
    wire(FakeProvider([FURNITURE_REPLY, "Oak bench."]), FakeProvider(supports_embeddings=False))

    response = _post(client, {"x-openai-api-key": "sk-test"})

    assert response.status_code == 400


def test_unknown_config_keys_are_ignored(client, wire):
    wire(FakeProvider([FURNITURE_REPLY, "Oak bench."]), FakeProvider())

    response = _post(
        client,
        {"x-openai-api-key": "sk-test"},
        {"topK": 3, "minScore": 0, "backendUrl": "http://localhost:4000"},
    )

    assert response.status_code == 200
    assert len(response.json()["results"]) == 3
    assert "backendUrl" not in response.json()["debug"]["config"]
