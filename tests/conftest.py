from pathlib import Path

import pytest

from furniture_finder.catalog import CatalogItem
from furniture_finder.config import RankingConfig, Settings
from furniture_finder.providers import CapabilityProvider, ProviderKind


FURNITURE_REPLY = (
    "FURNITURE\n"
    "Category: Seating\n"
    "Type: Bench\n"
    "Description: Solid oak bench with a natural finish."
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def default_vector(text):
    return [1.0, float(len(text) % 5), float(sum(map(ord, text)) % 3)]


class FakeProvider(CapabilityProvider):
    """Scripted provider: vision replies are popped in order, vectors come from ``vector_fn``."""

    kind = ProviderKind.OPENAI
    label = "Fake"
    supports_embeddings = True
    default_vision_model = "fake-vision"
    default_embedding_model = "fake-embed"

    def __init__(
        self,
        replies=None,
        *,
        supports_embeddings=True,
        vector_fn=default_vector,
        fail_on_embedding_call=None,
        embedding_error=None,
        vision_error=None,
    ):
        super().__init__(api_key="test-key")
        self.supports_embeddings = supports_embeddings
        self.replies = list(replies or [])
        self.vector_fn = vector_fn
        self.fail_on_embedding_call = fail_on_embedding_call
        self.embedding_error = embedding_error
        self.vision_error = vision_error
        self.vision_calls = []
        self.embedding_calls = []

    def _analyze(self, image, prompt, system_prompt, model):
        self.vision_calls.append((prompt, system_prompt))
        if self.vision_error is not None:
            raise self.vision_error
        return self.replies.pop(0) if self.replies else ""

    def _embed(self, texts, model):
        call_index = len(self.embedding_calls)
        self.embedding_calls.append(list(texts))
        if self.embedding_error is not None and (
            self.fail_on_embedding_call is None or call_index == self.fail_on_embedding_call
        ):
            raise self.embedding_error
        return [list(self.vector_fn(text)) for text in texts]


def make_factory(vision, embedder, calls=None):
    def factory(kind, api_key, **kwargs):
        if calls is not None:
            calls.append((str(getattr(kind, "value", kind)), api_key, kwargs))
        return embedder if "embedding_model" in kwargs else vision

    return factory


def make_item(
    item_id,
    *,
    title="Item",
    description="",
    category="",
    type="",
    price=100.0,
):
    return CatalogItem(
        id=str(item_id),
        title=title,
        description=description,
        category=category,
        type=type,
        price=price,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "catalog.db",
        http_timeout_seconds=5.0,
        embed_batch_size=100,
        max_workers=2,
        log_level="INFO",
        ranking=RankingConfig(),
    )


@pytest.fixture
def bench_catalog():
    return [
        make_item("oak-bench", title="Oak Bench", description="Solid oak entryway bench", category="seating", type="bench", price=250.0),
        make_item("walnut-stool", title="Walnut Stool", description="Round counter stool", category="seating", type="stool", price=120.0),
        make_item("glass-desk", title="Glass Desk", description="Modern glass writing desk", category="tables", type="desk", price=400.0),
        make_item("floor-lamp", title="Arc Floor Lamp", description="Brushed steel lamp", category="lighting", type="lamp", price=90.0),
    ]
