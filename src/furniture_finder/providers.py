"""Vision/embedding backends behind one capability-aware client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
import base64
from dataclasses import dataclass
from enum import Enum
import json
import logging
from typing import Any
import urllib.error
import urllib.request

from furniture_finder.errors import (
    AuthError,
    ProviderError,
    RateLimitError,
    TransportError,
    UnsupportedCapabilityError,
)


_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
_MAX_OUTPUT_TOKENS = 500


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


@dataclass(frozen=True)
class VisionResponse:
    content: str


def sniff_media_type(image: bytes) -> str:
    if image.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image[:6] in {b"GIF87a", b"GIF89a"}:
        return "image/gif"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def _to_vector(row: Any, provider: str) -> list[float]:
    if not isinstance(row, list):
        raise TransportError(f"{provider} returned a malformed embedding row.", provider=provider)
    try:
        return [float(value) for value in row]
    except (TypeError, ValueError) as exc:
        raise TransportError(f"{provider} returned non-numeric embedding values.", provider=provider) from exc


class CapabilityProvider(ABC):
    """Uniform client over one vision/embedding backend.

    Each variant declares ``supports_embeddings`` up front; ``create_embeddings``
    checks it before any request is built.
    """

    kind: ProviderKind
    label: str
    supports_embeddings: bool = False
    default_vision_model: str = ""
    default_embedding_model: str | None = None
    default_base_url: str = ""

    def __init__(
        self,
        *,
        api_key: str,
        vision_model: str | None = None,
        embedding_model: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.vision_model = vision_model or self.default_vision_model
        self.embedding_model = embedding_model or self.default_embedding_model
        self.timeout_seconds = max(1.0, float(timeout_seconds))
        self.base_url = (base_url or self.default_base_url).rstrip("/")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(vision_model={self.vision_model!r}, embedding_model={self.embedding_model!r})"

    def _http_error(self, status: int, body: str) -> ProviderError:
        if status in {401, 403}:
            return AuthError(
                f"Invalid {self.label} API key. Please check your API key and try again.",
                provider=self.kind.value,
            )
        if status == 429:
            return RateLimitError(
                f"{self.label} API rate limit exceeded. Please wait a moment and try again.",
                provider=self.kind.value,
            )
        detail = body.strip()[:300] or "no response body"
        return TransportError(f"{self.label} API error ({status}): {detail}", provider=self.kind.value)

    def _post_json(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        request = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                **headers,
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            response_body = exc.read().decode("utf-8", errors="ignore") if exc.fp is not None else ""
            raise self._http_error(exc.code, response_body or str(exc.reason)) from exc
        except urllib.error.URLError as exc:
            raise TransportError(
                f"{self.label} request failed: {exc.reason}", provider=self.kind.value
            ) from exc
        except OSError as exc:
            raise TransportError(f"{self.label} request failed: {exc}", provider=self.kind.value) from exc

        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise TransportError(
                f"{self.label} returned a response that is not JSON.", provider=self.kind.value
            ) from exc
        if not isinstance(parsed, dict):
            raise TransportError(f"{self.label} returned an unexpected payload.", provider=self.kind.value)
        return parsed

    def analyze_image(
        self,
        image: bytes,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> VisionResponse:
        if not image:
            raise ValueError("Image payload is empty.")
        chosen = model or self.vision_model
        _LOGGER.debug("Vision request provider=%s model=%s bytes=%d", self.kind.value, chosen, len(image))
        content = self._analyze(image, prompt, system_prompt, chosen)
        return VisionResponse(content=content)

    def ensure_embeddings(self) -> None:
        if not self.supports_embeddings:
            raise UnsupportedCapabilityError(
                f"{self.label} does not provide an embeddings API. "
                "Choose an embedding provider that supports embeddings.",
                provider=self.kind.value,
            )

    def create_embeddings(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        self.ensure_embeddings()
        if not texts:
            return []
        chosen = model or self.embedding_model or ""
        vectors = self._embed(list(texts), chosen)
        if len(vectors) != len(texts):
            raise TransportError(
                f"{self.label} embedding response shape mismatch: "
                f"expected {len(texts)} vectors, got {len(vectors)}.",
                provider=self.kind.value,
            )
        return vectors

    @abstractmethod
    def _analyze(self, image: bytes, prompt: str, system_prompt: str | None, model: str) -> str:
        """Send one image + prompt and return the text reply."""

    def _embed(self, texts: list[str], model: str) -> list[list[float]]:
        raise UnsupportedCapabilityError(f"{self.label} has no embeddings endpoint.", provider=self.kind.value)


class OpenAIProvider(CapabilityProvider):
    kind = ProviderKind.OPENAI
    label = "OpenAI"
    supports_embeddings = True
    default_vision_model = "gpt-4o"
    default_embedding_model = "text-embedding-3-small"
    default_base_url = "https://api.openai.com/v1"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @staticmethod
    def _extract_chat_text(payload: dict[str, Any]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "\n".join(
                chunk["text"] for chunk in content if isinstance(chunk, dict) and isinstance(chunk.get("text"), str)
            )
        return ""

    def _analyze(self, image: bytes, prompt: str, system_prompt: str | None, model: str) -> str:
        b64 = base64.b64encode(image).decode("utf-8")
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append(
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": f"data:{sniff_media_type(image)};base64,{b64}"}},
                ],
            }
        )
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": _MAX_OUTPUT_TOKENS,
            "temperature": 0.3,
        }
        response = self._post_json(f"{self.base_url}/chat/completions", payload, self._headers())
        return self._extract_chat_text(response)

    def _embed(self, texts: list[str], model: str) -> list[list[float]]:
        response = self._post_json(
            f"{self.base_url}/embeddings",
            {"model": model, "input": texts},
            self._headers(),
        )
        data = response.get("data")
        if not isinstance(data, list):
            raise TransportError("OpenAI embedding response is missing 'data'.", provider=self.kind.value)
        rows = sorted(
            (row for row in data if isinstance(row, dict)),
            key=lambda row: int(row.get("index", 0)),
        )
        return [_to_vector(row.get("embedding"), self.label) for row in rows]


class AnthropicProvider(CapabilityProvider):
    kind = ProviderKind.ANTHROPIC
    label = "Anthropic"
    supports_embeddings = False
    default_vision_model = "claude-3-5-sonnet-20241022"
    default_base_url = "https://api.anthropic.com/v1"
    api_version = "2023-06-01"
    default_system_prompt = "You are an expert furniture analyst."

    def _analyze(self, image: bytes, prompt: str, system_prompt: str | None, model: str) -> str:
        payload = {
            "model": model,
            "max_tokens": _MAX_OUTPUT_TOKENS,
            "system": system_prompt or self.default_system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": sniff_media_type(image),
                                "data": base64.b64encode(image).decode("utf-8"),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }
        response = self._post_json(
            f"{self.base_url}/messages",
            payload,
            {"x-api-key": self.api_key, "anthropic-version": self.api_version},
        )
        blocks = response.get("content")
        if not isinstance(blocks, list):
            return ""
        return "\n".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        )


class GoogleProvider(CapabilityProvider):
    kind = ProviderKind.GOOGLE
    label = "Google"
    supports_embeddings = True
    default_vision_model = "gemini-1.5-pro"
    default_embedding_model = "text-embedding-004"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def _http_error(self, status: int, body: str) -> ProviderError:
        # Gemini reports a bad key as HTTP 400 with a reason code in the body.
        if "API_KEY_INVALID" in body:
            return super()._http_error(401, body)
        if "RESOURCE_EXHAUSTED" in body:
            return super()._http_error(429, body)
        return super()._http_error(status, body)

    def _analyze(self, image: bytes, prompt: str, system_prompt: str | None, model: str) -> str:
        full_prompt = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": full_prompt},
                        {
                            "inline_data": {
                                "mime_type": sniff_media_type(image),
                                "data": base64.b64encode(image).decode("utf-8"),
                            }
                        },
                    ],
                }
            ]
        }
        response = self._post_json(f"{self.base_url}/models/{model}:generateContent", payload, self._headers())
        candidates = response.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return ""
        return "".join(part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str))

    def _embed(self, texts: list[str], model: str) -> list[list[float]]:
        payload = {
            "requests": [
                {"model": f"models/{model}", "content": {"parts": [{"text": text}]}}
                for text in texts
            ]
        }
        response = self._post_json(
            f"{self.base_url}/models/{model}:batchEmbedContents",
            payload,
            self._headers(),
        )
        embeddings = response.get("embeddings")
        if not isinstance(embeddings, list):
            raise TransportError("Google embedding response is missing 'embeddings'.", provider=self.kind.value)
        return [
            _to_vector(row.get("values") if isinstance(row, dict) else None, self.label)
            for row in embeddings
        ]


_PROVIDER_CLASSES: dict[ProviderKind, type[CapabilityProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GOOGLE: GoogleProvider,
}


def provider_class(kind: ProviderKind | str) -> type[CapabilityProvider]:
    try:
        resolved = ProviderKind(str(kind.value if isinstance(kind, ProviderKind) else kind).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported provider: {kind}") from exc
    return _PROVIDER_CLASSES[resolved]


def make_provider(
    kind: ProviderKind | str,
    api_key: str,
    *,
    vision_model: str | None = None,
    embedding_model: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    base_url: str | None = None,
) -> CapabilityProvider:
    cls = provider_class(kind)
    if not api_key or not api_key.strip():
        raise AuthError(f"Missing {cls.label} API key.", provider=cls.kind.value)
    return cls(
        api_key=api_key.strip(),
        vision_model=vision_model,
        embedding_model=embedding_model,
        timeout_seconds=timeout_seconds,
        base_url=base_url,
    )
