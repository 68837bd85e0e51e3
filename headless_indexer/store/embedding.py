"""
Embedding generation for semantic search.

Providers, picked by which API key is present:
1. OpenAI (OPENAI_API_KEY)
2. Voyage (VOYAGE_API_KEY)
3. Gemini (GEMINI_API_KEY)
4. Ollama (local, no key) - fallback

Every provider keeps batch order: embed_batch(texts)[i] is the vector
for texts[i].
"""

import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

import requests

from ..errors import EmbeddingError

logger = logging.getLogger(__name__)

OPENAI_MODEL = "text-embedding-3-small"
VOYAGE_MODEL = "voyage-3"
GEMINI_MODEL = "models/text-embedding-004"
OLLAMA_MODEL = "nomic-embed-text"

VOYAGE_URL = "https://api.voyageai.com/v1/embeddings"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/{model}:batchEmbedContents"
OLLAMA_URL = "http://localhost:11434"

REQUEST_TIMEOUT = 60


class EmbeddingCache:
    """
    Embedding cache

    Memory first, then one JSON file per text hash on disk.
    """

    def __init__(self, cache_dir: Optional[Path] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else None
        if self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._memory_cache: dict[str, list[float]] = {}

    def _get_key(self, model: str, text: str) -> str:
        return hashlib.sha256(f"{model}\0{text}".encode()).hexdigest()[:32]

    def get(self, model: str, text: str) -> Optional[list[float]]:
        key = self._get_key(model, text)

        if key in self._memory_cache:
            return self._memory_cache[key]

        if self.cache_dir is None:
            return None
        cache_file = self.cache_dir / f"{key}.json"
        if cache_file.exists():
            try:
                data = json.loads(cache_file.read_text())
                self._memory_cache[key] = data["embedding"]
                return data["embedding"]
            except (OSError, ValueError, KeyError) as e:
                logger.debug(f"Ignoring unreadable cache entry {cache_file}: {e}")

        return None

    def set(self, model: str, text: str, embedding: list[float]):
        key = self._get_key(model, text)
        self._memory_cache[key] = embedding

        if self.cache_dir is None:
            return
        cache_file = self.cache_dir / f"{key}.json"
        try:
            cache_file.write_text(json.dumps({
                "text_hash": key,
                "model": model,
                "embedding": embedding,
                "dimension": len(embedding),
            }))
        except OSError as e:
            logger.debug(f"Failed to write cache: {e}")

    def clear(self):
        self._memory_cache.clear()
        if self.cache_dir is None:
            return
        for f in self.cache_dir.glob("*.json"):
            try:
                f.unlink()
            except OSError as e:
                logger.debug(f"Failed to remove cache entry {f}: {e}")


class EmbeddingProvider(ABC):
    """
    Base class for embedding providers

    Subclasses implement _embed_many(); caching and order checks live here.
    """

    name = "base"
    model = ""

    def __init__(self, cache: Optional[EmbeddingCache] = None):
        self.cache = cache

    @abstractmethod
    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        """Call the backend. Must return one vector per text, in order."""

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts, reusing cached vectors.

        Raises:
            EmbeddingError: backend failed or returned the wrong count
        """
        results: list[Optional[list[float]]] = [None] * len(texts)
        missing: list[int] = []

        for i, text in enumerate(texts):
            cached = self.cache.get(self.model, text) if self.cache else None
            if cached:
                results[i] = cached
            else:
                missing.append(i)

        if missing:
            fresh = self._embed_many([texts[i] for i in missing])
            if len(fresh) != len(missing):
                raise EmbeddingError(
                    f"{self.name} returned {len(fresh)} embeddings for {len(missing)} texts"
                )
            for i, embedding in zip(missing, fresh):
                if not embedding:
                    raise EmbeddingError(f"{self.name} returned an empty embedding")
                results[i] = embedding
                if self.cache:
                    self.cache.set(self.model, texts[i], embedding)

        return results

    def _post(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict:
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise EmbeddingError(f"{self.name} request failed: {e}") from e
        if response.status_code != 200:
            raise EmbeddingError(
                f"{self.name} API error: {response.status_code} - {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise EmbeddingError(f"{self.name} returned invalid JSON: {e}") from e


class OpenAIProvider(EmbeddingProvider):
    name = "openai"
    model = OPENAI_MODEL

    def __init__(self, api_key: Optional[str] = None, cache: Optional[EmbeddingCache] = None, client=None):
        super().__init__(cache)
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key and client is None:
            raise EmbeddingError("OPENAI_API_KEY is not set")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        try:
            response = self.client.embeddings.create(model=self.model, input=texts)
        except Exception as e:
            raise EmbeddingError(f"OpenAI embedding failed: {e}") from e
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]


class VoyageProvider(EmbeddingProvider):
    name = "voyage"
    model = VOYAGE_MODEL

    def __init__(self, api_key: Optional[str] = None, cache: Optional[EmbeddingCache] = None):
        super().__init__(cache)
        self.api_key = api_key or os.getenv("VOYAGE_API_KEY")
        if not self.api_key:
            raise EmbeddingError("VOYAGE_API_KEY is not set")

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        data = self._post(
            VOYAGE_URL,
            {"model": self.model, "input": texts},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        items = data.get("data") or []
        items = sorted(items, key=lambda item: item.get("index", 0))
        return [item.get("embedding") or [] for item in items]


class GeminiProvider(EmbeddingProvider):
    name = "gemini"
    model = GEMINI_MODEL

    def __init__(self, api_key: Optional[str] = None, cache: Optional[EmbeddingCache] = None):
        super().__init__(cache)
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise EmbeddingError("GEMINI_API_KEY is not set")

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        data = self._post(
            GEMINI_URL.format(model=self.model),
            {
                "requests": [
                    {"model": self.model, "content": {"parts": [{"text": text}]}}
                    for text in texts
                ]
            },
            headers={"x-goog-api-key": self.api_key},
        )
        return [e.get("values") or [] for e in data.get("embeddings") or []]


class OllamaProvider(EmbeddingProvider):
    """Local Ollama server; one request per text."""

    name = "ollama"
    model = OLLAMA_MODEL

    def __init__(self, base_url: Optional[str] = None, cache: Optional[EmbeddingCache] = None):
        super().__init__(cache)
        self.base_url = (base_url or os.getenv("OLLAMA_URL") or OLLAMA_URL).rstrip("/")

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        return [
            self._post(
                f"{self.base_url}/api/embeddings",
                {"model": self.model, "prompt": text},
            ).get("embedding") or []
            for text in texts
        ]


def create_embedding_provider(
    environ: Optional[Mapping[str, str]] = None,
    cache: Optional[EmbeddingCache] = None,
) -> EmbeddingProvider:
    """OpenAI, then Voyage, then Gemini by API key; Ollama otherwise."""
    env = os.environ if environ is None else environ

    if env.get("OPENAI_API_KEY"):
        provider = OpenAIProvider(api_key=env["OPENAI_API_KEY"], cache=cache)
    elif env.get("VOYAGE_API_KEY"):
        provider = VoyageProvider(api_key=env["VOYAGE_API_KEY"], cache=cache)
    elif env.get("GEMINI_API_KEY"):
        provider = GeminiProvider(api_key=env["GEMINI_API_KEY"], cache=cache)
    else:
        provider = OllamaProvider(base_url=env.get("OLLAMA_URL"), cache=cache)

    logger.info(f"Using {provider.name} for embeddings ({provider.model})")
    return provider
