"""Pluggable embedding providers and the chunk embedding backfill service.

Providers:
  - HashEmbeddingProvider: deterministic, offline. Each token is hashed into
    3 of 384 positions (seeds 17 / 131 / 521, weights 1 / 0.6 / 0.3, scaled
    by 1/sqrt(len(token))) and the vector is L2-normalized.
  - LiteLLMEmbeddingProvider: remote model via litellm.embedding().

One index generation uses one provider. Stored vectors from another
(model, dimensions) pair are discarded by a full reindex before backfilling.
"""

from __future__ import annotations

import math
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass

from chatindex.config import EmbeddingCfg
from chatindex.db.connection import transaction
from chatindex.db.repository import Repository
from chatindex.rag import llm_client
from chatindex.text import tokenize_for_search

DEFAULT_BATCH_SIZE = 128

HASH_MODEL = "hash-embedding-v1"
HASH_DIMENSIONS = 384
_HASH_SEEDS: tuple[tuple[int, float], ...] = ((17, 1.0), (131, 0.6), (521, 0.3))


class EmbeddingProviderError(RuntimeError):
    """Raised when a provider fails or returns vectors of the wrong shape."""


class EmbeddingProvider(ABC):
    """Batch text → vector model with a fixed name and dimensionality."""

    model: str
    dimensions: int

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, same order, same length."""


class HashEmbeddingProvider(EmbeddingProvider):
    """Feature-hashing embedder; needs no network and no model files."""

    model = HASH_MODEL
    dimensions = HASH_DIMENSIONS

    @staticmethod
    def _hash_token(token: str, seed: int) -> int:
        h = seed
        for ch in token:
            h = (h * 31 + ord(ch)) & 0xFFFFFFFF
        return h

    def embed_one(self, text: str) -> list[float]:
        vec = [0.0] * self.dimensions
        tokens = tokenize_for_search(text)
        if not tokens:
            return vec

        for token in tokens:
            weight = 1.0 / math.sqrt(len(token))
            for seed, factor in _HASH_SEEDS:
                vec[self._hash_token(token, seed) % self.dimensions] += weight * factor

        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]

    def embed(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_one(text) for text in texts]


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Remote embedding model reached through LiteLLM.

    Args:
        model:      LiteLLM embedding model string (provider/model format).
        dimensions: Vector length the model returns.
    """

    def __init__(self, model: str = "openai/text-embedding-3-small", dimensions: int = 1536) -> None:
        self.model = model
        self.dimensions = dimensions
        self._key_checked = False

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        if not self._key_checked:
            llm_client.validate_api_key(self.model)
            self._key_checked = True

        try:
            vectors = llm_client.embed_batch(self.model, texts)
        except Exception as exc:
            raise EmbeddingProviderError(
                f"Embedding request to '{self.model}' failed: {exc}"
            ) from exc

        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Embedding response has {len(vectors)} vectors for {len(texts)} inputs."
            )
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingProviderError(
                    f"Model '{self.model}' returned {len(vector)} dimensions, "
                    f"expected {self.dimensions}. Set embedding.dimensions to match."
                )
        return vectors


def create_embedding_provider(cfg: EmbeddingCfg) -> EmbeddingProvider:
    """Build the provider selected by *cfg* ('hash' or 'litellm')."""
    if cfg.provider == "litellm":
        return LiteLLMEmbeddingProvider(cfg.model, cfg.dimensions)
    return HashEmbeddingProvider()


@dataclass
class IndexResult:
    indexed: int
    remaining: int


class EmbeddingService:
    """Embed queries and keep chunk_embeddings in sync with chunks.

    Args:
        repo:     Open Repository instance.
        provider: Embedding provider for this index generation.
    """

    def __init__(self, repo: Repository, provider: EmbeddingProvider) -> None:
        self._repo = repo
        self._provider = provider

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    def provider_info(self) -> dict[str, object]:
        return {"model": self._provider.model, "dimensions": self._provider.dimensions}

    def embed_query(self, query: str) -> list[float]:
        vectors = self._provider.embed([query])
        return vectors[0] if vectors else []

    def has_embeddings(self) -> bool:
        """True when vectors are stored and all of them come from the active provider."""
        current = (self._provider.model, self._provider.dimensions)
        return self._repo.embedding_signatures() == {current}

    def index_missing(self, batch_size: int = DEFAULT_BATCH_SIZE) -> IndexResult:
        """Embed every chunk without a vector, *batch_size* chunks per transaction.

        A provider failure aborts the call; batches committed before it stay.

        Raises:
            ValueError: If *batch_size* < 1.
            EmbeddingProviderError: If the provider fails.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        self._discard_foreign_vectors()

        indexed = 0
        while True:
            rows = self._repo.list_chunks_missing_embeddings(batch_size)
            if not rows:
                break

            vectors = self._provider.embed([content for _, content in rows])
            if len(vectors) != len(rows):
                raise EmbeddingProviderError(
                    f"Provider returned {len(vectors)} vectors for {len(rows)} chunks."
                )
            self._repo.upsert_embeddings(
                self._provider.model,
                [(chunk_id, vector) for (chunk_id, _), vector in zip(rows, vectors)],
            )
            indexed += len(rows)

        return IndexResult(indexed=indexed, remaining=self._repo.count_missing_embeddings())

    def reindex_all(self, batch_size: int = DEFAULT_BATCH_SIZE) -> IndexResult:
        """Delete every stored vector, then backfill all chunks."""
        with transaction(self._repo.conn):
            self._repo.delete_all_embeddings()
        return self.index_missing(batch_size)

    def _discard_foreign_vectors(self) -> None:
        """Drop all vectors if any were produced by a different model or size."""
        current = (self._provider.model, self._provider.dimensions)
        foreign = self._repo.embedding_signatures() - {current}
        if not foreign:
            return
        names = ", ".join(f"{model} ({dims}d)" for model, dims in sorted(foreign))
        warnings.warn(
            f"Stored embeddings from {names} do not match the active provider "
            f"{current[0]} ({current[1]}d) — rebuilding all embeddings.",
            UserWarning,
            stacklevel=3,
        )
        with transaction(self._repo.conn):
            self._repo.delete_all_embeddings()
