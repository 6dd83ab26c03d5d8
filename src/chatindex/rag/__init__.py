"""Retrieval: embedding providers, ranking, search and evaluation."""

from chatindex.rag.embeddings import (
    EmbeddingProvider,
    EmbeddingProviderError,
    EmbeddingService,
    HashEmbeddingProvider,
    IndexResult,
    LiteLLMEmbeddingProvider,
    create_embedding_provider,
)
from chatindex.rag.search import Answer, Citation, SearchHit, SearchService

__all__ = [
    "Answer",
    "Citation",
    "EmbeddingProvider",
    "EmbeddingProviderError",
    "EmbeddingService",
    "HashEmbeddingProvider",
    "IndexResult",
    "LiteLLMEmbeddingProvider",
    "SearchHit",
    "SearchService",
    "create_embedding_provider",
]
