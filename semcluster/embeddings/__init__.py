"""Embedding service module."""

from semcluster.embeddings.service import (
    EmbeddingService,
    HTTPEmbeddingService,
    ItemVectorizer,
    TextFileVectorizer,
)

__all__ = [
    "EmbeddingService",
    "HTTPEmbeddingService",
    "ItemVectorizer",
    "TextFileVectorizer",
]
