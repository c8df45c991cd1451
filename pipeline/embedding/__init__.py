"""
Embedding pipeline: pluggable backends that turn text into vectors.
Deterministic fake backend (test-only), BGE via sentence-transformers, Ollama.
"""
from pipeline.embedding.embedding_engine import (
    AbstractEmbeddingBackend,
    BgeEmbeddingBackend,
    EmbeddingBackend,
    FakeEmbeddingBackend,
    OllamaEmbeddingBackend,
    is_test_only_index_version,
    make_embedding_backend,
)

__all__ = [
    "AbstractEmbeddingBackend",
    "BgeEmbeddingBackend",
    "EmbeddingBackend",
    "FakeEmbeddingBackend",
    "OllamaEmbeddingBackend",
    "is_test_only_index_version",
    "make_embedding_backend",
]
