"""
Embedding engine: pluggable backends that turn text into vectors.
Used for query embedding (semantic steps) and for building the cell vector index.
"""
from __future__ import annotations

import hashlib
import logging
import os
import struct
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

logger = logging.getLogger("sheetrag.embedding")

# Index versions starting with this prefix are test-only (fake backend).
TEST_ONLY_INDEX_VERSION_PREFIX = "fake"


# ---------------------------------------------------------------------------
# Backend abstraction
# ---------------------------------------------------------------------------

@runtime_checkable
class EmbeddingBackend(Protocol):
    """
    Protocol for embedding generation. Deterministic enough for a fixed backend
    and input; may raise on service failure.
    """
    embedding_model: str

    def generate_embedding(self, text: str) -> tuple[float, ...]:
        """Embed one text."""
        ...

    def embed_texts(self, texts: list[str]) -> list[tuple[float, ...]]:
        """Embed many texts, one vector per text in the same order."""
        ...


class AbstractEmbeddingBackend(ABC):
    """Abstract base for embedding backends. Implements the same contract as EmbeddingBackend."""
    embedding_model: str = ""

    @abstractmethod
    def embed_texts(self, texts: list[str]) -> list[tuple[float, ...]]:
        ...

    def generate_embedding(self, text: str) -> tuple[float, ...]:
        return self.embed_texts([text])[0]


# ---------------------------------------------------------------------------
# Deterministic fake backend (no external services, no ML libs)
# ---------------------------------------------------------------------------

FAKE_EMBEDDING_VECTOR_SIZE = 8
FAKE_EMBEDDING_MODEL_ID = "fake_v1"


def _deterministic_floats(seed_bytes: bytes, count: int) -> tuple[float, ...]:
    """
    Generate `count` floats in [-1, 1] from a seed.
    Uses SHA256(seed_bytes) then deterministic expansion so output is stable.
    """
    h = hashlib.sha256(seed_bytes).digest()
    seed = struct.unpack("<I", h[:4])[0]
    out: list[float] = []
    for _ in range(count):
        seed = (seed * 1103515245 + 12345) & 0x7FFF_FFFF
        out.append((seed / 0x7FFF_FFFF) * 2.0 - 1.0)
    return tuple(out)


def is_test_only_index_version(index_version_id: str) -> bool:
    """True if this index version was built with the fake backend."""
    return index_version_id.strip().startswith(TEST_ONLY_INDEX_VERSION_PREFIX)


class FakeEmbeddingBackend(AbstractEmbeddingBackend):
    """
    Deterministic fake backend for testing only. Vector size fixed at 8.
    Same text always yields the same vector, so a query equal to an indexed
    cell text scores cosine 1.0 against it.
    """
    vector_size: int = FAKE_EMBEDDING_VECTOR_SIZE
    embedding_model: str = FAKE_EMBEDDING_MODEL_ID

    def embed_texts(self, texts: list[str]) -> list[tuple[float, ...]]:
        return [_deterministic_floats(t.encode("utf-8"), self.vector_size) for t in texts]


# ---------------------------------------------------------------------------
# Real local embedding backend (bge-base via sentence-transformers)
# ---------------------------------------------------------------------------

BGE_BASE_MODEL_ID = "BAAI/bge-base-en-v1.5"
BGE_EMBEDDING_MODEL_ID = "bge-base-en-v1.5"
BGE_VECTOR_SIZE = 768


class BgeEmbeddingBackend(AbstractEmbeddingBackend):
    """
    Local embedding backend using bge-base (sentence-transformers), ~768 dimensions.
    Normalized vectors, so cosine similarity equals dot product.
    """
    vector_size: int = BGE_VECTOR_SIZE
    embedding_model: str = BGE_EMBEDDING_MODEL_ID

    def __init__(self, model_name: str = BGE_BASE_MODEL_ID) -> None:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "The 'sentence-transformers' package is required for BgeEmbeddingBackend. "
                "Install it with: pip install sentence-transformers"
            ) from None
        self._model = SentenceTransformer(model_name)

    def embed_texts(self, texts: list[str]) -> list[tuple[float, ...]]:
        if not texts:
            return []
        vectors = self._model.encode(
            texts,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [tuple(float(x) for x in vec) for vec in vectors]


# ---------------------------------------------------------------------------
# Ollama embedding backend
# ---------------------------------------------------------------------------

_DEFAULT_OLLAMA_HOST = os.environ.get("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


class OllamaEmbeddingBackend(AbstractEmbeddingBackend):
    """
    Embeddings from a local Ollama server (Client.embed).
    Connection and timeout errors propagate; the retrieval step boundary isolates them.
    """

    def __init__(
        self,
        model: str = OLLAMA_DEFAULT_EMBEDDING_MODEL,
        base_url: str | None = None,
        keep_alive: str | int = "10m",
    ) -> None:
        try:
            from ollama import Client as OllamaClient
        except ImportError:
            raise ImportError(
                "The 'ollama' package is required for OllamaEmbeddingBackend. "
                "Install it with: pip install ollama"
            ) from None
        self.embedding_model = model
        self._base_url = (base_url or _DEFAULT_OLLAMA_HOST).rstrip("/")
        self._keep_alive = keep_alive
        self._client = OllamaClient(host=self._base_url)

    def embed_texts(self, texts: list[str]) -> list[tuple[float, ...]]:
        if not texts:
            return []
        response = self._client.embed(model=self.embedding_model, input=texts, keep_alive=self._keep_alive)
        vectors = [tuple(float(x) for x in vec) for vec in response.embeddings]
        if len(vectors) != len(texts):
            raise RuntimeError(
                f"ollama returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        logger.debug("ollama_embed model=%s inputs=%d", self.embedding_model, len(texts))
        return vectors


def make_embedding_backend(name: str) -> EmbeddingBackend:
    """Backend by CLI name: 'fake', 'bge' or 'ollama'."""
    if name == "fake":
        return FakeEmbeddingBackend()
    if name == "bge":
        return BgeEmbeddingBackend()
    if name == "ollama":
        return OllamaEmbeddingBackend()
    raise ValueError(f"unknown embedding backend: {name!r}")
