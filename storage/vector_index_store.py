"""
Vector index for cell embeddings: in-memory similarity search with metadata filters,
plus save/load of index snapshots to the local filesystem (JSON only, deterministic ordering).
Deterministic for fixed query vector, filter and top_k (brute-force search; no ANN).
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol

# Deterministic float format for serialization (no scientific notation drift).
_FLOAT_FORMAT = ".17g"


@dataclass(frozen=True)
class VectorMatch:
    """One similarity hit: block id, score and the entry's metadata."""
    id: str
    score: float
    metadata: dict[str, str] = field(default_factory=dict)


class VectorIndex(Protocol):
    def query(
        self,
        vector: tuple[float, ...],
        filter: Mapping[str, str],
        top_k: int,
    ) -> list[VectorMatch]:
        """At most top_k matches whose metadata equals every filter item, best first."""
        ...


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexEntry:
    """One index row: block identity, vector, and scoping metadata (sheet_id, row_id, column_id)."""
    block_id: str
    vector: tuple[float, ...]
    metadata: dict[str, str] = field(default_factory=dict)

    def to_serializable(self) -> dict[str, Any]:
        """Stable dict for JSON. Vector as deterministic float strings for byte-identical output."""
        return {
            "block_id": self.block_id,
            "vector": [format(v, _FLOAT_FORMAT) for v in self.vector],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_serializable(cls, data: dict[str, Any]) -> IndexEntry:
        """Deserialize from dict. Fails loudly on missing or invalid fields."""
        for key in ("block_id", "vector"):
            if key not in data:
                raise ValueError(f"IndexEntry missing required field: {key!r}")
        block_id = data["block_id"]
        raw_vector = data["vector"]
        metadata = data.get("metadata") or {}
        if not isinstance(block_id, str):
            raise ValueError(f"IndexEntry block_id must be str, got {type(block_id).__name__}")
        if not isinstance(raw_vector, list):
            raise ValueError(f"IndexEntry vector must be list, got {type(raw_vector).__name__}")
        if not isinstance(metadata, dict):
            raise ValueError(f"IndexEntry metadata must be dict, got {type(metadata).__name__}")
        try:
            vector = tuple(float(x) for x in raw_vector)
        except (TypeError, ValueError) as e:
            raise ValueError(f"IndexEntry vector must be list of numbers: {e}") from e
        return cls(
            block_id=block_id,
            vector=vector,
            metadata={str(k): str(v) for k, v in metadata.items() if v is not None},
        )


@dataclass
class VectorIndexSnapshot:
    index_version_id: str
    embedding_model: str
    entries: list[IndexEntry]

    def to_serializable(self) -> dict[str, Any]:
        """Stable dict for JSON. Entries sorted by block_id for deterministic ordering."""
        sorted_entries = sorted(self.entries, key=lambda e: e.block_id)
        return {
            "index_version_id": self.index_version_id,
            "embedding_model": self.embedding_model,
            "entries": [e.to_serializable() for e in sorted_entries],
        }

    @classmethod
    def from_serializable(cls, data: dict[str, Any]) -> VectorIndexSnapshot:
        for key in ("index_version_id", "embedding_model", "entries"):
            if key not in data:
                raise ValueError(f"VectorIndexSnapshot missing required field: {key}")
        index_version_id = data["index_version_id"]
        if not isinstance(index_version_id, str) or not index_version_id.strip():
            raise ValueError("VectorIndexSnapshot index_version_id must be non-empty str")
        raw_entries = data["entries"]
        if not isinstance(raw_entries, list):
            raise ValueError(f"VectorIndexSnapshot entries must be list, got {type(raw_entries).__name__}")
        return cls(
            index_version_id=index_version_id,
            embedding_model=str(data["embedding_model"]),
            entries=[IndexEntry.from_serializable(item) for item in raw_entries],
        )


# ---------------------------------------------------------------------------
# Similarity (deterministic)
# ---------------------------------------------------------------------------


def _cosine_similarity(a: tuple[float, ...], b: tuple[float, ...]) -> float:
    """Cosine similarity in [-1, 1]. Deterministic. Raises if dimension mismatch."""
    if len(a) != len(b):
        raise ValueError(f"vector dimension mismatch: {len(a)} vs {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if na == 0 or nb == 0:
        return 0.0
    return dot / (na * nb)


class InMemoryVectorIndex:
    """Brute-force VectorIndex over a snapshot. Ties broken by block_id."""

    def __init__(self, snapshot: VectorIndexSnapshot) -> None:
        self.snapshot = snapshot

    @property
    def index_version_id(self) -> str:
        return self.snapshot.index_version_id

    def query(
        self,
        vector: tuple[float, ...],
        filter: Mapping[str, str],
        top_k: int,
    ) -> list[VectorMatch]:
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        scored: list[tuple[float, IndexEntry]] = []
        for entry in self.snapshot.entries:
            if any(entry.metadata.get(k) != v for k, v in filter.items()):
                continue
            scored.append((_cosine_similarity(entry.vector, vector), entry))
        scored.sort(key=lambda x: (-x[0], x[1].block_id))
        return [
            VectorMatch(id=entry.block_id, score=score, metadata=dict(entry.metadata))
            for score, entry in scored[:top_k]
        ]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def save_index(index_snapshot: VectorIndexSnapshot, path: Path | str) -> None:
    """
    Persist an index snapshot to disk as JSON.
    Deterministic: same snapshot produces byte-identical file.
    """
    if not isinstance(index_snapshot, VectorIndexSnapshot):
        raise TypeError(
            f"index_snapshot must be VectorIndexSnapshot, got {type(index_snapshot).__name__}"
        )
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(index_snapshot.to_serializable(), f, sort_keys=True, indent=2, ensure_ascii=False)


def load_index(path: Path | str) -> VectorIndexSnapshot:
    """Load an index snapshot from disk. Fails loudly on missing fields or malformed JSON."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Index file not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Index root must be dict, got {type(data).__name__}")
    return VectorIndexSnapshot.from_serializable(data)
