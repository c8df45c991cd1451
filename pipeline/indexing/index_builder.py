"""
Vector index builder: embeds every cell block as '<column>: <value>' and records
sheet_id, row_id and column_id metadata so semantic search can be scoped to a sheet.
"""
from __future__ import annotations

import logging
from typing import Iterable

from core.schema import Block
from pipeline.embedding.embedding_engine import EmbeddingBackend
from storage.block_store import cell_text
from storage.vector_index_store import IndexEntry, VectorIndexSnapshot

logger = logging.getLogger("sheetrag.indexing")


def _entry_metadata(block: Block) -> dict[str, str]:
    metadata: dict[str, str] = {}
    if block.sheet_id:
        metadata["sheet_id"] = block.sheet_id
    if block.parent_id:
        metadata["row_id"] = block.parent_id
    if block.column_id:
        metadata["column_id"] = block.column_id
    return metadata


def build_vector_index(
    blocks: Iterable[Block],
    backend: EmbeddingBackend,
    index_version_id: str,
) -> VectorIndexSnapshot:
    """
    Build an index snapshot from the cell blocks. Non-cell blocks are skipped.
    Entries follow block id order so the same blocks always give the same snapshot.
    """
    if not index_version_id.strip():
        raise ValueError("index_version_id must be non-empty")
    cells = sorted((b for b in blocks if b.is_cell), key=lambda b: b.id)
    vectors = backend.embed_texts([cell_text(c) for c in cells])
    if len(vectors) != len(cells):
        raise ValueError(f"cell/embedding count mismatch: {len(cells)} vs {len(vectors)}")
    entries = [
        IndexEntry(block_id=c.id, vector=v, metadata=_entry_metadata(c))
        for c, v in zip(cells, vectors)
    ]
    logger.info(
        "index_built index_version=%s model=%s entries=%d",
        index_version_id,
        backend.embedding_model,
        len(entries),
    )
    return VectorIndexSnapshot(
        index_version_id=index_version_id,
        embedding_model=backend.embedding_model,
        entries=entries,
    )
