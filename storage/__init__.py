"""Storage adapters: block store and persistent vector index."""

from storage.block_store import (
    BlockQuery,
    BlockStore,
    InMemoryBlockStore,
    cell_text,
    load_block_store,
    load_blocks,
    save_block_store,
)
from storage.vector_index_store import (
    IndexEntry,
    InMemoryVectorIndex,
    VectorIndex,
    VectorIndexSnapshot,
    VectorMatch,
    load_index,
    save_index,
)

__all__ = [
    "BlockQuery",
    "BlockStore",
    "IndexEntry",
    "InMemoryBlockStore",
    "InMemoryVectorIndex",
    "VectorIndex",
    "VectorIndexSnapshot",
    "VectorMatch",
    "cell_text",
    "load_block_store",
    "load_blocks",
    "load_index",
    "save_block_store",
    "save_index",
]
