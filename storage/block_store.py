"""
Block storage: point lookup by id and filtered keyword search over cells.
In-memory implementation backed by a JSON file (deterministic ordering on save).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Protocol

from core.schema import Block, BlockQuery, value_text
from pipeline.retrieval.bm25_backend import Bm25Backend

logger = logging.getLogger("sheetrag.storage")


class BlockStore(Protocol):
    def get_block(self, block_id: str) -> Block | None:
        """Block by id, or None when not found."""
        ...

    def find_blocks(self, query: BlockQuery) -> list[Block]:
        """Cells in query.sheet_id matching any keyword, honoring row/column filters, at most query.limit."""
        ...


def cell_text(block: Block) -> str:
    """Searchable/embeddable text of a cell: '<column name>: <value>'."""
    name = block.column_name or ""
    text = value_text(block.properties.value)
    return f"{name}: {text}" if name else text


class InMemoryBlockStore:
    """
    BlockStore over an in-memory list of blocks. Keyword matches are
    case-insensitive substring matches on cell text, ordered by BM25 score
    (descending) then block id.
    """

    def __init__(self, blocks: Iterable[Block]) -> None:
        self._blocks: dict[str, Block] = {}
        for block in blocks:
            if block.id in self._blocks:
                raise ValueError(f"duplicate block id: {block.id}")
            self._blocks[block.id] = block

    def __len__(self) -> int:
        return len(self._blocks)

    def blocks(self) -> list[Block]:
        return list(self._blocks.values())

    def get_block(self, block_id: str) -> Block | None:
        return self._blocks.get(block_id)

    def find_blocks(self, query: BlockQuery) -> list[Block]:
        if query.limit < 1:
            raise ValueError("limit must be >= 1")
        needles = [k.strip().lower() for k in query.keywords if k and k.strip()]
        if not needles:
            return []
        row_ids = set(query.row_ids) if query.row_ids else None
        column_ids = set(query.column_ids) if query.column_ids else None

        candidates: list[tuple[Block, str]] = []
        for block in self._blocks.values():
            if not block.is_cell or block.sheet_id != query.sheet_id:
                continue
            if row_ids is not None and block.parent_id not in row_ids:
                continue
            if column_ids is not None and block.column_id not in column_ids:
                continue
            text = cell_text(block)
            lowered = text.lower()
            if any(n in lowered for n in needles):
                candidates.append((block, text))
        if not candidates:
            return []

        scores = Bm25Backend([text for _, text in candidates]).score(list(query.keywords))
        ranked = sorted(zip(scores, (b for b, _ in candidates)), key=lambda x: (-x[0], x[1].id))
        result = [block for _, block in ranked[: query.limit]]
        logger.debug(
            "find_blocks sheet_id=%s keywords=%d matched=%d returned=%d",
            query.sheet_id,
            len(needles),
            len(candidates),
            len(result),
        )
        return result


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def save_block_store(blocks: Iterable[Block], path: Path | str) -> None:
    """Write blocks as a JSON array sorted by id, keys sorted."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [b.to_serializable() for b in sorted(blocks, key=lambda b: b.id)]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, sort_keys=True, indent=2, ensure_ascii=False)


def load_blocks(path: Path | str) -> list[Block]:
    """
    Load blocks from JSON: an array of block objects or {"blocks": [...]}.
    Fails loudly on a missing file or invalid block.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Blocks file not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "blocks" in data:
        data = data["blocks"]
    if not isinstance(data, list):
        raise ValueError(f"Blocks root must be list or {{blocks: [...]}}, got {type(data).__name__}")
    blocks: list[Block] = []
    for i, item in enumerate(data):
        try:
            blocks.append(Block.from_serializable(item))
        except ValueError as e:
            raise ValueError(f"Block at index {i}: {e}") from e
    return blocks


def load_block_store(path: Path | str) -> InMemoryBlockStore:
    return InMemoryBlockStore(load_blocks(path))
