"""
Storage: block store lookup and keyword search, vector index scoping and ordering,
save/load determinism for blocks and index snapshots. Real filesystem, no mocks.
"""
from __future__ import annotations

import hashlib
import json
import tempfile
import unittest
from pathlib import Path

from core.schema import Block, BlockQuery, BlockType, CellProperties, ColumnRef
from pipeline.embedding.embedding_engine import FakeEmbeddingBackend
from pipeline.indexing.index_builder import build_vector_index
from storage.block_store import (
    InMemoryBlockStore,
    cell_text,
    load_block_store,
    load_blocks,
    save_block_store,
)
from storage.vector_index_store import (
    InMemoryVectorIndex,
    load_index,
    save_index,
)


def _cell(block_id: str, row: str, name: str, value: object, sheet: str = "s1") -> Block:
    return Block(
        id=block_id,
        type=BlockType.CELL,
        parent_id=row,
        sheet_id=sheet,
        properties=CellProperties(column=ColumnRef(id=f"col-{name.lower()}", name=name), value=value),
    )


def _blocks() -> list[Block]:
    return [
        Block(id="sheet", type=BlockType.SHEET, sheet_id="s1"),
        Block(id="r1", type=BlockType.ROW, parent_id="sheet", sheet_id="s1"),
        _cell("c1", "r1", "Name", "Alice Smith"),
        _cell("c2", "r1", "City", "Paris"),
        _cell("c3", "r2", "Name", "Bob Alice"),
        _cell("c4", "r2", "City", "Alice Springs alice"),
        _cell("c5", "r3", "Name", "Alice", sheet="s2"),
    ]


# ---------------------------------------------------------------------------
# Block store
# ---------------------------------------------------------------------------


class TestInMemoryBlockStore(unittest.TestCase):
    def test_get_block(self) -> None:
        store = InMemoryBlockStore(_blocks())
        self.assertEqual(store.get_block("c1").properties.value, "Alice Smith")
        self.assertIsNone(store.get_block("nope"))

    def test_duplicate_ids_rejected(self) -> None:
        with self.assertRaises(ValueError):
            InMemoryBlockStore([_cell("c1", "r1", "A", 1), _cell("c1", "r1", "B", 2)])

    def test_keyword_search_scoped_to_sheet_and_cells(self) -> None:
        store = InMemoryBlockStore(_blocks())
        found = store.find_blocks(BlockQuery(sheet_id="s1", keywords=("ALICE",), limit=25))
        self.assertEqual({b.id for b in found}, {"c1", "c3", "c4"})
        self.assertTrue(all(b.is_cell and b.sheet_id == "s1" for b in found))
        # c4 mentions alice twice
        self.assertEqual(found[0].id, "c4")

    def test_keyword_search_filters_and_limit(self) -> None:
        store = InMemoryBlockStore(_blocks())
        by_row = store.find_blocks(BlockQuery(sheet_id="s1", keywords=("alice",), limit=25, row_ids=("r2",)))
        self.assertEqual({b.id for b in by_row}, {"c3", "c4"})
        by_column = store.find_blocks(BlockQuery(sheet_id="s1", keywords=("alice",), limit=25, column_ids=("col-name",)))
        self.assertEqual({b.id for b in by_column}, {"c1", "c3"})
        limited = store.find_blocks(BlockQuery(sheet_id="s1", keywords=("alice",), limit=1))
        self.assertEqual(len(limited), 1)

    def test_blank_keywords_match_nothing(self) -> None:
        store = InMemoryBlockStore(_blocks())
        self.assertEqual(store.find_blocks(BlockQuery(sheet_id="s1", keywords=("  ",), limit=5)), [])

    def test_cell_text(self) -> None:
        self.assertEqual(cell_text(_cell("c", "r", "Age", 3.0)), "Age: 3")

    def test_save_load_blocks(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "blocks.json"
            save_block_store(_blocks(), path)
            loaded = load_blocks(path)
            self.assertEqual(sorted(loaded, key=lambda b: b.id), sorted(_blocks(), key=lambda b: b.id))
            self.assertEqual(len(load_block_store(path)), len(_blocks()))

    def test_load_blocks_fails_loudly(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "blocks.json"
            path.write_text(json.dumps([{"id": "x"}]), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_blocks(path)
            with self.assertRaises(FileNotFoundError):
                load_blocks(Path(tmp) / "missing.json")


# ---------------------------------------------------------------------------
# Vector index
# ---------------------------------------------------------------------------


class TestVectorIndex(unittest.TestCase):
    def test_exact_text_ranks_first_and_scope_applies(self) -> None:
        backend = FakeEmbeddingBackend()
        snapshot = build_vector_index(_blocks(), backend, "fake-v1")
        self.assertEqual(len(snapshot.entries), 5)
        index = InMemoryVectorIndex(snapshot)

        query = backend.generate_embedding("City: Paris")
        matches = index.query(query, {"sheet_id": "s1"}, 15)
        self.assertEqual(matches[0].id, "c2")
        self.assertAlmostEqual(matches[0].score, 1.0)
        self.assertEqual({m.id for m in matches}, {"c1", "c2", "c3", "c4"})
        self.assertEqual(matches[0].metadata, {"sheet_id": "s1", "row_id": "r1", "column_id": "col-city"})

        self.assertEqual(len(index.query(query, {"sheet_id": "s1"}, 2)), 2)
        self.assertEqual([m.id for m in index.query(query, {"sheet_id": "s2"}, 15)], ["c5"])

    def test_save_load_byte_identical(self) -> None:
        backend = FakeEmbeddingBackend()
        with tempfile.TemporaryDirectory() as tmp:
            p1, p2 = Path(tmp) / "a.json", Path(tmp) / "b.json"
            save_index(build_vector_index(_blocks(), backend, "fake-v1"), p1)
            save_index(build_vector_index(list(reversed(_blocks())), backend, "fake-v1"), p2)
            self.assertEqual(hashlib.sha256(p1.read_bytes()).hexdigest(), hashlib.sha256(p2.read_bytes()).hexdigest())
            loaded = load_index(p1)
            self.assertEqual(loaded.index_version_id, "fake-v1")
            self.assertEqual(loaded.embedding_model, backend.embedding_model)
            query = backend.generate_embedding("Name: Alice Smith")
            self.assertEqual(
                [m.id for m in InMemoryVectorIndex(loaded).query(query, {}, 3)],
                [m.id for m in InMemoryVectorIndex(build_vector_index(_blocks(), backend, "fake-v1")).query(query, {}, 3)],
            )

    def test_load_index_missing_field(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "index.json"
            path.write_text(json.dumps({"index_version_id": "v1", "entries": []}), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_index(path)


if __name__ == "__main__":
    unittest.main()
