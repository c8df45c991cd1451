"""
Row aggregation and evidence consolidation: first-seen dedup, missing parents,
deterministic rendering independent of discovery order, provenance tags.
"""
from __future__ import annotations

import itertools
import logging
import unittest

from core.schema import (
    Block,
    BlockType,
    CellProperties,
    ColumnRef,
    StepIgnored,
    StepRetrieved,
)
from pipeline.retrieval.events import RecordingEventSink
from pipeline.retrieval.evidence_consolidator import consolidate_evidence, consolidate_row
from pipeline.retrieval.row_aggregator import (
    AggregationInvariantError,
    RowAggregator,
    aggregate_rows,
)


def _cell(
    block_id: str,
    row: str | None = "row1",
    name: str | None = "Name",
    value: object = "v",
    column_id: str | None = "col-default",
) -> Block:
    column = None if (name is None and column_id is None) else ColumnRef(id=column_id, name=name)
    return Block(
        id=block_id,
        type=BlockType.CELL,
        parent_id=row,
        sheet_id="sheet1",
        properties=CellProperties(column=column, value=value),
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TestRowAggregation(unittest.TestCase):
    def test_first_seen_wins_across_steps(self) -> None:
        first = _cell("c1", value="from keyword")
        later = _cell("c1", value="from semantic")
        groups = aggregate_rows([StepRetrieved((first,)), StepRetrieved((later, _cell("c2")))])
        self.assertEqual(list(groups), ["row1"])
        self.assertEqual([c.id for c in groups["row1"]], ["c1", "c2"])
        self.assertEqual(groups["row1"][0].properties.value, "from keyword")

    def test_groups_in_first_encounter_order(self) -> None:
        groups = aggregate_rows(
            [
                StepRetrieved((_cell("a", row="r2"), _cell("b", row="r1"))),
                StepRetrieved((_cell("c", row="r3"), _cell("d", row="r2"))),
            ]
        )
        self.assertEqual(list(groups), ["r2", "r1", "r3"])
        self.assertEqual([c.id for c in groups["r2"]], ["a", "d"])

    def test_same_id_under_different_parents_stays_in_each_parent(self) -> None:
        # dedup is per row group only
        groups = aggregate_rows([StepRetrieved((_cell("x", row="r1"), _cell("x", row="r2")))])
        self.assertEqual([c.id for c in groups["r1"]], ["x"])
        self.assertEqual([c.id for c in groups["r2"]], ["x"])

    def test_missing_parent_dropped_with_warning(self) -> None:
        sink = RecordingEventSink()
        aggregator = RowAggregator(sink)
        aggregator.add([_cell("orphan", row=None), _cell("kept")], step_index=2)
        self.assertEqual(list(aggregator.groups()), ["row1"])
        self.assertEqual(aggregator.dropped_missing_parent, 1)
        warnings = sink.named("record_missing_parent")
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0].level, logging.WARNING)
        self.assertEqual(warnings[0].fields, {"record_id": "orphan", "step_index": 2})

    def test_ignored_step_contributes_nothing(self) -> None:
        groups = aggregate_rows([StepIgnored(reason="step_failed", error="OSError: x"), StepRetrieved((_cell("c1"),))])
        self.assertEqual([c.id for c in groups["row1"]], ["c1"])

    def test_invariant_violation_is_fatal(self) -> None:
        aggregator = RowAggregator(RecordingEventSink())
        aggregator.add([_cell("c1")])
        aggregator._groups["row1"].append(_cell("c9", row="elsewhere"))
        with self.assertRaises(AggregationInvariantError):
            aggregator.groups()


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


class TestEvidenceConsolidation(unittest.TestCase):
    def test_single_cell_scenario(self) -> None:
        cell_id = "3f2b8c1e-9a4d-4e2f-8b1a-0c9d8e7f6a5b"
        evidence = consolidate_evidence({"row1": [_cell(cell_id, name="Name", value="Alice")]}, "sheet1")
        self.assertEqual(len(evidence), 1)
        ev = evidence[0]
        self.assertEqual(ev.row_id, "row1")
        self.assertEqual(ev.block_id, "row1")
        self.assertEqual(ev.sheet_id, "sheet1")
        self.assertEqual(ev.content, f"Row Data:\n- Name: Alice [cell:{cell_id}]")
        self.assertTrue(ev.metadata.is_row_data)
        self.assertEqual(ev.metadata.column_count, 1)
        self.assertEqual(ev.metadata.columns, ("Name",))

    def test_sorted_by_column_name_with_missing_first(self) -> None:
        cells = [
            _cell("c-age", name="age", value=30, column_id="col-age"),
            _cell("c-name", name="Name", value="Bob", column_id="col-name"),
            _cell("c-anon", name=None, value=None, column_id="abcdef0123456789"),
            _cell("c-none", name=None, value="x", column_id=None),
        ]
        ev = consolidate_row("row1", cells, "sheet1")
        self.assertEqual(
            ev.content,
            "Row Data:\n"
            "- Column(abcdef01):  [cell:c-anon]\n"
            "- Column(unknown): x [cell:c-none]\n"
            "- Name: Bob [cell:c-name]\n"
            "- age: 30 [cell:c-age]",
        )
        self.assertEqual(ev.metadata.columns, (None, None, "Name", "age"))
        self.assertEqual(ev.metadata.cell_ids, ("c-anon", "c-none", "c-name", "c-age"))
        self.assertEqual(ev.column_id, "abcdef0123456789")

    def test_equal_column_names_keep_discovery_order(self) -> None:
        ev = consolidate_row("row1", [_cell("second", name="Tag"), _cell("first", name="Tag")], "sheet1")
        self.assertEqual(ev.metadata.cell_ids, ("second", "first"))

    def test_content_independent_of_discovery_order(self) -> None:
        cells = [
            _cell("c1", name="City", value="Paris", column_id="col-city"),
            _cell("c2", name="Name", value="Alice", column_id="col-name"),
            _cell("c3", name="Age", value=41, column_id="col-age"),
            _cell("c4", name=None, value=True, column_id="col-flag-0001"),
        ]
        outputs = set()
        for perm in itertools.permutations(cells):
            ev = consolidate_row("row1", list(perm), "sheet1")
            outputs.add((ev.content, ev.column_id, ev.metadata))
        self.assertEqual(len(outputs), 1)

    def test_no_duplicate_provenance_and_unique_rows(self) -> None:
        groups = aggregate_rows(
            [
                StepRetrieved((_cell("a", row="r1"), _cell("b", row="r2"))),
                StepRetrieved((_cell("a", row="r1"), _cell("c", row="r1", name="Other"))),
            ]
        )
        evidence = consolidate_evidence(groups, "sheet1")
        self.assertEqual([e.row_id for e in evidence], ["r1", "r2"])
        for ev in evidence:
            self.assertEqual(len(ev.metadata.cell_ids), len(set(ev.metadata.cell_ids)))
            self.assertEqual(ev.content.count("[cell:a]"), 1 if ev.row_id == "r1" else 0)

    def test_empty_groups_skipped(self) -> None:
        self.assertEqual(consolidate_evidence({"row1": []}, "sheet1"), [])

    def test_duplicate_member_is_fatal(self) -> None:
        with self.assertRaises(AggregationInvariantError):
            consolidate_row("row1", [_cell("c1"), _cell("c1")], "sheet1")


if __name__ == "__main__":
    unittest.main()
