"""
Row aggregator: groups resolved cells by parent row, first-seen wins on duplicate ids.
Group order and member order reflect discovery order across steps.
"""
from __future__ import annotations

import logging
from typing import Iterable

from core.schema import Block, StepResult
from pipeline.retrieval.events import EventSink, LoggingEventSink


class AggregationInvariantError(RuntimeError):
    """A row group violated its membership invariants. Fatal; never retried."""


class RowAggregator:
    """Incremental row grouping for one retrieval call. Not shared across calls."""

    def __init__(self, sink: EventSink | None = None) -> None:
        self.sink = sink or LoggingEventSink()
        self._groups: dict[str, list[Block]] = {}
        self._seen: dict[str, set[str]] = {}
        self.dropped_missing_parent = 0
        self.dropped_duplicates = 0

    def add(self, records: Iterable[Block], step_index: int | None = None) -> None:
        for record in records:
            row_id = record.parent_id
            if not row_id:
                self.dropped_missing_parent += 1
                self.sink.emit(
                    "record_missing_parent",
                    logging.WARNING,
                    record_id=record.id,
                    step_index=step_index,
                )
                continue
            seen = self._seen.setdefault(row_id, set())
            group = self._groups.setdefault(row_id, [])
            if record.id in seen:
                self.dropped_duplicates += 1
                continue
            seen.add(record.id)
            group.append(record)

    def add_result(self, result: StepResult, step_index: int | None = None) -> None:
        # StepIgnored carries no records
        self.add(result.records, step_index=step_index)

    def groups(self) -> dict[str, list[Block]]:
        """Row id -> cells, in first-encounter order. Verifies invariants before handing out copies."""
        out: dict[str, list[Block]] = {}
        for row_id, members in self._groups.items():
            ids = [m.id for m in members]
            if len(ids) != len(set(ids)):
                raise AggregationInvariantError(f"duplicate cell id in row group {row_id}")
            for m in members:
                if m.parent_id != row_id:
                    raise AggregationInvariantError(
                        f"cell {m.id} has parent {m.parent_id!r} but is grouped under {row_id!r}"
                    )
            out[row_id] = list(members)
        return out


def aggregate_rows(
    step_results: Iterable[StepResult],
    sink: EventSink | None = None,
) -> dict[str, list[Block]]:
    """Group the records of every step result (in plan order) by parent row id."""
    aggregator = RowAggregator(sink)
    for i, result in enumerate(step_results):
        aggregator.add_result(result, step_index=i)
    return aggregator.groups()
