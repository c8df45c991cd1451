"""
Evidence consolidator: one Evidence per row group.
Content depends only on the member set: cells are stably sorted by column name
before rendering, so discovery order never changes the output bytes.
"""
from __future__ import annotations

from typing import Mapping

from core.schema import Block, Evidence, EvidenceMetadata, value_text
from pipeline.retrieval.row_aggregator import AggregationInvariantError

ROW_DATA_HEADER = "Row Data:"
COLUMN_ID_PREFIX_LENGTH = 8


def column_sort_key(cell: Block) -> str:
    return cell.column_name or ""


def column_label(cell: Block) -> str:
    """Column name, else Column(<first 8 chars of column id>), else Column(unknown)."""
    name = cell.column_name
    if name:
        return name
    column_id = cell.column_id
    if column_id:
        return f"Column({column_id[:COLUMN_ID_PREFIX_LENGTH]})"
    return "Column(unknown)"


def render_row_content(cells: list[Block]) -> str:
    """Cells must already be in display order."""
    content = ROW_DATA_HEADER + "\n"
    for cell in cells:
        content += f"- {column_label(cell)}: {value_text(cell.properties.value)} [cell:{cell.id}]\n"
    return content.rstrip()


def consolidate_row(row_id: str, cells: list[Block], sheet_id: str) -> Evidence:
    ordered = sorted(cells, key=column_sort_key)
    cell_ids = tuple(c.id for c in ordered)
    if len(set(cell_ids)) != len(cell_ids):
        raise AggregationInvariantError(f"duplicate cell id in row {row_id}")
    return Evidence(
        block_id=row_id,
        content=render_row_content(ordered),
        row_id=row_id,
        sheet_id=sheet_id,
        column_id=ordered[0].column_id,
        metadata=EvidenceMetadata(
            column_count=len(ordered),
            columns=tuple(c.column_name for c in ordered),
            cell_ids=cell_ids,
        ),
    )


def consolidate_evidence(groups: Mapping[str, list[Block]], sheet_id: str) -> list[Evidence]:
    """One Evidence per non-empty group, in the mapping's iteration order."""
    evidence: list[Evidence] = []
    for row_id, cells in groups.items():
        if not cells:
            continue
        evidence.append(consolidate_row(row_id, cells, sheet_id))
    return evidence
