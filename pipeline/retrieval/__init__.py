"""Retrieval pipeline: step execution, row aggregation and evidence consolidation."""

from pipeline.retrieval.bm25_backend import Bm25Backend
from pipeline.retrieval.events import (
    EventSink,
    LoggingEventSink,
    RecordedEvent,
    RecordingEventSink,
)
from pipeline.retrieval.evidence_consolidator import (
    consolidate_evidence,
    consolidate_row,
    render_row_content,
)
from pipeline.retrieval.row_aggregator import (
    AggregationInvariantError,
    RowAggregator,
    aggregate_rows,
)
from pipeline.retrieval.step_executor import StepExecutor

__all__ = [
    "AggregationInvariantError",
    "Bm25Backend",
    "EventSink",
    "LoggingEventSink",
    "RecordedEvent",
    "RecordingEventSink",
    "RowAggregator",
    "StepExecutor",
    "aggregate_rows",
    "consolidate_evidence",
    "consolidate_row",
    "render_row_content",
]
