"""
Retrieval agent: runs a retrieval plan step by step, groups the cells by row and
consolidates each row into one Evidence for the synthesis stage.

Steps run strictly in plan order (first-seen wins on duplicate cells needs a
fixed discovery order). Step failures are isolated; only aggregation or
consolidation invariant violations propagate.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Union

from core.schema import (
    EvidenceRetrievalResult,
    KeywordStep,
    RetrievalConfig,
    RetrievalStep,
    SemanticStep,
    SpecificStep,
    StepRetrieved,
    StepTrace,
    retrieval_step_from_serializable,
)
from pipeline.retrieval.events import EventSink, LoggingEventSink
from pipeline.retrieval.evidence_consolidator import consolidate_evidence
from pipeline.retrieval.row_aggregator import RowAggregator
from pipeline.retrieval.step_executor import StepExecutor
from sheetrag.config import default_retrieval_config

if TYPE_CHECKING:
    from core.schema import Evidence
    from pipeline.embedding.embedding_engine import EmbeddingBackend
    from storage.block_store import BlockStore
    from storage.vector_index_store import VectorIndex

PlanItem = Union[RetrievalStep, Mapping[str, Any]]


def _parse_step(item: Any) -> RetrievalStep | None:
    if isinstance(item, (SemanticStep, KeywordStep, SpecificStep)):
        return item
    if isinstance(item, Mapping):
        return retrieval_step_from_serializable(dict(item))
    return None


class RetrievalAgent:
    def __init__(
        self,
        block_store: "BlockStore",
        embedding_backend: "EmbeddingBackend",
        vector_index: "VectorIndex",
        config: RetrievalConfig | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.sink = sink or LoggingEventSink()
        self.executor = StepExecutor(
            block_store=block_store,
            embedding_backend=embedding_backend,
            vector_index=vector_index,
            config=config or default_retrieval_config(),
            sink=self.sink,
        )

    def retrieve_evidence(self, plan: Iterable[PlanItem], sheet_id: str) -> list["Evidence"]:
        """Evidence for the plan, one per row, in first-encounter row order."""
        return self.retrieve_with_trace(plan, sheet_id).evidence

    def retrieve_with_trace(self, plan: Iterable[PlanItem], sheet_id: str) -> EvidenceRetrievalResult:
        """
        Same as retrieve_evidence plus a per-step trace (kind, status, record count, reason).
        Plan items may be parsed steps or raw dicts; unparseable items are skipped.
        """
        aggregator = RowAggregator(self.sink)
        traces: list[StepTrace] = []
        for index, item in enumerate(plan):
            step = _parse_step(item)
            result = self.executor.execute(step, sheet_id, index=index)
            aggregator.add_result(result, step_index=index)
            traces.append(
                StepTrace(
                    index=index,
                    kind=step.kind.value if step is not None else None,
                    status="retrieved" if isinstance(result, StepRetrieved) else "ignored",
                    record_count=len(result.records),
                    reason=None if isinstance(result, StepRetrieved) else result.reason,
                )
            )

        groups = aggregator.groups()
        evidence = consolidate_evidence(groups, sheet_id)
        self.sink.emit(
            "evidence_consolidated",
            logging.INFO,
            sheet_id=sheet_id,
            step_count=len(traces),
            row_count=len(groups),
            evidence_count=len(evidence),
            dropped_missing_parent=aggregator.dropped_missing_parent,
            dropped_duplicates=aggregator.dropped_duplicates,
        )
        return EvidenceRetrievalResult(sheet_id=sheet_id, evidence=evidence, steps=traces)
