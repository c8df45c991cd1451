"""
Step executor: runs one retrieval plan step against its strategy and returns an
explicit StepResult. Never raises past its boundary: a failing step becomes
StepIgnored so one bad step cannot abort the plan.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from core.schema import (
    STEP_IGNORED_FAILED,
    STEP_IGNORED_UNRECOGNIZED,
    Block,
    BlockQuery,
    KeywordStep,
    RetrievalConfig,
    RetrievalStep,
    SemanticStep,
    SpecificStep,
    StepIgnored,
    StepResult,
    StepRetrieved,
    is_valid_block_id,
)
from pipeline.retrieval.events import EventSink, LoggingEventSink

if TYPE_CHECKING:
    from pipeline.embedding.embedding_engine import EmbeddingBackend
    from storage.block_store import BlockStore
    from storage.vector_index_store import VectorIndex


class StepExecutor:
    """Dispatches a step by kind: semantic (vector), keyword (filtered store query), specific (by id)."""

    def __init__(
        self,
        block_store: "BlockStore",
        embedding_backend: "EmbeddingBackend",
        vector_index: "VectorIndex",
        config: RetrievalConfig,
        sink: EventSink | None = None,
    ) -> None:
        self.block_store = block_store
        self.embedding_backend = embedding_backend
        self.vector_index = vector_index
        self.config = config
        self.sink = sink or LoggingEventSink()

    def execute(self, step: RetrievalStep | None, sheet_id: str, index: int = 0) -> StepResult:
        """
        Run one step. None (a plan entry that could not be parsed) and unknown
        step types are skipped with an empty result, not an error.
        """
        if not isinstance(step, (SemanticStep, KeywordStep, SpecificStep)):
            self.sink.emit("retrieval_step_skipped", logging.DEBUG, step_index=index)
            return StepIgnored(reason=STEP_IGNORED_UNRECOGNIZED)

        self.sink.emit(
            "retrieval_step_started",
            logging.DEBUG,
            step_index=index,
            kind=step.kind.value,
            reasoning=step.reasoning,
        )
        try:
            if isinstance(step, SemanticStep):
                records = self._run_semantic(step, sheet_id)
            elif isinstance(step, KeywordStep):
                records = self._run_keyword(step, sheet_id)
            else:
                records = self._run_specific(step, sheet_id, index)
        except Exception as e:
            self.sink.emit(
                "retrieval_step_failed",
                logging.ERROR,
                step_index=index,
                kind=step.kind.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            return StepIgnored(reason=STEP_IGNORED_FAILED, error=f"{type(e).__name__}: {e}")

        self.sink.emit(
            "retrieval_step_completed",
            logging.INFO,
            step_index=index,
            kind=step.kind.value,
            record_count=len(records),
            record_ids=[r.id for r in records],
        )
        return StepRetrieved(records=tuple(records))

    # -----------------------------------------------------------------------
    # Strategies
    # -----------------------------------------------------------------------

    def _run_semantic(self, step: SemanticStep, sheet_id: str) -> list[Block]:
        vector = self.embedding_backend.generate_embedding(step.query)
        matches = self.vector_index.query(
            vector,
            {self.config.vector_scope_key: sheet_id},
            self.config.semantic_top_k,
        )
        block_ids = [m.id for m in matches]
        if not block_ids:
            return []
        return _cells_only(self._resolve(block_ids))

    def _run_keyword(self, step: KeywordStep, sheet_id: str) -> list[Block]:
        return list(
            self.block_store.find_blocks(
                BlockQuery(
                    sheet_id=sheet_id,
                    keywords=step.keywords,
                    limit=self.config.keyword_limit,
                    row_ids=step.filters.row_ids,
                    column_ids=step.filters.column_ids,
                )
            )
        )

    def _run_specific(self, step: SpecificStep, sheet_id: str, index: int) -> list[Block]:
        valid_ids = [i for i in step.block_ids if is_valid_block_id(i)]
        # non-string entries land here too
        invalid_ids = [i for i in step.block_ids if not is_valid_block_id(i)]
        if invalid_ids:
            self.sink.emit(
                "invalid_block_ids",
                logging.WARNING,
                step_index=index,
                sheet_id=sheet_id,
                invalid_ids=invalid_ids,
            )
        if not valid_ids:
            return []
        return _cells_only(self._resolve(valid_ids))

    def _resolve(self, block_ids: list[str]) -> list[Block | None]:
        """
        Point lookups, concurrent when more than one id. Results keep input order
        regardless of completion order; the first lookup error propagates.
        """
        workers = min(self.config.max_workers, len(block_ids))
        if workers <= 1:
            return [self.block_store.get_block(i) for i in block_ids]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self.block_store.get_block, block_ids))


def _cells_only(results: list[Block | None]) -> list[Block]:
    return [b for b in results if b is not None and b.is_cell]
