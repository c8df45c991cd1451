"""Core pure logic: schema and identifiers. No IO in schema module."""

from core.schema import (
    Block,
    BlockQuery,
    BlockType,
    CellProperties,
    ColumnRef,
    Evidence,
    EvidenceMetadata,
    EvidenceRetrievalResult,
    KeywordStep,
    RetrievalConfig,
    RetrievalStep,
    SemanticStep,
    SpecificStep,
    StepFilters,
    StepIgnored,
    StepKind,
    StepResult,
    StepRetrieved,
    StepTrace,
    is_valid_block_id,
    retrieval_step_from_serializable,
    value_text,
)

__all__ = [
    "Block",
    "BlockQuery",
    "BlockType",
    "CellProperties",
    "ColumnRef",
    "Evidence",
    "EvidenceMetadata",
    "EvidenceRetrievalResult",
    "KeywordStep",
    "RetrievalConfig",
    "RetrievalStep",
    "SemanticStep",
    "SpecificStep",
    "StepFilters",
    "StepIgnored",
    "StepKind",
    "StepResult",
    "StepRetrieved",
    "StepTrace",
    "is_valid_block_id",
    "retrieval_step_from_serializable",
    "value_text",
]
