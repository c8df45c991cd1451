"""
SheetRAG configuration: retrieval limits and run log provenance.
"""
from __future__ import annotations

from core.schema import RetrievalConfig

# Semantic steps: candidates requested from the vector index
SEMANTIC_TOP_K: int = 15
# Keyword steps: cap on cells returned by the block store
KEYWORD_RESULT_LIMIT: int = 25
# Concurrent point lookups within one step
RESOLVE_MAX_WORKERS: int = 8
# Vector metadata key that scopes semantic search to a sheet
VECTOR_FILTER_SCOPE_KEY: str = "sheet_id"

# Run log provenance
LOG_TOP_K_EVIDENCE: int = 5
LOG_EVIDENCE_PREVIEW_LENGTH: int = 160
LOG_RETRIEVAL_DETAILS: bool = True


def default_retrieval_config() -> RetrievalConfig:
    return RetrievalConfig(
        semantic_top_k=SEMANTIC_TOP_K,
        keyword_limit=KEYWORD_RESULT_LIMIT,
        max_workers=RESOLVE_MAX_WORKERS,
        vector_scope_key=VECTOR_FILTER_SCOPE_KEY,
    )
