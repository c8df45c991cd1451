from sheetrag.retrieval.retrieval_agent import RetrievalAgent

__all__ = ["RetrievalAgent"]
