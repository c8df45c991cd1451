"""Indexing pipeline: cell blocks -> vector index snapshot."""

from pipeline.indexing.index_builder import build_vector_index

__all__ = ["build_vector_index"]
