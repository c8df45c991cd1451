"""
BM25 keyword scoring used to order keyword-search matches in the block store.
TF-IDF with BM25 weighting (k1=1.2, b=0.75); built-in Python only.
Deterministic for same corpus and keywords.
"""
from __future__ import annotations

import math
import re
from collections import Counter

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens. Deterministic."""
    return _TOKEN_RE.findall(text.lower())


class Bm25Backend:
    """
    BM25 scoring over a small corpus of cell texts.

    - IDF = log((N - df + 0.5) / (df + 0.5) + 1)
    - BM25 = IDF * (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * (doc_len / avg_doc_len)))
    """

    def __init__(
        self,
        corpus: list[str],
        k1: float = 1.2,
        b: float = 0.75,
    ) -> None:
        self.k1 = k1
        self.b = b
        self.N = len(corpus)

        self.doc_tokens: list[list[str]] = [tokenize(doc) for doc in corpus]
        self.doc_lens = [len(tokens) for tokens in self.doc_tokens]
        self.avg_doc_len = sum(self.doc_lens) / self.N if self.N > 0 else 0.0

        self.df: dict[str, int] = {}
        for tokens in self.doc_tokens:
            for term in set(tokens):
                self.df[term] = self.df.get(term, 0) + 1

    def score(self, keywords: list[str]) -> list[float]:
        """
        BM25 score of each corpus document for the given keywords
        (multi-word keywords contribute each of their tokens).
        """
        if self.N == 0:
            return []

        query_terms = sorted({t for kw in keywords for t in tokenize(kw)})
        if not query_terms:
            return [0.0] * self.N

        norm = self.avg_doc_len if self.avg_doc_len > 0 else 1.0
        scores = []
        for tokens, doc_len in zip(self.doc_tokens, self.doc_lens):
            term_freqs = Counter(tokens)
            score = 0.0
            for term in query_terms:
                tf = term_freqs.get(term, 0)
                if tf == 0:
                    continue
                df = self.df.get(term, 0)
                idf = math.log((self.N - df + 0.5) / (df + 0.5) + 1.0)
                denominator = tf + self.k1 * (1 - self.b + self.b * (doc_len / norm))
                score += idf * (tf * (self.k1 + 1) / denominator)
            scores.append(score)

        return scores
