"""
Lucene-compatible similarity functions for boosted term queries.

Every similarity scores a document as the boost-weighted sum of per-term scores
over the query clauses, the way Lucene scores a BooleanQuery of boosted SHOULD
TermQuery clauses. Only documents matching at least one clause are candidates.

Formulas (Lucene / Pyserini variants):

    BM25:  idf(t) * tf / (tf + k1 * (1 - b + b * |D| / avgdl))
           idf(t) = log(1 + (N - df + 0.5) / (df + 0.5))
    LMJM:  log(1 + (1 - λ) * tf / (|D| * λ * P(t|C)))
    LMDir: max(0, log(1 + tf / (μ * P(t|C))) + log(μ / (|D| + μ)))

    P(t|C) = cf(t) / total tokens of the field

Defaults match Pyserini: k1=0.9, b=0.4, λ=0.1, μ=1000 (Anserini's QLD default).
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ranking_prf.index import FieldIndex


EPSILON = 1e-9


# =============================================================================
# Base class
# =============================================================================


class Similarity:
    """Vectorized per-term scoring over the candidate documents of a field."""

    name: str = ""

    def term_scores(
        self,
        field: FieldIndex,
        term_id: int,
        candidate_docs: NDArray[np.int64],
    ) -> NDArray[np.float64]:
        raise NotImplementedError

    def score(
        self,
        field: FieldIndex,
        term_boosts: dict[str, float],
    ) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
        """
        Score every document that matches at least one query term.

        Args:
            field: Field statistics to score against
            term_boosts: Query term -> summed clause boost

        Returns:
            (candidate_docs, scores), candidate_docs sorted ascending
        """
        query_term_ids = []
        boosts = []
        for term, boost in term_boosts.items():
            tid = field.get_term_id(term)
            if tid is not None:
                query_term_ids.append(tid)
                boosts.append(boost)

        posting_lists = [field.get_posting_list_by_id(tid) for tid in query_term_ids]
        posting_lists = [pl for pl in posting_lists if len(pl) > 0]
        if not posting_lists:
            return np.array([], dtype=np.int64), np.array([], dtype=np.float64)
        candidate_docs = np.unique(np.concatenate(posting_lists))

        scores = np.zeros(len(candidate_docs), dtype=np.float64)
        for tid, boost in zip(query_term_ids, boosts):
            scores += boost * self.term_scores(field, tid, candidate_docs)
        return candidate_docs, scores

    def rank(
        self,
        field: FieldIndex,
        term_boosts: dict[str, float],
        top_k: int | None = None,
    ) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
        """Candidates sorted by score descending; equal scores keep index order."""
        candidate_docs, scores = self.score(field, term_boosts)
        order = np.lexsort((candidate_docs, -scores))
        if top_k is not None:
            order = order[:top_k]
        return candidate_docs[order], scores[order]


def _tf_row(field: FieldIndex, term_id: int, candidate_docs: NDArray[np.int64]) -> NDArray[np.float64]:
    return field.tf_matrix[term_id, candidate_docs].toarray().flatten()


# =============================================================================
# BM25
# =============================================================================


class BM25Similarity(Similarity):
    name = "bm25"

    def __init__(self, k1: float = 0.9, b: float = 0.4):
        if k1 < 0 or not 0.0 <= b <= 1.0:
            raise ValueError(f"Invalid BM25 parameters: k1={k1}, b={b}")
        self.k1 = k1
        self.b = b

    def __str__(self) -> str:
        return f"BM25(k1={self.k1},b={self.b})"

    @staticmethod
    def idf(df: float, N: int) -> float:
        return math.log(1 + (N - df + 0.5) / (df + 0.5))

    def term_scores(self, field, term_id, candidate_docs):
        tf = _tf_row(field, term_id, candidate_docs)
        norm = 1 - self.b + self.b * (field.doc_lengths[candidate_docs] / field.avgdl)
        idf = self.idf(float(field.df[term_id]), field.N)
        return idf * tf / (tf + self.k1 * norm + EPSILON)


# =============================================================================
# Query likelihood, Jelinek-Mercer smoothing
# =============================================================================


class LMJelinekMercerSimilarity(Similarity):
    name = "lmjm"

    def __init__(self, lam: float = 0.1):
        if not 0.0 < lam <= 1.0:
            raise ValueError(f"Jelinek-Mercer lambda must be in (0, 1], got {lam}")
        self.lam = lam

    def __str__(self) -> str:
        return f"LM Jelinek-Mercer({self.lam:.6f})"

    def term_scores(self, field, term_id, candidate_docs):
        tf = _tf_row(field, term_id, candidate_docs)
        p_collection = field.collection_probability(term_id)
        denominator = field.doc_lengths[candidate_docs] * self.lam * p_collection + EPSILON
        return np.log(1.0 + (1.0 - self.lam) * tf / denominator)


# =============================================================================
# Query likelihood, Dirichlet smoothing
# =============================================================================


class LMDirichletSimilarity(Similarity):
    name = "lmdir"

    def __init__(self, mu: float = 1000.0):
        if mu <= 0:
            raise ValueError(f"Dirichlet mu must be positive, got {mu}")
        self.mu = mu

    def __str__(self) -> str:
        return f"LM Dirichlet({self.mu:.6f})"

    def term_scores(self, field, term_id, candidate_docs):
        tf = _tf_row(field, term_id, candidate_docs)
        p_collection = field.collection_probability(term_id)
        doc_lengths = field.doc_lengths[candidate_docs]
        per_term = np.log(1.0 + tf / (self.mu * p_collection + EPSILON)) + np.log(
            self.mu / (doc_lengths + self.mu)
        )
        # Lucene clamps negative per-term scores to 0
        return np.maximum(per_term, 0.0)


# =============================================================================
# Factory
# =============================================================================

SIMILARITIES = ("bm25", "lmjm", "lmdir")


def get_similarity(name: str, param1: float | None = None, param2: float | None = None) -> Similarity:
    """
    Build a similarity from its name and up to two numeric parameters.

    bm25: param1=k1, param2=b; lmjm: param1=λ; lmdir: param1=μ.
    Missing parameters take the similarity's defaults.
    """
    if name == "bm25":
        kwargs = {}
        if param1 is not None:
            kwargs["k1"] = param1
        if param2 is not None:
            kwargs["b"] = param2
        return BM25Similarity(**kwargs)
    if name == "lmjm":
        return LMJelinekMercerSimilarity() if param1 is None else LMJelinekMercerSimilarity(param1)
    if name == "lmdir":
        return LMDirichletSimilarity() if param1 is None else LMDirichletSimilarity(param1)
    raise ValueError(f"Unknown similarity: {name} (expected one of {SIMILARITIES})")


def first_parameter(similarity: Similarity) -> float:
    """The similarity's first numeric parameter (k1, λ or μ)."""
    if isinstance(similarity, BM25Similarity):
        return similarity.k1
    if isinstance(similarity, LMJelinekMercerSimilarity):
        return similarity.lam
    if isinstance(similarity, LMDirichletSimilarity):
        return similarity.mu
    raise TypeError(f"Unsupported similarity: {type(similarity).__name__}")


__all__ = [
    "BM25Similarity",
    "LMDirichletSimilarity",
    "LMJelinekMercerSimilarity",
    "SIMILARITIES",
    "Similarity",
    "first_parameter",
    "get_similarity",
]
