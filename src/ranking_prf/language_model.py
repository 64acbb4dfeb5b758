"""
Smoothed document language model and query language model.

Document model, Jelinek-Mercer style interpolation with feedback-set statistics:

    P(t|d) = λ * tf(t,d) / |d| + (1 - λ) * cf(t) / V

where cf(t) comes from the feedback round's term statistics and V is the
vocabulary size of the feedback field (total term occurrences). A term with no
cached statistic at all scores 1.0, not 0.0. Relevance model weights and query
likelihoods depend on that default, so it is kept as is.

Query model, unsmoothed:

    P(t|Q) = count(t in Q) / |Q|
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ranking_prf.feedback import PerTermStat
    from ranking_prf.index import DocumentVector

UNSEEN_TERM_PROBABILITY = 1.0


def smoothed_mle(
    term: str,
    vector: DocumentVector,
    term_stats: Mapping[str, PerTermStat],
    vocabulary_size: int,
    mixing_lambda: float,
) -> float:
    """
    Smoothed MLE of `term` in one feedback document.

    Each half of the mixture drops to 0 on its own when its statistic is
    missing (term absent from the document, or no collection frequency).
    """
    stat = term_stats.get(term)
    if stat is None:
        return UNSEEN_TERM_PROBABILITY

    tf = vector.tf(term)
    document_part = mixing_lambda * tf / vector.length if tf > 0 else 0.0
    collection_part = (1.0 - mixing_lambda) * stat.collection_frequency / max(vocabulary_size, 1)
    return document_part + collection_part


def query_likelihood(
    query_tokens: Sequence[str],
    vector: DocumentVector,
    term_stats: Mapping[str, PerTermStat],
    vocabulary_size: int,
    mixing_lambda: float,
) -> float:
    """P(Q|d) under term independence: product of smoothed MLEs, repeats included."""
    likelihood = 1.0
    for token in query_tokens:
        likelihood *= smoothed_mle(token, vector, term_stats, vocabulary_size, mixing_lambda)
    return likelihood


def query_mle(term: str, query_tokens: Sequence[str]) -> float:
    """Unsmoothed P(t|Q); 0.0 for an empty query."""
    if not query_tokens:
        return 0.0
    return sum(1 for token in query_tokens if token == term) / len(query_tokens)


__all__ = [
    "UNSEEN_TERM_PROBABILITY",
    "query_likelihood",
    "query_mle",
    "smoothed_mle",
]
