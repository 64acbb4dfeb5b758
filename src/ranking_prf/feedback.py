"""
Feedback statistics for one query: the pseudo-relevant documents, their term
vectors, the corpus statistics of every feedback term and P(Q|d) per document.

A FeedbackRound is built once per query by collect_feedback() and is read-only
afterwards; every weighting function receives it explicitly. Nothing is shared
between the rounds of different queries.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from ranking_prf.language_model import query_likelihood, smoothed_mle

if TYPE_CHECKING:
    from ranking_prf.index import DocumentVector, Hit, IndexReader


@dataclass(frozen=True)
class PerTermStat:
    term: str
    collection_frequency: int
    document_frequency: int


@dataclass(frozen=True)
class FeedbackDocument:
    doc_id: str
    vector: DocumentVector
    query_likelihood: float


@dataclass(frozen=True)
class FeedbackRound:
    """
    Statistics of one feedback round.

    Attributes:
        documents: Feedback documents in rank order
        term_stats: Term -> corpus statistics, for every term of every feedback vector
        vocabulary_size: Total term occurrences of the feedback field
        document_count: Number of documents in the index (N for idf)
        mixing_lambda: Document/collection interpolation weight λ
    """

    documents: tuple[FeedbackDocument, ...]
    term_stats: Mapping[str, PerTermStat]
    vocabulary_size: int
    document_count: int
    mixing_lambda: float

    def __len__(self) -> int:
        return len(self.documents)

    def smoothed_mle(self, term: str, vector: DocumentVector) -> float:
        return smoothed_mle(term, vector, self.term_stats, self.vocabulary_size, self.mixing_lambda)


def collect_feedback(
    hits: Sequence[Hit],
    query_tokens: Sequence[str],
    index: IndexReader,
    field: str,
    num_feedback_docs: int,
    mixing_lambda: float,
    vocabulary_size: int,
    document_count: int,
) -> FeedbackRound:
    """
    Build the feedback round from the initial ranking.

    The first min(num_feedback_docs, len(hits)) hits are considered. Hits
    without a term vector for `field` are dropped; deeper hits do not replace
    them. Corpus statistics are fetched once per distinct feedback term.

    Args:
        hits: Initial retrieval result, best first
        query_tokens: Analyzed query tokens (repeats count in P(Q|d))
        index: Index collaborator
        field: Feedback field
        num_feedback_docs: Maximum number of feedback documents
        mixing_lambda: λ of the smoothed document model
        vocabulary_size: Total term occurrences of `field`
        document_count: Number of documents in the index

    Returns:
        Immutable FeedbackRound
    """
    vectors: list[DocumentVector] = []
    term_stats: dict[str, PerTermStat] = {}

    for hit in hits[: max(num_feedback_docs, 0)]:
        vector = index.document_vector(hit.doc_id, field)
        if vector is None:
            continue
        vectors.append(vector)
        for term in vector.term_frequencies:
            if term not in term_stats:
                term_stats[term] = PerTermStat(
                    term=term,
                    collection_frequency=index.total_term_frequency(term, field),
                    document_frequency=index.document_frequency(term, field),
                )

    documents = tuple(
        FeedbackDocument(
            doc_id=vector.doc_id,
            vector=vector,
            query_likelihood=query_likelihood(query_tokens, vector, term_stats, vocabulary_size, mixing_lambda),
        )
        for vector in vectors
    )
    return FeedbackRound(
        documents=documents,
        term_stats=MappingProxyType(term_stats),
        vocabulary_size=vocabulary_size,
        document_count=document_count,
        mixing_lambda=mixing_lambda,
    )


__all__ = [
    "FeedbackDocument",
    "FeedbackRound",
    "PerTermStat",
    "collect_feedback",
]
