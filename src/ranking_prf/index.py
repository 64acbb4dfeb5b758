"""
Index collaborator interface and an in-memory multi-field implementation.

The feedback pipeline only talks to an index through the IndexReader protocol:

    total_term_frequency(term, field)   cf: occurrences of term in field, whole index
    document_frequency(term, field)     df: documents whose field contains term
    document_vector(doc_id, field)      term -> tf for one document, or None
    vocabulary_size(field)              total term occurrences in field
    total_document_count()              N
    search(query, top_k)                ranked hits for a BoostedQuery

InMemoryIndex implements it over analyzed documents, one sparse term-document
matrix per field. ranking_prf.lucene.LuceneIndex implements it over a Lucene
index directory.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field as dataclass_field
from typing import TYPE_CHECKING, Protocol

import numpy as np
from scipy.sparse import csr_matrix

from ranking_prf.similarity import LMDirichletSimilarity, Similarity

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ranking_prf.expansion import BoostedQuery


DEFAULT_FIELD = "contents"


# =============================================================================
# Shared value types
# =============================================================================


@dataclass(frozen=True)
class DocumentVector:
    """Term frequencies of one document field; length is the sum of frequencies."""

    doc_id: str
    length: int
    term_frequencies: Mapping[str, int] = dataclass_field(default_factory=dict)

    @classmethod
    def from_counts(cls, doc_id: str, counts: Mapping[str, int]) -> DocumentVector:
        return cls(doc_id=doc_id, length=int(sum(counts.values())), term_frequencies=dict(counts))

    def tf(self, term: str) -> int:
        return self.term_frequencies.get(term, 0)

    def __contains__(self, term: str) -> bool:
        return term in self.term_frequencies


@dataclass(frozen=True)
class Hit:
    doc_id: str
    score: float


# =============================================================================
# Protocol for index collaborators (duck typing)
# =============================================================================


class IndexReader(Protocol):
    """Read-only statistics and search over an index."""

    def total_term_frequency(self, term: str, field: str) -> int: ...

    def document_frequency(self, term: str, field: str) -> int: ...

    def document_vector(self, doc_id: str, field: str) -> DocumentVector | None: ...

    def vocabulary_size(self, field: str) -> int: ...

    def total_document_count(self) -> int: ...

    def search(self, query: BoostedQuery, top_k: int) -> list[Hit]: ...


# =============================================================================
# Per-field statistics
# =============================================================================


class FieldIndex:
    """Sparse term-document statistics for one field of the collection."""

    def __init__(self, documents: Sequence[Sequence[str]]):
        self.N = len(documents)
        self.doc_lengths = np.array([len(d) for d in documents], dtype=np.float64)
        self.total_tokens = int(self.doc_lengths.sum())
        mean_length = float(np.mean(self.doc_lengths)) if self.N > 0 else 0.0
        self.avgdl = mean_length if mean_length > 0 else 1.0

        # Build vocabulary
        self._vocab: dict[str, int] = {}
        for doc in documents:
            for term in doc:
                if term not in self._vocab:
                    self._vocab[term] = len(self._vocab)
        self._terms = list(self._vocab)
        self.vocab_size = len(self._vocab)

        rows: list[int] = []
        cols: list[int] = []
        data: list[float] = []
        for doc_idx, doc in enumerate(documents):
            counts: dict[int, int] = {}
            for term in doc:
                tid = self._vocab[term]
                counts[tid] = counts.get(tid, 0) + 1
            for tid, count in counts.items():
                rows.append(tid)
                cols.append(doc_idx)
                data.append(count)

        # (vocab_size, N): term rows for scoring, document rows for term vectors
        self.tf_matrix = csr_matrix(
            (np.array(data, dtype=np.float64), (np.array(rows, dtype=np.int64), np.array(cols, dtype=np.int64))),
            shape=(self.vocab_size, self.N),
        )
        self._doc_term_matrix = self.tf_matrix.T.tocsr()

        self.df = np.diff(self.tf_matrix.indptr).astype(np.float64)
        self.cf = np.asarray(self.tf_matrix.sum(axis=1)).flatten()
        self._posting_lists: dict[int, NDArray[np.int64]] = {
            tid: self.tf_matrix.indices[self.tf_matrix.indptr[tid] : self.tf_matrix.indptr[tid + 1]].astype(
                np.int64
            )
            for tid in range(self.vocab_size)
        }
        for posting_list in self._posting_lists.values():
            posting_list.sort()

    def __len__(self) -> int:
        return self.N

    def get_term_id(self, term: str) -> int | None:
        return self._vocab.get(term)

    def get_posting_list_by_id(self, term_id: int) -> NDArray[np.int64]:
        return self._posting_lists.get(term_id, np.array([], dtype=np.int64))

    def collection_probability(self, term_id: int) -> float:
        return float(self.cf[term_id]) / max(self.total_tokens, 1)

    def total_term_frequency(self, term: str) -> int:
        tid = self._vocab.get(term)
        return int(self.cf[tid]) if tid is not None else 0

    def document_frequency(self, term: str) -> int:
        tid = self._vocab.get(term)
        return int(self.df[tid]) if tid is not None else 0

    def term_counts(self, doc_idx: int) -> dict[str, int]:
        start, end = self._doc_term_matrix.indptr[doc_idx], self._doc_term_matrix.indptr[doc_idx + 1]
        term_ids = self._doc_term_matrix.indices[start:end]
        tfs = self._doc_term_matrix.data[start:end]
        return {self._terms[tid]: int(tf) for tid, tf in zip(term_ids, tfs)}


# =============================================================================
# In-memory index
# =============================================================================


class InMemoryIndex:
    """
    Multi-field in-memory index of analyzed documents.

    Args:
        fields: field name -> analyzed documents (one token list per document,
            same document order in every field)
        ids: External document ids (defaults to "0", "1", ...)
        similarity: Ranking function used by search() (default LM Dirichlet)
    """

    def __init__(
        self,
        fields: Mapping[str, Sequence[Sequence[str]]],
        ids: Sequence[str] | None = None,
        similarity: Similarity | None = None,
    ):
        if not fields:
            raise ValueError("An index needs at least one field.")
        sizes = {name: len(docs) for name, docs in fields.items()}
        if len(set(sizes.values())) > 1:
            raise ValueError(f"All fields must hold the same number of documents, got {sizes}")
        self.N = next(iter(sizes.values()))
        self.ids = list(ids) if ids is not None else [str(i) for i in range(self.N)]
        if len(self.ids) != self.N:
            raise ValueError(f"Expected {self.N} document ids, got {len(self.ids)}")
        self._id_to_idx = {doc_id: i for i, doc_id in enumerate(self.ids)}
        self._fields = {name: FieldIndex(docs) for name, docs in fields.items()}
        self.similarity = similarity if similarity is not None else LMDirichletSimilarity()

    @classmethod
    def from_documents(
        cls,
        documents: Sequence[Mapping[str, str]],
        analyzer: Callable[[str], list[str]],
        id_key: str = "id",
        fields: Sequence[str] | None = None,
        similarity: Similarity | None = None,
    ) -> InMemoryIndex:
        """
        Analyze raw documents ({"id": ..., "contents": ..., ...}) and index them.

        Every key other than `id_key` becomes a field unless `fields` is given.
        Missing field values index as empty text.
        """
        if fields is None:
            names: list[str] = []
            for doc in documents:
                for key in doc:
                    if key != id_key and key not in names:
                        names.append(key)
            fields = names or [DEFAULT_FIELD]
        ids = [str(doc[id_key]) for doc in documents]
        analyzed = {name: [analyzer(doc.get(name) or "") for doc in documents] for name in fields}
        return cls(analyzed, ids=ids, similarity=similarity)

    def __len__(self) -> int:
        return self.N

    @property
    def fields(self) -> list[str]:
        return list(self._fields)

    def field(self, name: str) -> FieldIndex:
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"Unknown field: {name} (indexed fields: {self.fields})") from None

    def total_term_frequency(self, term: str, field: str) -> int:
        return self.field(field).total_term_frequency(term)

    def document_frequency(self, term: str, field: str) -> int:
        return self.field(field).document_frequency(term)

    def document_vector(self, doc_id: str, field: str) -> DocumentVector | None:
        field_index = self.field(field)
        try:
            doc_idx = self._id_to_idx[doc_id]
        except KeyError:
            raise KeyError(f"Unknown document id: {doc_id}") from None
        counts = field_index.term_counts(doc_idx)
        if not counts:
            return None
        return DocumentVector.from_counts(doc_id, counts)

    def vocabulary_size(self, field: str) -> int:
        return self.field(field).total_tokens

    def total_document_count(self) -> int:
        return self.N

    def search(self, query: BoostedQuery, top_k: int) -> list[Hit]:
        if not query:
            return []
        doc_indices, scores = self.similarity.rank(self.field(query.field), query.term_boosts(), top_k)
        return [Hit(self.ids[idx], float(score)) for idx, score in zip(doc_indices, scores)]


__all__ = [
    "DEFAULT_FIELD",
    "DocumentVector",
    "FieldIndex",
    "Hit",
    "InMemoryIndex",
    "IndexReader",
]
