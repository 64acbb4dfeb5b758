"""
IndexReader over a Lucene index built by Pyserini/Anserini.

Requires:
    - pyserini >= 0.25.0 (pip install 'ranking-prf[lucene]')
    - Java 21 (Pyserini's Lucene backend requires Java)

The index must store document vectors (Anserini's -storeDocvectors) for the
feedback statistics. Pyserini's reader utilities only expose the default
`contents` field, so both the search and the feedback field must be `contents`.

Usage:
    from ranking_prf.lucene import LuceneIndex
    from ranking_prf.similarity import BM25Similarity

    index = LuceneIndex("indexes/robust04", similarity=BM25Similarity(0.9, 0.4))
    index.document_vector("FBIS3-10082", "contents")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from ranking_prf.expansion import MAX_CLAUSE_COUNT
from ranking_prf.index import DEFAULT_FIELD, DocumentVector, Hit
from ranking_prf.similarity import BM25Similarity, LMDirichletSimilarity, Similarity

if TYPE_CHECKING:
    from ranking_prf.expansion import BoostedQuery


class LuceneIndex:
    """Feedback statistics and boosted-query search over a Lucene index directory."""

    def __init__(
        self,
        index_dir: str | Path,
        similarity: Similarity | None = None,
        max_clause_count: int = MAX_CLAUSE_COUNT,
    ):
        index_path = Path(index_dir)
        if not index_path.exists():
            raise FileNotFoundError(f"Index doesn't exist in {index_path}")

        try:
            from pyserini.index.lucene import LuceneIndexReader
            from pyserini.pyclass import autoclass
            from pyserini.search.lucene import LuceneSearcher, querybuilder
        except ImportError as e:
            raise ImportError(
                "Pyserini is required for Lucene indexes. "
                "Install with: pip install 'ranking-prf[lucene]'\n"
                "Note: Pyserini requires Java 21 to be installed."
            ) from e

        self._querybuilder = querybuilder
        self._JTerm = autoclass("org.apache.lucene.index.Term")
        self._JTermQuery = autoclass("org.apache.lucene.search.TermQuery")
        autoclass("org.apache.lucene.search.IndexSearcher").setMaxClauseCount(max_clause_count)

        self._reader = LuceneIndexReader(str(index_path))
        self._searcher = LuceneSearcher(str(index_path))
        self._stats = self._reader.stats()
        self._term_count_cache: dict[str, tuple[int, int]] = {}
        self.similarity: Similarity = similarity if similarity is not None else LMDirichletSimilarity()
        self.set_similarity(self.similarity)

    def set_similarity(self, similarity: Similarity) -> None:
        if isinstance(similarity, BM25Similarity):
            self._searcher.set_bm25(similarity.k1, similarity.b)
        elif isinstance(similarity, LMDirichletSimilarity):
            self._searcher.set_qld(similarity.mu)
        else:
            raise ValueError(f"LuceneSearcher supports bm25 and lmdir, not {similarity}")
        self.similarity = similarity

    @staticmethod
    def _check_field(field: str) -> None:
        if field != DEFAULT_FIELD:
            raise ValueError(f"Lucene indexes expose only the '{DEFAULT_FIELD}' field, got '{field}'")

    def _term_counts(self, term: str, field: str) -> tuple[int, int]:
        """(df, cf) of an unanalyzed term, one reader lookup per term."""
        self._check_field(field)
        counts = self._term_count_cache.get(term)
        if counts is None:
            df, cf = self._reader.get_term_counts(term, analyzer=None)
            counts = (int(df or 0), int(cf or 0))
            self._term_count_cache[term] = counts
        return counts

    def total_term_frequency(self, term: str, field: str) -> int:
        return self._term_counts(term, field)[1]

    def document_frequency(self, term: str, field: str) -> int:
        return self._term_counts(term, field)[0]

    def document_vector(self, doc_id: str, field: str) -> DocumentVector | None:
        self._check_field(field)
        counts = self._reader.get_document_vector(doc_id)
        if not counts:
            return None
        return DocumentVector.from_counts(doc_id, {term: int(tf) for term, tf in counts.items()})

    def vocabulary_size(self, field: str) -> int:
        self._check_field(field)
        return int(self._stats["total_terms"])

    def total_document_count(self) -> int:
        return int(self._stats["documents"])

    def _to_lucene_query(self, query: BoostedQuery):
        should = self._querybuilder.JBooleanClauseOccur["should"].value
        builder = self._querybuilder.get_boolean_query_builder()
        for clause in query.clauses:
            term_query = self._JTermQuery(self._JTerm(clause.field, clause.term))
            builder.add(self._querybuilder.get_boost_query(term_query, clause.boost), should)
        return builder.build()

    def search(self, query: BoostedQuery, top_k: int) -> list[Hit]:
        self._check_field(query.field)
        if not query:
            return []
        hits = self._searcher.search(self._to_lucene_query(query), k=top_k)
        return [Hit(hit.docid, float(hit.score)) for hit in hits]


__all__ = ["LuceneIndex"]
