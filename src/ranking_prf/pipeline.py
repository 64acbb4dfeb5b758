"""
Two-pass relevance-feedback retrieval.

Per query, strictly in this order:

    INITIAL_RETRIEVAL    search the analyzed query (top_k_initial hits)
    FEEDBACK_COLLECTION  build the FeedbackRound from the top hits
    WEIGHTING            RM3 / RM3-IDF term weights
    QUERY_EXPANSION      boosted OR query from the expansion weights
    FINAL_RETRIEVAL      search the expanded query (num_hits hits)
    EMIT                 append the run lines

A query without feedback documents still goes through every state; its
expansion is the query model alone. Any exception aborts the query before EMIT,
so a failed query never leaves lines in the run file.
"""

from __future__ import annotations

import enum
import sys
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from tqdm import tqdm

from ranking_prf.analysis import Analyzer
from ranking_prf.expansion import BoostedQuery, build_expanded_query
from ranking_prf.feedback import FeedbackRound, collect_feedback
from ranking_prf.relevance_model import WordProbability, estimate_expansion_terms
from ranking_prf.trec import append_run, format_run_lines

if TYPE_CHECKING:
    from ranking_prf.config import FeedbackConfig
    from ranking_prf.index import Hit, IndexReader


class PipelineState(enum.Enum):
    INITIAL_RETRIEVAL = "initial_retrieval"
    FEEDBACK_COLLECTION = "feedback_collection"
    WEIGHTING = "weighting"
    QUERY_EXPANSION = "query_expansion"
    FINAL_RETRIEVAL = "final_retrieval"
    EMIT = "emit"


@dataclass
class QueryResult:
    query_id: str
    query_tokens: list[str]
    initial_hits: list[Hit] = field(default_factory=list)
    feedback: FeedbackRound | None = None
    expansion: dict[str, WordProbability] = field(default_factory=dict)
    expanded_query: BoostedQuery | None = None
    hits: list[Hit] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)
    states: list[PipelineState] = field(default_factory=list)


class RelevanceFeedbackPipeline:
    """
    Runs initial retrieval, RM3-family expansion and re-retrieval per query.

    Only index-lifetime values (vocabulary size, document count) live on the
    pipeline; every query gets a fresh FeedbackRound.

    Args:
        index: Index collaborator, already set to the configured similarity
        analyzer: Callable turning query text into index terms
        config: Feedback configuration
        verbose: Print per-query progress to stderr
    """

    def __init__(self, index: IndexReader, analyzer: Analyzer, config: FeedbackConfig, verbose: bool = False):
        self.index = index
        self.analyzer = analyzer
        self.config = config
        self.verbose = verbose
        self.run_tag = config.resolved_run_tag
        self.mixing_lambda = config.resolved_mixing_lambda
        self.vocabulary_size = index.vocabulary_size(config.feedback_field)
        self.document_count = index.total_document_count()

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message, file=sys.stderr)

    def run_query(self, query_id: str, text: str, run_path: str | Path | None = None) -> QueryResult:
        """Process one query; append its lines to `run_path` when given."""
        config = self.config
        result = QueryResult(query_id=query_id, query_tokens=self.analyzer(text))

        result.states.append(PipelineState.INITIAL_RETRIEVAL)
        initial_query = BoostedQuery.from_tokens(result.query_tokens, config.search_field, config.max_clause_count)
        self._log(f"{query_id}: Initial query: {initial_query}")
        result.initial_hits = self.index.search(initial_query, config.top_k_initial)

        result.states.append(PipelineState.FEEDBACK_COLLECTION)
        result.feedback = collect_feedback(
            result.initial_hits,
            result.query_tokens,
            self.index,
            field=config.feedback_field,
            num_feedback_docs=config.num_feedback_docs,
            mixing_lambda=self.mixing_lambda,
            vocabulary_size=self.vocabulary_size,
            document_count=self.document_count,
        )
        self._log(f"{query_id}: {len(result.feedback)} feedback documents, {len(result.feedback.term_stats)} terms")

        result.states.append(PipelineState.WEIGHTING)
        result.expansion = estimate_expansion_terms(
            config.feedback_variant,
            result.feedback,
            result.query_tokens,
            config.num_feedback_terms,
            config.query_mix,
        )

        result.states.append(PipelineState.QUERY_EXPANSION)
        result.expanded_query = build_expanded_query(result.expansion, config.search_field, config.max_clause_count)
        self._log("Re-retrieving with QE")
        self._log(str(result.expanded_query))

        result.states.append(PipelineState.FINAL_RETRIEVAL)
        result.hits = self.index.search(result.expanded_query, config.num_hits)
        if not result.hits:
            self._log("Nothing found")

        result.states.append(PipelineState.EMIT)
        result.lines = format_run_lines(query_id, result.hits, self.run_tag)
        if run_path is not None:
            append_run(run_path, result.lines)
        return result

    def run(
        self,
        queries: Iterable[tuple[str, str]],
        run_path: str | Path | None = None,
        progress: bool = False,
    ) -> Iterator[QueryResult]:
        """Process (query_id, text) pairs one at a time, in order."""
        for query_id, text in tqdm(queries, desc="Queries", unit="query", disable=not progress):
            yield self.run_query(query_id, text, run_path)


__all__ = ["PipelineState", "QueryResult", "RelevanceFeedbackPipeline"]
