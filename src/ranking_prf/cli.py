"""
Command line front end: retrieve, expand with RM3 / RM3-IDF, retrieve again.

Usage:
    # Lucene index built by Anserini/Pyserini (-storeDocvectors), TREC topics
    ranking-prf --index indexes/robust04 --topics topics.301-450.txt \\
        --similarity lmdir --param1 1000 --variant rm3-idf3 --res-dir runs/

    # JSONL corpus indexed in memory, TSV topics, JSON configuration
    ranking-prf --corpus corpus.jsonl --topics queries.tsv --config prf.json \\
        --output run.res --verbose

    # ir_datasets collection (documents and queries)
    ranking-prf --dataset beir/scifact/test --fb-docs 10 --fb-terms 20 --output scifact.res

The run file is written in full or not at all: an existing file with the same
name is replaced when every query has been processed, and left untouched when
a query fails.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ranking_prf.analysis import ANALYZERS, get_analyzer, read_stopwords
from ranking_prf.config import FeedbackConfig
from ranking_prf.datasets import load_ir_dataset_documents, load_ir_dataset_queries, read_jsonl_corpus
from ranking_prf.index import DEFAULT_FIELD, InMemoryIndex, IndexReader
from ranking_prf.pipeline import RelevanceFeedbackPipeline
from ranking_prf.relevance_model import Variant
from ranking_prf.similarity import SIMILARITIES
from ranking_prf.trec import read_topics, run_file_path, staged_run_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="RM3 / RM3-IDF pseudo-relevance feedback retrieval")

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--index", type=Path, help="Lucene index directory (needs the lucene extra)")
    source.add_argument("--corpus", type=Path, help="JSONL corpus to index in memory")
    source.add_argument("--dataset", help="ir_datasets name to index in memory")

    parser.add_argument("--topics", type=Path, help="TREC or TSV topic file (default: the dataset's queries)")
    parser.add_argument("--config", type=Path, help="JSON configuration file; options below override it")
    parser.add_argument(
        "--analyzer",
        choices=sorted(ANALYZERS),
        help="Text analyzer (default: lucene with --index, simple otherwise)",
    )
    parser.add_argument(
        "--stopwords",
        type=Path,
        help="Stopword file, one word per line (simple analyzer; default: Lucene English list)",
    )
    parser.add_argument(
        "--min-token-length",
        type=int,
        default=1,
        help="Drop shorter tokens (simple analyzer; default 1 keeps every token)",
    )

    options = parser.add_argument_group("feedback options")
    options.add_argument("--variant", choices=[v.value for v in Variant], help="Term weighting method")
    options.add_argument("--fb-docs", type=int, dest="num_feedback_docs", help="Number of feedback documents")
    options.add_argument("--fb-terms", type=int, dest="num_feedback_terms", help="Number of expansion terms")
    options.add_argument("--query-mix", type=float, help="Weight of the original query model (QMIX)")
    options.add_argument("--mixing-lambda", type=float, help="λ of the smoothed document model")
    options.add_argument("--similarity", choices=SIMILARITIES, help="Ranking function")
    options.add_argument("--param1", type=float, help="First similarity parameter (k1, λ or μ)")
    options.add_argument("--param2", type=float, help="Second similarity parameter (BM25 b)")
    options.add_argument("--feedback-field", help=f"Field of the feedback statistics (default {DEFAULT_FIELD})")
    options.add_argument("--search-field", help=f"Field searched by both passes (default {DEFAULT_FIELD})")
    options.add_argument("--top-k-initial", type=int, help="Depth of the initial retrieval")
    options.add_argument("--num-hits", type=int, help="Depth of the final retrieval")
    options.add_argument("--max-clauses", type=int, dest="max_clause_count", help="Clause cap of the expanded query")
    options.add_argument("--run-tag", help="Run name written in the last column")

    output = parser.add_mutually_exclusive_group()
    output.add_argument("--output", type=Path, help="Run file, replaced when the run completes")
    output.add_argument(
        "--res-dir",
        type=Path,
        default=Path("."),
        help="Directory for <topics name>-<run tag>.res (default: current directory)",
    )

    parser.add_argument("--verbose", action="store_true", help="Print per-query progress to stderr")
    return parser


def load_config(args: argparse.Namespace) -> FeedbackConfig:
    config = FeedbackConfig.from_json(args.config) if args.config else FeedbackConfig()
    return config.replace(
        variant=args.variant,
        num_feedback_docs=args.num_feedback_docs,
        num_feedback_terms=args.num_feedback_terms,
        query_mix=args.query_mix,
        mixing_lambda=args.mixing_lambda,
        similarity=args.similarity,
        param1=args.param1,
        param2=args.param2,
        feedback_field=args.feedback_field,
        search_field=args.search_field,
        top_k_initial=args.top_k_initial,
        num_hits=args.num_hits,
        max_clause_count=args.max_clause_count,
        run_tag=args.run_tag,
    )


def build_index(args: argparse.Namespace, config: FeedbackConfig, analyzer) -> IndexReader:
    similarity = config.build_similarity()
    if args.index is not None:
        from ranking_prf.lucene import LuceneIndex

        return LuceneIndex(args.index, similarity=similarity, max_clause_count=config.max_clause_count)

    if args.corpus is not None:
        if not args.corpus.exists():
            raise FileNotFoundError(f"Corpus file not found: {args.corpus}")
        documents = read_jsonl_corpus(args.corpus)
    else:
        documents = load_ir_dataset_documents(args.dataset)
    if args.verbose:
        print(f"Indexing {len(documents)} documents in memory", file=sys.stderr)
    return InMemoryIndex.from_documents(documents, analyzer, similarity=similarity)


def load_queries(args: argparse.Namespace) -> tuple[list[tuple[str, str]], str]:
    """Queries and the name used for the run file."""
    if args.topics is not None:
        if not args.topics.exists():
            raise FileNotFoundError(f"Topics file not found: {args.topics}")
        return read_topics(args.topics), args.topics.name
    return load_ir_dataset_queries(args.dataset), args.dataset.replace("/", "_")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.topics is None and args.dataset is None:
        parser.error("--topics is required with --index or --corpus")

    config = load_config(args)
    analyzer_name = args.analyzer or ("lucene" if args.index is not None else "simple")
    stopwords = read_stopwords(args.stopwords) if args.stopwords is not None else None
    analyzer = get_analyzer(analyzer_name, stopwords=stopwords, min_length=args.min_token_length)
    index = build_index(args, config, analyzer)
    queries, topics_name = load_queries(args)

    pipeline = RelevanceFeedbackPipeline(index, analyzer, config, verbose=args.verbose)
    run_path = args.output if args.output is not None else run_file_path(args.res_dir, topics_name, pipeline.run_tag)
    run_path.parent.mkdir(parents=True, exist_ok=True)

    print(f"Run: {pipeline.run_tag}", file=sys.stderr)
    print(f"Queries: {len(queries)}, analyzer: {analyzer_name}", file=sys.stderr)

    num_lines = 0
    with staged_run_file(run_path) as staging_path:
        for result in pipeline.run(queries, run_path=staging_path, progress=True):
            num_lines += len(result.lines)

    print(f"Wrote {num_lines} lines to {run_path}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
