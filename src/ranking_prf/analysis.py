"""
Analyzers that turn raw text into normalized index terms.

Two analyzers are available:

- SimpleAnalyzer: lowercase alphanumeric tokens with the 33-word Lucene English
  stoplist (or a stopword file). No stemming. Pure Python, always available.
- LuceneAnalyzer: Pyserini's Lucene DefaultEnglishAnalyzer (Porter stemming +
  stopwords). Requires the `lucene` extra and Java 21.

Documents and queries must be analyzed by the same analyzer, otherwise the
feedback statistics and the expansion terms will not line up with the index.

Usage:
    from ranking_prf.analysis import get_analyzer

    analyze = get_analyzer("simple")
    analyze("The quick brown fox")  # ['quick', 'brown', 'fox']
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

# Lucene English stopwords (EnglishAnalyzer.ENGLISH_STOP_WORDS_SET)
LUCENE_STOPWORDS: frozenset[str] = frozenset(
    [
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "but",
        "by",
        "for",
        "if",
        "in",
        "into",
        "is",
        "it",
        "no",
        "not",
        "of",
        "on",
        "or",
        "such",
        "that",
        "the",
        "their",
        "then",
        "there",
        "these",
        "they",
        "this",
        "to",
        "was",
        "will",
        "with",
    ]
)

_TOKEN_PATTERN = re.compile(r"[a-zA-Z0-9]+")

Analyzer = Callable[[str], list[str]]


class SimpleAnalyzer:
    """Lowercase + alphanumeric split + stopword removal; tokens shorter than min_length are dropped."""

    def __init__(self, stopwords: frozenset[str] = LUCENE_STOPWORDS, min_length: int = 1):
        self.stopwords = stopwords
        self.min_length = min_length

    def __call__(self, text: str) -> list[str]:
        tokens = _TOKEN_PATTERN.findall(text.lower())
        return [t for t in tokens if t not in self.stopwords and len(t) >= self.min_length]


class LuceneAnalyzer:
    """
    Pyserini's Lucene DefaultEnglishAnalyzer.

    Applies tokenization on non-letter boundaries, lowercasing, Porter stemming
    and English stopword removal, exactly as Anserini indexes the `contents` field.
    """

    def __init__(self):
        try:
            from pyserini.analysis import Analyzer as _PyseriniAnalyzer
            from pyserini.analysis import get_lucene_analyzer
        except ImportError as e:
            raise ImportError(
                "Pyserini is required for the lucene analyzer. "
                "Install with: pip install 'ranking-prf[lucene]'\n"
                "Note: Pyserini requires Java 21 to be installed."
            ) from e

        self._analyzer = _PyseriniAnalyzer(get_lucene_analyzer())

    def __call__(self, text: str) -> list[str]:
        return list(self._analyzer.analyze(text))


ANALYZERS: dict[str, type] = {
    "simple": SimpleAnalyzer,
    "lucene": LuceneAnalyzer,
}


def read_stopwords(path: str | Path) -> frozenset[str]:
    """Stopword file: one word per line, blank lines and `#` comments ignored."""
    words = set()
    with open(path) as f:
        for line in f:
            word = line.strip().lower()
            if word and not word.startswith("#"):
                words.add(word)
    return frozenset(words)


def get_analyzer(name: str, stopwords: frozenset[str] | None = None, min_length: int = 1) -> Analyzer:
    """
    Instantiate an analyzer by name ("simple" or "lucene").

    `stopwords` and `min_length` configure the simple analyzer. The lucene
    analyzer has fixed rules and rejects them.
    """
    if name not in ANALYZERS:
        raise ValueError(f"Unknown analyzer: {name} (expected one of {sorted(ANALYZERS)})")
    if name == "simple":
        return SimpleAnalyzer(LUCENE_STOPWORDS if stopwords is None else stopwords, min_length)
    if stopwords is not None or min_length != 1:
        raise ValueError("The lucene analyzer uses Lucene's own stopwords and token rules")
    return LuceneAnalyzer()


__all__ = [
    "Analyzer",
    "ANALYZERS",
    "LUCENE_STOPWORDS",
    "LuceneAnalyzer",
    "SimpleAnalyzer",
    "get_analyzer",
    "read_stopwords",
]
