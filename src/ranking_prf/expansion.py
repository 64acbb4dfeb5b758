"""
Boosted disjunctive queries and construction of the expanded feedback query.

A BoostedQuery is the Lucene BooleanQuery shape used by both retrieval passes:
a flat list of SHOULD term clauses, each with a boost that multiplies the
clause's similarity score. The initial query has one clause per analyzed query
token (boost 1.0, repeated tokens repeat the clause); the expanded query has one
clause per expansion term with the term's expansion weight as boost.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ranking_prf.relevance_model import WordProbability

# Lucene's BooleanQuery clause cap as configured by the feedback runs
MAX_CLAUSE_COUNT = 4096

# Terms carrying a field prefix ("title:foo") are query-syntax artifacts
FIELD_DELIMITER = ":"


class TooManyClauses(ValueError):
    """Raised when a query would exceed the configured clause cap."""

    def __init__(self, clause_count: int, max_clause_count: int):
        super().__init__(f"maxClauseCount is set to {max_clause_count} (query has {clause_count} clauses)")
        self.clause_count = clause_count
        self.max_clause_count = max_clause_count


@dataclass(frozen=True)
class TermClause:
    field: str
    term: str
    boost: float = 1.0

    def __str__(self) -> str:
        if self.boost == 1.0:
            return self.term
        return f"{self.term}^{self.boost}"


@dataclass(frozen=True)
class BoostedQuery:
    """Disjunction (OR) of boosted term clauses over one field."""

    field: str
    clauses: tuple[TermClause, ...] = ()

    @classmethod
    def from_tokens(
        cls,
        tokens: Iterable[str],
        field: str,
        max_clause_count: int = MAX_CLAUSE_COUNT,
    ) -> BoostedQuery:
        """Unweighted query: one clause per token, duplicates kept."""
        clauses = tuple(TermClause(field, token) for token in tokens)
        _check_clause_count(len(clauses), max_clause_count)
        return cls(field, clauses)

    def __len__(self) -> int:
        return len(self.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)

    def __str__(self) -> str:
        return " ".join(str(clause) for clause in self.clauses)

    def term_boosts(self) -> dict[str, float]:
        """Summed boost per distinct term (repeated clauses add up, as in Lucene)."""
        boosts: dict[str, float] = {}
        for clause in self.clauses:
            boosts[clause.term] = boosts.get(clause.term, 0.0) + clause.boost
        return boosts


def _check_clause_count(clause_count: int, max_clause_count: int) -> None:
    if clause_count > max_clause_count:
        raise TooManyClauses(clause_count, max_clause_count)


def build_expanded_query(
    expansion: Mapping[str, WordProbability],
    field: str,
    max_clause_count: int = MAX_CLAUSE_COUNT,
) -> BoostedQuery:
    """
    Turn the final term weights into a boosted OR query over `field`.

    Field-qualified terms are skipped. Every other term becomes one clause with
    boost = expansion weight. Exceeding `max_clause_count` raises TooManyClauses
    instead of dropping terms.
    """
    clauses = tuple(
        TermClause(field, term, float(wp.expansion_weight))
        for term, wp in expansion.items()
        if FIELD_DELIMITER not in term
    )
    _check_clause_count(len(clauses), max_clause_count)
    return BoostedQuery(field, clauses)


__all__ = [
    "BoostedQuery",
    "FIELD_DELIMITER",
    "MAX_CLAUSE_COUNT",
    "TermClause",
    "TooManyClauses",
    "build_expanded_query",
]
