"""
Relevance model term weighting: RM1, RM3 and the RM3-IDF variants.

RM1 (Lavrenko & Croft, SIGIR 2001), IID sampling over the feedback documents:

    P(w|R) = Σ_{d ∈ F} P(w|d) * P(Q|d)

RM3 (Abdul-Jaleel et al., TREC 2004) interpolates the truncated, normalized RM1
with the query model:

    P'(w|R) = (1 - QMIX) * RM1_N(w) + QMIX * P(w|Q)

RM3-IDF (Roy, Bhatia & Mitra, "Selecting Discriminative Terms for Relevance
Model", SIGIR 2019) injects idf(w) = ln(N / (df(w) + 1)) at different points:

    RM3-IDF1  idf scales RM1 before truncation (selection and magnitude)
    RM3-IDF2  idf scales the mixed RM3 weights of a 20x pool (selection and magnitude)
    RM3-IDF3  idf reorders a 20x pool for selection only; the expansion weight
              stays the language-model weight

Every WordProbability has two channels. ranking_weight orders and selects terms;
expansion_weight becomes the clause boost. All variants except RM3-IDF3 set
expansion_weight = ranking_weight after the final normalization.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from ranking_prf.feedback import FeedbackRound
from ranking_prf.language_model import query_mle

# Coarse pool size of RM3-IDF2/3, as a multiple of the number of feedback terms
POOL_FACTOR = 20


@dataclass
class WordProbability:
    term: str
    ranking_weight: float
    expansion_weight: float = 0.0

    def copy(self) -> WordProbability:
        return WordProbability(self.term, self.ranking_weight, self.expansion_weight)


class Variant(enum.Enum):
    RM3 = "rm3"
    RM3_IDF1 = "rm3-idf1"
    RM3_IDF2 = "rm3-idf2"
    RM3_IDF3 = "rm3-idf3"

    @property
    def code(self) -> int:
        """Numeric method id used in run tags (0 for plain RM3)."""
        return _VARIANT_CODES[self]


_VARIANT_CODES = {Variant.RM3: 0, Variant.RM3_IDF1: 1, Variant.RM3_IDF2: 2, Variant.RM3_IDF3: 3}


# -----------------------------------------------------------------------------
# Shared primitives
# -----------------------------------------------------------------------------


def idf(document_frequency: int, document_count: int) -> float:
    return math.log(document_count / (document_frequency + 1))


def sort_by_ranking_weight(weights: Iterable[WordProbability]) -> list[WordProbability]:
    # No tie-break: equal weights keep whatever order they arrive in
    return sorted(weights, key=lambda wp: wp.ranking_weight, reverse=True)


def select_top_terms(ranked: Iterable[WordProbability], limit: int) -> dict[str, WordProbability]:
    """First `limit` distinct terms of a ranked list, copied."""
    selected: dict[str, WordProbability] = {}
    if limit <= 0:
        return selected
    for wp in ranked:
        if wp.term in selected:
            continue
        selected[wp.term] = wp.copy()
        if len(selected) >= limit:
            break
    return selected


def normalize(weights: dict[str, WordProbability], channel: str = "ranking_weight") -> dict[str, WordProbability]:
    """Divide one channel by its sum, in place. A zero sum leaves weights untouched."""
    total = sum(getattr(wp, channel) for wp in weights.values())
    if total != 0:
        for wp in weights.values():
            setattr(wp, channel, getattr(wp, channel) / total)
    return weights


def mix_with_query(
    weights: dict[str, WordProbability],
    query_tokens: Sequence[str],
    query_mix: float,
    channel: str = "ranking_weight",
) -> dict[str, WordProbability]:
    """
    Interpolate one channel with the query model and renormalize, in place.

    w(t) = (1 - QMIX) * w(t) + QMIX * P(t|Q) over the union of the selected
    terms and the distinct query tokens. Query tokens not already present are
    appended with both channels set to their query weight.
    """
    for wp in weights.values():
        setattr(wp, channel, getattr(wp, channel) * (1.0 - query_mix))

    for token in dict.fromkeys(query_tokens):
        weight_q = query_mix * query_mle(token, query_tokens)
        if token in weights:
            wp = weights[token]
            setattr(wp, channel, getattr(wp, channel) + weight_q)
        else:
            weights[token] = WordProbability(token, weight_q, weight_q)

    return normalize(weights, channel)


def _apply_idf(weights: Iterable[WordProbability], feedback: FeedbackRound) -> None:
    for wp in weights:
        stat = feedback.term_stats.get(wp.term)
        if stat is not None:
            wp.ranking_weight *= idf(stat.document_frequency, feedback.document_count)


def _sync_channels(weights: dict[str, WordProbability]) -> dict[str, WordProbability]:
    for wp in weights.values():
        wp.expansion_weight = wp.ranking_weight
    return weights


# -----------------------------------------------------------------------------
# RM1
# -----------------------------------------------------------------------------


def rm1(feedback: FeedbackRound) -> list[WordProbability]:
    """Unnormalized P(w|R) for every feedback term, sorted descending."""
    weights = []
    for term in feedback.term_stats:
        p_w_given_r = 0.0
        for doc in feedback.documents:
            p_w_given_r += feedback.smoothed_mle(term, doc.vector) * doc.query_likelihood
        weights.append(WordProbability(term, p_w_given_r))
    return sort_by_ranking_weight(weights)


# -----------------------------------------------------------------------------
# RM3 family
# -----------------------------------------------------------------------------


def _rm3_from_ranked(
    ranked: list[WordProbability],
    query_tokens: Sequence[str],
    num_feedback_terms: int,
    query_mix: float,
) -> dict[str, WordProbability]:
    selected = normalize(select_top_terms(ranked, num_feedback_terms))
    return _sync_channels(mix_with_query(selected, query_tokens, query_mix))


def rm3(
    feedback: FeedbackRound,
    query_tokens: Sequence[str],
    num_feedback_terms: int,
    query_mix: float,
) -> dict[str, WordProbability]:
    """Top terms of RM1, normalized, interpolated with P(w|Q)."""
    return _rm3_from_ranked(rm1(feedback), query_tokens, num_feedback_terms, query_mix)


def rm3_idf1(
    feedback: FeedbackRound,
    query_tokens: Sequence[str],
    num_feedback_terms: int,
    query_mix: float,
) -> dict[str, WordProbability]:
    """RM3 over idf-weighted RM1: idf decides selection and magnitude."""
    ranked = rm1(feedback)
    _apply_idf(ranked, feedback)
    return _rm3_from_ranked(sort_by_ranking_weight(ranked), query_tokens, num_feedback_terms, query_mix)


def rm3_idf2(
    feedback: FeedbackRound,
    query_tokens: Sequence[str],
    num_feedback_terms: int,
    query_mix: float,
) -> dict[str, WordProbability]:
    """RM3 over a 20x pool, then idf-weighted, re-sorted and truncated."""
    pool = normalize(select_top_terms(rm1(feedback), num_feedback_terms * POOL_FACTOR))
    mixed = mix_with_query(pool, query_tokens, query_mix)
    _apply_idf(mixed.values(), feedback)
    selected = normalize(select_top_terms(sort_by_ranking_weight(mixed.values()), num_feedback_terms))
    return _sync_channels(selected)


def rm3_idf3(
    feedback: FeedbackRound,
    query_tokens: Sequence[str],
    num_feedback_terms: int,
    query_mix: float,
) -> dict[str, WordProbability]:
    """
    Discriminative term selection.

    The 20x pool is reordered by idf * P(w|R) (ranking channel) and cut to
    num_feedback_terms; the kept terms carry their plain RM1 weight
    (expansion channel), renormalized and mixed with the query.
    """
    pool = normalize(select_top_terms(rm1(feedback), num_feedback_terms * POOL_FACTOR))
    for wp in pool.values():
        wp.expansion_weight = wp.ranking_weight

    _apply_idf(pool.values(), feedback)
    selected = select_top_terms(sort_by_ranking_weight(pool.values()), num_feedback_terms)
    normalize(selected, channel="expansion_weight")

    return mix_with_query(selected, query_tokens, query_mix, channel="expansion_weight")


Estimator = Callable[[FeedbackRound, Sequence[str], int, float], dict[str, WordProbability]]

ESTIMATORS: dict[Variant, Estimator] = {
    Variant.RM3: rm3,
    Variant.RM3_IDF1: rm3_idf1,
    Variant.RM3_IDF2: rm3_idf2,
    Variant.RM3_IDF3: rm3_idf3,
}


def estimate_expansion_terms(
    variant: Variant | str,
    feedback: FeedbackRound,
    query_tokens: Sequence[str],
    num_feedback_terms: int,
    query_mix: float,
) -> dict[str, WordProbability]:
    """
    Final term -> WordProbability mapping of the chosen variant.

    Args:
        variant: Variant or its name ("rm3", "rm3-idf1", "rm3-idf2", "rm3-idf3")
        feedback: Statistics of this query's feedback round
        query_tokens: Analyzed query tokens
        num_feedback_terms: Number of expansion terms to keep
        query_mix: QMIX, weight of the original query model

    Returns:
        Expansion weights summing to 1 over the returned terms
    """
    return ESTIMATORS[Variant(variant)](feedback, query_tokens, num_feedback_terms, query_mix)


__all__ = [
    "ESTIMATORS",
    "POOL_FACTOR",
    "Variant",
    "WordProbability",
    "estimate_expansion_terms",
    "idf",
    "mix_with_query",
    "normalize",
    "rm1",
    "rm3",
    "rm3_idf1",
    "rm3_idf2",
    "rm3_idf3",
    "select_top_terms",
    "sort_by_ranking_weight",
]
