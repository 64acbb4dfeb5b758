"""
Tests for RM1, RM3 and the RM3-IDF variants.

Most cases use the two-document collection doc1 {a:2, b:1}, doc2 {b:1, c:3}
(7 tokens), λ = 0.5 and the query "b". Its relevance model, exactly:

    P(a|R) = 655/3528   ≈ 0.1857
    P(b|R) = 4729/28224 ≈ 0.1676
    P(c|R) = 2109/9408  ≈ 0.2242

so c ranks first, and b (the only term shared by both documents) ranks last.
Over 28224ths the unnormalized weights are a=5240, b=4729, c=6327.
"""

import math
from types import MappingProxyType

import pytest

from ranking_prf.feedback import FeedbackDocument, FeedbackRound, PerTermStat
from ranking_prf.index import DocumentVector
from ranking_prf.language_model import query_likelihood
from ranking_prf.relevance_model import (
    POOL_FACTOR,
    Variant,
    WordProbability,
    estimate_expansion_terms,
    idf,
    mix_with_query,
    normalize,
    rm1,
    rm3,
    rm3_idf1,
    rm3_idf2,
    rm3_idf3,
    select_top_terms,
)

A, B, C = 5240, 4729, 6327
TOTAL = A + B + C


def make_round(
    documents: dict[str, dict[str, int]],
    document_frequencies: dict[str, int] | None = None,
    document_count: int | None = None,
    query_tokens=("b",),
    mixing_lambda: float = 0.5,
) -> FeedbackRound:
    vectors = [DocumentVector.from_counts(doc_id, counts) for doc_id, counts in documents.items()]
    cf: dict[str, int] = {}
    df: dict[str, int] = {}
    for vector in vectors:
        for term, tf in vector.term_frequencies.items():
            cf[term] = cf.get(term, 0) + tf
            df[term] = df.get(term, 0) + 1
    if document_frequencies is not None:
        df.update(document_frequencies)
    stats = {term: PerTermStat(term, cf[term], df[term]) for term in cf}
    vocabulary_size = sum(vector.length for vector in vectors)
    return FeedbackRound(
        documents=tuple(
            FeedbackDocument(v.doc_id, v, query_likelihood(query_tokens, v, stats, vocabulary_size, mixing_lambda))
            for v in vectors
        ),
        term_stats=MappingProxyType(stats),
        vocabulary_size=vocabulary_size,
        document_count=document_count if document_count is not None else len(vectors),
        mixing_lambda=mixing_lambda,
    )


TWO_DOCS = {"doc1": {"a": 2, "b": 1}, "doc2": {"b": 1, "c": 3}}


@pytest.fixture
def two_doc_round():
    return make_round(TWO_DOCS)


@pytest.fixture
def common_c_round():
    """Same documents in a 100-document collection where c is very common."""
    return make_round(TWO_DOCS, document_frequencies={"c": 90}, document_count=100)


def expansion_weights(weights: dict[str, WordProbability]) -> dict[str, float]:
    return {term: wp.expansion_weight for term, wp in weights.items()}


class TestRM1:
    def test_two_document_values(self, two_doc_round):
        weights = {wp.term: wp.ranking_weight for wp in rm1(two_doc_round)}
        assert weights["a"] == pytest.approx(655 / 3528)
        assert weights["b"] == pytest.approx(4729 / 28224)
        assert weights["c"] == pytest.approx(2109 / 9408)

    def test_sorted_descending(self, two_doc_round):
        assert [wp.term for wp in rm1(two_doc_round)] == ["c", "a", "b"]

    def test_no_feedback_documents(self):
        assert rm1(make_round({})) == []


class TestPrimitives:
    def test_idf(self):
        assert idf(1, 100) == pytest.approx(math.log(50))
        assert idf(1, 2) == 0.0

    def test_normalize_is_idempotent(self):
        weights = {t: WordProbability(t, w) for t, w in [("x", 3.0), ("y", 1.0)]}
        once = {t: wp.ranking_weight for t, wp in normalize(weights).items()}
        twice = {t: wp.ranking_weight for t, wp in normalize(weights).items()}
        assert once == pytest.approx({"x": 0.75, "y": 0.25})
        assert twice == pytest.approx(once)

    def test_normalize_zero_sum_leaves_weights(self):
        weights = {"x": WordProbability("x", 0.0)}
        assert normalize(weights)["x"].ranking_weight == 0.0

    def test_normalize_one_channel_only(self):
        weights = {"x": WordProbability("x", 2.0, 4.0), "y": WordProbability("y", 2.0, 4.0)}
        normalize(weights, channel="expansion_weight")
        assert weights["x"].ranking_weight == 2.0
        assert weights["x"].expansion_weight == pytest.approx(0.5)

    def test_select_top_terms_copies(self):
        ranked = [WordProbability("x", 0.5), WordProbability("y", 0.3), WordProbability("z", 0.2)]
        selected = select_top_terms(ranked, 2)
        assert list(selected) == ["x", "y"]
        selected["x"].ranking_weight = 99.0
        assert ranked[0].ranking_weight == 0.5

    def test_select_top_terms_non_positive_limit(self):
        assert select_top_terms([WordProbability("x", 1.0)], 0) == {}

    def test_mix_uses_distinct_query_tokens(self):
        weights = mix_with_query({}, ["b", "b", "c"], 1.0)
        assert weights["b"].ranking_weight == pytest.approx(2 / 3)
        assert weights["c"].ranking_weight == pytest.approx(1 / 3)
        assert weights["b"].expansion_weight == pytest.approx(2 / 3)


class TestRM3:
    def test_two_document_values(self, two_doc_round):
        weights = rm3(two_doc_round, ["b"], num_feedback_terms=10, query_mix=0.5)
        assert expansion_weights(weights) == pytest.approx(
            {"a": 0.5 * A / TOTAL, "b": 0.5 * B / TOTAL + 0.5, "c": 0.5 * C / TOTAL}
        )

    def test_query_mix_lifts_shared_term_to_first(self, two_doc_round):
        weights = rm3(two_doc_round, ["b"], num_feedback_terms=10, query_mix=0.5)
        assert max(weights.values(), key=lambda wp: wp.expansion_weight).term == "b"

    def test_union_with_query_terms(self, two_doc_round):
        weights = rm3(two_doc_round, ["b", "zzz"], num_feedback_terms=1, query_mix=0.5)
        assert set(weights) == {"c", "b", "zzz"}
        assert weights["c"].expansion_weight == pytest.approx(0.5)
        assert weights["b"].expansion_weight == pytest.approx(0.25)
        assert weights["zzz"].expansion_weight == pytest.approx(0.25)

    def test_query_mix_zero_is_normalized_rm1(self, two_doc_round):
        weights = rm3(two_doc_round, ["b"], num_feedback_terms=2, query_mix=0.0)
        assert expansion_weights(weights) == pytest.approx({"c": C / (A + C), "a": A / (A + C), "b": 0.0})

    def test_query_mix_one_is_query_model(self, two_doc_round):
        weights = rm3(two_doc_round, ["b"], num_feedback_terms=10, query_mix=1.0)
        assert expansion_weights(weights) == pytest.approx({"a": 0.0, "b": 1.0, "c": 0.0})

    def test_shared_term_wins_when_documents_agree(self):
        # "x" is frequent in both documents and beats the single-document terms
        feedback = make_round({"d1": {"x": 3, "y": 1}, "d2": {"x": 3, "z": 1}}, query_tokens=("x",))
        ranked = rm1(feedback)
        assert ranked[0].term == "x"
        weights = rm3(feedback, ["x"], num_feedback_terms=1, query_mix=0.0)
        assert expansion_weights(weights) == pytest.approx({"x": 1.0})


class TestRM3IDF:
    def test_idf1_same_selection_when_idf_equal(self):
        feedback = make_round(TWO_DOCS, document_count=100)
        weights = rm3_idf1(feedback, ["b"], num_feedback_terms=2, query_mix=0.5)
        # a and c share df=1, so idf cancels in the normalization
        assert expansion_weights(weights) == pytest.approx(
            {"c": 0.5 * C / (A + C), "a": 0.5 * A / (A + C), "b": 0.5}
        )

    def test_idf1_demotes_common_terms(self, common_c_round):
        assert "c" in rm3(common_c_round, ["b"], num_feedback_terms=2, query_mix=0.5)
        weights = rm3_idf1(common_c_round, ["b"], num_feedback_terms=2, query_mix=0.5)
        assert set(weights) == {"a", "b"}

    def test_idf2_weights(self, common_c_round):
        weights = rm3_idf2(common_c_round, ["b"], num_feedback_terms=2, query_mix=0.5)
        mixed_a = 0.5 * A / TOTAL
        mixed_b = 0.5 * B / TOTAL + 0.5
        ranked_a = mixed_a * math.log(100 / 2)
        ranked_b = mixed_b * math.log(100 / 3)
        assert set(weights) == {"a", "b"}
        assert weights["b"].expansion_weight == pytest.approx(ranked_b / (ranked_a + ranked_b))
        assert weights["a"].expansion_weight == pytest.approx(ranked_a / (ranked_a + ranked_b))
        for wp in weights.values():
            assert wp.expansion_weight == wp.ranking_weight

    def test_idf3_selects_by_idf_weights_by_language_model(self, common_c_round):
        weights = rm3_idf3(common_c_round, ["b"], num_feedback_terms=2, query_mix=0.5)
        assert expansion_weights(weights) == pytest.approx(
            {"a": 0.5 * A / (A + B), "b": 0.5 * B / (A + B) + 0.5}
        )

    def test_idf3_expansion_weights_ignore_idf_magnitude(self):
        small = make_round(TWO_DOCS, document_frequencies={"c": 90}, document_count=100)
        large = make_round(TWO_DOCS, document_frequencies={"c": 90}, document_count=1000)
        weights_small = rm3_idf3(small, ["b"], num_feedback_terms=2, query_mix=0.5)
        weights_large = rm3_idf3(large, ["b"], num_feedback_terms=2, query_mix=0.5)
        assert set(weights_small) == set(weights_large)
        assert expansion_weights(weights_small) == pytest.approx(expansion_weights(weights_large))
        assert weights_small["a"].ranking_weight != pytest.approx(weights_large["a"].ranking_weight)

    def test_pool_factor(self):
        assert POOL_FACTOR == 20


class TestEstimateExpansionTerms:
    @pytest.mark.parametrize("variant", list(Variant))
    @pytest.mark.parametrize("num_feedback_terms", [1, 2, 10])
    @pytest.mark.parametrize("query_mix", [0.0, 0.3, 0.5, 1.0])
    def test_expansion_weights_sum_to_one(self, common_c_round, variant, num_feedback_terms, query_mix):
        weights = estimate_expansion_terms(variant, common_c_round, ["b"], num_feedback_terms, query_mix)
        assert sum(wp.expansion_weight for wp in weights.values()) == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.parametrize("variant", [v.value for v in Variant])
    def test_no_feedback_yields_query_model(self, variant):
        weights = estimate_expansion_terms(variant, make_round({}), ["b", "c", "b"], 10, 0.5)
        assert expansion_weights(weights) == pytest.approx({"b": 2 / 3, "c": 1 / 3})

    def test_unknown_variant(self, two_doc_round):
        with pytest.raises(ValueError):
            estimate_expansion_terms("rm4", two_doc_round, ["b"], 10, 0.5)

    def test_variant_codes(self):
        assert [v.code for v in Variant] == [0, 1, 2, 3]
