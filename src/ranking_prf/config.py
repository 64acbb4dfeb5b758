"""
Run configuration for relevance-feedback retrieval.

Recognized options (JSON keys match the attribute names):

    num_feedback_docs    feedback documents taken from the initial ranking
    num_feedback_terms   expansion terms kept
    mixing_lambda        λ of the smoothed document model; unset = derived from param1
    query_mix            QMIX, weight of the original query model
    variant              rm3 | rm3-idf1 | rm3-idf2 | rm3-idf3
    feedback_field       field the feedback statistics are read from
    search_field         field both retrieval passes search
    top_k_initial        depth of the initial retrieval
    num_hits             depth of the final retrieval (lines per query in the run)
    similarity           bm25 | lmjm | lmdir
    param1, param2       similarity parameters (k1/b, λ, μ)
    max_clause_count     clause cap of the expanded query
    run_tag              last column of the run file; unset = derived from the settings
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ranking_prf.expansion import MAX_CLAUSE_COUNT
from ranking_prf.index import DEFAULT_FIELD
from ranking_prf.relevance_model import Variant
from ranking_prf.similarity import Similarity, first_parameter, get_similarity

# Used as λ when the similarity's first parameter is not a usable probability
DEFAULT_MIXING_LAMBDA = 0.8


@dataclass(frozen=True)
class FeedbackConfig:
    num_feedback_docs: int = 10
    num_feedback_terms: int = 10
    mixing_lambda: float | None = None
    query_mix: float = 0.5
    variant: str = Variant.RM3_IDF3.value
    feedback_field: str = DEFAULT_FIELD
    search_field: str = DEFAULT_FIELD
    top_k_initial: int = 1000
    num_hits: int = 1000
    similarity: str = "lmdir"
    param1: float | None = None
    param2: float | None = None
    max_clause_count: int = MAX_CLAUSE_COUNT
    run_tag: str | None = None

    def __post_init__(self):
        for name in ("num_feedback_docs", "num_feedback_terms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        for name in ("top_k_initial", "num_hits", "max_clause_count"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if not 0.0 <= self.query_mix <= 1.0:
            raise ValueError(f"query_mix must be in [0, 1], got {self.query_mix}")
        if self.mixing_lambda is not None and not 0.0 <= self.mixing_lambda <= 1.0:
            raise ValueError(f"mixing_lambda must be in [0, 1], got {self.mixing_lambda}")
        try:
            Variant(self.variant)
        except ValueError:
            raise ValueError(
                f"Unknown variant: {self.variant} (expected one of {[v.value for v in Variant]})"
            ) from None
        # Validates the similarity name and parameters
        self.build_similarity()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> FeedbackConfig:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: str | Path) -> FeedbackConfig:
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def replace(self, **overrides: Any) -> FeedbackConfig:
        """Copy with the given options changed; None values are ignored."""
        return dataclasses.replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    # -------------------------------------------------------------------------
    # Derived settings
    # -------------------------------------------------------------------------

    @property
    def feedback_variant(self) -> Variant:
        return Variant(self.variant)

    def build_similarity(self) -> Similarity:
        return get_similarity(self.similarity, self.param1, self.param2)

    @property
    def resolved_mixing_lambda(self) -> float:
        """λ for the document model: explicit value, else param1 when it is <= 0.99, else 0.8."""
        if self.mixing_lambda is not None:
            return self.mixing_lambda
        param1 = self.param1 if self.param1 is not None else first_parameter(self.build_similarity())
        if param1 > 0.99:
            return DEFAULT_MIXING_LAMBDA
        return param1

    @property
    def resolved_run_tag(self) -> str:
        if self.run_tag is not None:
            return self.run_tag
        run_tag = f"{self.build_similarity()}-D{self.num_feedback_docs}-T{self.num_feedback_terms}"
        run_tag += f"-rm3idf-{self.feedback_variant.code}"
        run_tag += f"-queryMix-{self.query_mix}"
        run_tag += f"-{self.search_field}-{self.feedback_field}"
        return run_tag.replace(" ", "").replace("(", "").replace(")", "").replace("00000", "")


__all__ = ["DEFAULT_MIXING_LAMBDA", "FeedbackConfig"]
