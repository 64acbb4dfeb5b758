"""
Document and query loaders for building in-memory indexes.

- ir_datasets collections: documents as {"id", "contents"} dicts and
  (query id, text) pairs.
- Pyserini-style JSONL corpora: one JSON object per line with an "id" key and
  one key per field ("contents", "title", ...).
"""

from __future__ import annotations

import json
from pathlib import Path

import ir_datasets

from ranking_prf.index import DEFAULT_FIELD


def load_ir_dataset_documents(dataset_name: str, field: str = DEFAULT_FIELD) -> list[dict[str, str]]:
    """All documents of an ir_datasets collection, text stored under `field`."""
    dataset = ir_datasets.load(dataset_name)
    return [{"id": doc.doc_id, field: doc.default_text()} for doc in dataset.docs_iter()]


def load_ir_dataset_queries(dataset_name: str) -> list[tuple[str, str]]:
    """(query id, query text) pairs of an ir_datasets collection."""
    dataset = ir_datasets.load(dataset_name)
    return [(query.query_id, query.default_text()) for query in dataset.queries_iter()]


def read_jsonl_corpus(path: str | Path, id_key: str = "id") -> list[dict[str, str]]:
    documents = []
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            doc = json.loads(line)
            if id_key not in doc:
                raise ValueError(f"{path}:{line_no}: document without '{id_key}'")
            documents.append(doc)
    return documents


__all__ = ["load_ir_dataset_documents", "load_ir_dataset_queries", "read_jsonl_corpus"]
