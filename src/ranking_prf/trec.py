"""
TREC topic files and run files.

Run file lines are tab-separated:

    <query id>  Q0  <document id>  <rank>  <score>  <run tag>

with 0-based ranks. Lines are appended one query at a time to a temporary
sibling of the run file, which replaces the run file only once every query
has been written.

Topic files are either TREC SGML (<top> <num> Number: 301 <title> ...) or
two-column TSV (query id, query text).
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ranking_prf.index import Hit


_TOP_PATTERN = re.compile(r"<top>(.*?)</top>", re.DOTALL | re.IGNORECASE)
_NUM_PATTERN = re.compile(r"<num>\s*(?:Number:)?\s*([^\s<]+)", re.IGNORECASE)
_TITLE_PATTERN = re.compile(r"<title>\s*(?:Topic:)?(.*?)(?=<\w+>|</title>|$)", re.DOTALL | re.IGNORECASE)


def format_run_lines(query_id: str, hits: Sequence[Hit], run_tag: str) -> list[str]:
    return [f"{query_id}\tQ0\t{hit.doc_id}\t{rank}\t{float(hit.score)}\t{run_tag}\n" for rank, hit in enumerate(hits)]


def append_run(path: str | Path, lines: Iterable[str]) -> None:
    with open(path, "a") as f:
        f.writelines(lines)


@contextmanager
def staged_run_file(path: str | Path) -> Iterator[Path]:
    """
    Yield an empty temporary file next to `path` to append run lines to.

    On normal exit the temporary file replaces `path`, so an earlier run with
    the same name is overwritten rather than extended. If the block raises,
    the temporary file is removed and `path` is left as it was.
    """
    path = Path(path)
    staging_path = path.with_name(path.name + ".tmp")
    staging_path.write_text("")
    try:
        yield staging_path
    except BaseException:
        staging_path.unlink(missing_ok=True)
        raise
    os.replace(staging_path, path)


def run_file_path(res_dir: str | Path, topics_path: str | Path, run_tag: str) -> Path:
    """<res_dir>/<topics file name>-<run tag>.res"""
    return Path(res_dir) / f"{Path(topics_path).name}-{run_tag}.res"


def parse_trec_topics(text: str) -> list[tuple[str, str]]:
    topics = []
    for block in _TOP_PATTERN.findall(text):
        num = _NUM_PATTERN.search(block)
        title = _TITLE_PATTERN.search(block)
        if num is None or title is None:
            raise ValueError(f"Malformed topic block: {block.strip()[:80]!r}")
        topics.append((num.group(1), " ".join(title.group(1).split())))
    return topics


def parse_tsv_topics(text: str) -> list[tuple[str, str]]:
    topics = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        parts = line.rstrip("\n").split("\t", 1)
        if len(parts) != 2:
            raise ValueError(f"Line {line_no}: expected '<query id>\\t<query text>', got {line!r}")
        topics.append((parts[0].strip(), parts[1].strip()))
    return topics


def read_topics(path: str | Path) -> list[tuple[str, str]]:
    """Read (query id, query text) pairs from a TREC or TSV topic file."""
    text = Path(path).read_text()
    if _TOP_PATTERN.search(text):
        return parse_trec_topics(text)
    return parse_tsv_topics(text)


__all__ = [
    "append_run",
    "format_run_lines",
    "parse_trec_topics",
    "parse_tsv_topics",
    "read_topics",
    "run_file_path",
    "staged_run_file",
]
