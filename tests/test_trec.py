from pathlib import Path

import pytest

from ranking_prf.index import Hit
from ranking_prf.trec import (
    append_run,
    format_run_lines,
    parse_trec_topics,
    parse_tsv_topics,
    read_topics,
    run_file_path,
    staged_run_file,
)

TREC_TOPICS = """
<top>
<num> Number: 301
<title> International Organized Crime

<desc> Description:
Identify organizations that participate in international criminal activity.

<narr> Narrative:
A relevant document must as a minimum identify the organization.
</top>

<top>
<num> Number: 302
<title> Topic: Poliomyelitis and
Post-Polio

<desc> Description:
Is the disease of Poliomyelitis (polio) under control in the world?
</top>
"""


class TestTopics:
    def test_trec_topics(self):
        assert parse_trec_topics(TREC_TOPICS) == [
            ("301", "International Organized Crime"),
            ("302", "Poliomyelitis and Post-Polio"),
        ]

    def test_trec_topics_with_closing_tags(self):
        text = "<top><num>51</num><title>Airbus Subsidies</title></top>"
        assert parse_trec_topics(text) == [("51", "Airbus Subsidies")]

    def test_malformed_topic(self):
        with pytest.raises(ValueError):
            parse_trec_topics("<top><desc>no number</desc></top>")

    def test_tsv_topics(self):
        assert parse_tsv_topics("q1\tapple pie\n\nq2\tbanana\n") == [("q1", "apple pie"), ("q2", "banana")]

    def test_tsv_bad_line(self):
        with pytest.raises(ValueError, match="Line 2"):
            parse_tsv_topics("q1\tapple\nq2 banana\n")

    @pytest.mark.parametrize(
        "name,text,expected",
        [
            ("topics.301-450.txt", TREC_TOPICS, "301"),
            ("queries.tsv", "7\tcheap flights\n", "7"),
        ],
    )
    def test_read_topics_detects_format(self, tmp_path, name, text, expected):
        path = tmp_path / name
        path.write_text(text)
        assert read_topics(path)[0][0] == expected


class TestRunFiles:
    def test_format_run_lines(self):
        lines = format_run_lines("301", [Hit("FBIS3-1", 7.25), Hit("LA0101-2", 3)], "tag")
        assert lines == ["301\tQ0\tFBIS3-1\t0\t7.25\ttag\n", "301\tQ0\tLA0101-2\t1\t3.0\ttag\n"]

    def test_no_hits(self):
        assert format_run_lines("301", [], "tag") == []

    def test_append_run(self, tmp_path):
        path = tmp_path / "run.res"
        append_run(path, ["a\n"])
        append_run(path, ["b\n", "c\n"])
        assert path.read_text() == "a\nb\nc\n"

    def test_run_file_path(self):
        path = run_file_path("runs", "/data/topics.301-450.txt", "LMDirichlet1000.0-D10")
        assert path == Path("runs") / "topics.301-450.txt-LMDirichlet1000.0-D10.res"

    def test_staged_run_file_replaces_previous_run(self, tmp_path):
        path = tmp_path / "run.res"
        path.write_text("old\n")
        with staged_run_file(path) as staging_path:
            assert staging_path.read_text() == ""
            append_run(staging_path, ["a\n"])
            append_run(staging_path, ["b\n"])
            assert path.read_text() == "old\n"
        assert path.read_text() == "a\nb\n"
        assert not staging_path.exists()

    def test_staged_run_file_failure(self, tmp_path):
        path = tmp_path / "run.res"
        path.write_text("old\n")
        with pytest.raises(RuntimeError):
            with staged_run_file(path) as staging_path:
                append_run(staging_path, ["partial\n"])
                raise RuntimeError("query failed")
        assert path.read_text() == "old\n"
        assert not staging_path.exists()

    def test_staged_run_file_failure_without_previous_run(self, tmp_path):
        path = tmp_path / "run.res"
        with pytest.raises(RuntimeError):
            with staged_run_file(path) as staging_path:
                append_run(staging_path, ["partial\n"])
                raise RuntimeError("query failed")
        assert list(tmp_path.iterdir()) == []
