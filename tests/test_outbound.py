"""Tests for outbound report formatting and message splitting."""

import pytest

from chronos_relay.communication.outbound import (
    DEFAULT_CHUNK_LENGTH,
    format_download_summary,
    format_results,
    split_message,
    split_sentences,
)
from chronos_relay.ingestion.results import QAResult


def _content(text: str) -> str:
    """Text with all whitespace removed, for lossless-content checks."""
    return "".join(text.split())


# ── split_message ───────────────────────────────────────────

class TestSplitMessage:
    def test_default_length(self):
        assert DEFAULT_CHUNK_LENGTH == 1900

    def test_short_text_unchanged(self):
        text = "  hello\nworld  \n"
        assert split_message(text) == [text]

    def test_exact_limit_is_single_chunk(self):
        text = "x" * 50
        assert split_message(text, max_length=50) == [text]

    def test_splits_on_lines(self):
        lines = [f"line {i:02d} " + "y" * 20 for i in range(20)]
        text = "\n".join(lines)
        chunks = split_message(text, max_length=100)
        assert len(chunks) > 1
        assert all(len(c) <= 100 for c in chunks)
        # no line is cut in half
        for chunk in chunks:
            for line in chunk.split("\n"):
                assert line in lines
        assert "\n".join(chunks) == text

    def test_long_line_split_at_sentences(self):
        sentence = "This sentence is about forty chars long. "
        line = sentence * 10
        chunks = split_message(line, max_length=100)
        assert len(chunks) > 1
        assert all(len(c) <= 100 for c in chunks)
        for chunk in chunks:
            assert chunk.endswith(".")
        assert _content("".join(chunks)) == _content(line)

    def test_text_after_last_punctuation_kept(self):
        line = "First sentence here. " * 8 + "trailing words without a full stop"
        chunks = split_message(line, max_length=60)
        assert chunks[-1].endswith("trailing words without a full stop")
        assert _content("".join(chunks)) == _content(line)

    def test_oversized_sentence_not_truncated(self):
        line = "a" * 5000
        chunks = split_message(line, max_length=1900)
        assert chunks == [line]

    def test_oversized_sentence_between_others(self):
        text = "short intro\n" + "b" * 300 + "\nshort outro"
        chunks = split_message(text, max_length=100)
        assert "b" * 300 in chunks
        assert chunks[0] == "short intro"
        assert chunks[-1] == "short outro"

    def test_every_chunk_within_limit(self):
        text = "\n".join(
            ("Sentence number %d is here. " % i) * (i % 7 + 1) for i in range(60)
        )
        for limit in (40, 80, 150, 500):
            chunks = split_message(text, max_length=limit)
            assert all(len(c) <= limit for c in chunks), limit
            assert _content("".join(chunks)) == _content(text)

    def test_order_preserved(self):
        text = "\n".join(f"item-{i:03d}" for i in range(300))
        chunks = split_message(text, max_length=120)
        items = [line for chunk in chunks for line in chunk.split("\n")]
        assert items == [f"item-{i:03d}" for i in range(300)]

    def test_blank_lines_do_not_create_empty_chunks(self):
        text = ("para\n\n\n\n" * 40).strip()
        chunks = split_message(text, max_length=20)
        assert all(chunk for chunk in chunks)

    def test_limit_of_one(self):
        chunks = split_message("ab\ncd", max_length=1)
        assert _content("".join(chunks)) == "abcd"

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            split_message("text", max_length=0)

    def test_non_empty_for_non_empty_input(self):
        assert split_message("x" * 3000, max_length=100)


def test_split_sentences_is_lossless():
    line = "...Wait! Really? Yes. and then some"
    assert "".join(split_sentences(line)) == line
    assert split_sentences(line)[-1] == " and then some"


# ── Formatting ──────────────────────────────────────────────

def test_format_results():
    text = format_results([QAResult("Is X true?", "Yes."), QAResult("Why?", "Because.")])
    assert text.startswith("🔬 **Chronos Analysis Results**\n\n")
    assert "**Q1:** Is X true?\n\n**A1:** Yes.\n\n---\n\n" in text
    assert "**Q2:** Why?\n\n**A2:** Because.\n\n---\n\n" in text
    assert text.index("**Q1:**") < text.index("**Q2:**")


def test_format_results_custom_title():
    assert format_results([], title="Report").startswith("Report\n\n")


def test_formatted_report_splits_cleanly():
    results = [QAResult(f"Question {i}?", "An answer. " * 30) for i in range(10)]
    chunks = split_message(format_results(results), max_length=DEFAULT_CHUNK_LENGTH)
    assert len(chunks) > 1
    assert all(len(c) <= DEFAULT_CHUNK_LENGTH for c in chunks)
    joined = "\n".join(chunks)
    for i in range(10):
        assert f"**Q{i + 1}:** Question {i}?" in joined


def test_download_summary_success_and_failures():
    text = format_download_summary(["a.png", "b.jpg"], ["c.png: HTTP 404"])
    assert text.startswith("Successfully downloaded 2 image(s):\n- a.png\n- b.jpg")
    assert "Failed to download 1 image(s):\nc.png: HTTP 404" in text


def test_download_summary_only_failures():
    text = format_download_summary([], ["c.png: boom"])
    assert text.startswith("Failed to download 1 image(s):")


def test_download_summary_nothing():
    assert format_download_summary([], []) == "No images found in message"
