"""
Tests for model output normalization.
"""

import pytest

from agents.normalize import normalize_output, reassemble


class TestNormalizeOutput:

    def test_strips_commas_and_emphasis(self):
        lines = normalize_output("*smiles* Well, hello there, friend!\n**Really**, I mean it.")

        joined = "".join(lines)
        assert "," not in joined
        assert "*" not in joined
        assert lines == ["smiles Well hello there friend!", "Really I mean it."]

    @pytest.mark.parametrize("segments", [1, 2, 5, 12])
    def test_n_segments_give_n_lines_in_order(self, segments):
        raw = "\n".join(f"line {i}" for i in range(segments))

        assert normalize_output(raw) == [f"line {i}" for i in range(segments)]

    def test_trims_surrounding_whitespace_only(self):
        lines = normalize_output("\n\n   first\n  indented second  \n\n")

        assert lines == ["first", "  indented second"]

    def test_keeps_blank_lines_between_paragraphs(self):
        assert normalize_output("one\n\ntwo") == ["one", "", "two"]

    @pytest.mark.parametrize("raw", ["", "   ", "\n\n", "***", " ,,* "])
    def test_empty_after_normalization_gives_no_lines(self, raw):
        assert normalize_output(raw) == []

    def test_reassemble_joins_with_newlines(self):
        lines = normalize_output("a, b\nc")

        assert reassemble(lines) == "a b\nc"
        assert reassemble([]) == ""
