"""
Unit tests for CSV tokenizing.

Tests quote handling, BOM stripping and batching of lines.
"""

import pytest

from copilot_usage.storage.csv_reader import (
    EmptyInputError,
    IngestionError,
    iter_line_batches,
    parse_line,
    read_table,
    split_lines,
)


class TestParseLine:
    """Test single-line tokenizing."""

    def test_quoted_comma_is_preserved(self):
        """Test that a comma inside quotes does not split the field."""
        assert parse_line('"a, b",2,"c"') == ["a, b", "2", "c"]

    def test_plain_fields(self):
        assert parse_line("x,y,z") == ["x", "y", "z"]

    def test_last_field_flushed_without_terminator(self):
        """Test that the final field needs no trailing delimiter."""
        assert parse_line("a,b") == ["a", "b"]
        assert parse_line("a,") == ["a", ""]

    def test_empty_line_is_single_empty_field(self):
        assert parse_line("") == [""]

    def test_quote_toggles_mid_field(self):
        """Test that quotes toggle quoting anywhere in a field."""
        assert parse_line('ab"c,d"e,f') == ["abc,de", "f"]

    def test_doubled_quotes_toggle_twice(self):
        """Test that doubled quotes are two toggles, not an escaped quote."""
        assert parse_line('"a""b",c') == ["ab", "c"]

    def test_trailing_carriage_return_removed(self):
        assert parse_line("a,b\r") == ["a", "b"]

    def test_no_state_across_lines(self):
        """Test that an unbalanced quote does not leak into the next line."""
        assert parse_line('"open,still open') == ["open,still open"]
        assert parse_line("a,b") == ["a", "b"]


class TestSplitLines:
    """Test line splitting."""

    def test_strips_bom_from_first_line(self):
        lines = split_lines("\ufeffTimestamp,User\n1,2")
        assert lines[0] == "Timestamp,User"

    def test_bom_only_stripped_at_start(self):
        """Test that a BOM later in the text is left alone."""
        lines = split_lines("a,b\n\ufeffc,d")
        assert lines[1] == "\ufeffc,d"

    def test_surrounding_blank_lines_dropped(self):
        assert split_lines("\n\na,b\nc,d\n\n") == ["a,b", "c,d"]

    def test_empty_text(self):
        assert split_lines("") == []
        assert split_lines("   \n  ") == []


class TestLineBatches:
    """Test fixed-size batching."""

    def test_batches_cover_all_lines_in_order(self):
        lines = [str(i) for i in range(10)]
        batches = list(iter_line_batches(lines, 3))
        assert [len(b) for b in batches] == [3, 3, 3, 1]
        assert [line for batch in batches for line in batch] == lines

    def test_batch_larger_than_input(self):
        assert list(iter_line_batches(["a", "b"], 1000)) == [["a", "b"]]

    def test_empty_input_yields_nothing(self):
        assert list(iter_line_batches([], 5)) == []

    def test_invalid_batch_size_raises_error(self):
        with pytest.raises(ValueError, match="batch_size must be > 0"):
            list(iter_line_batches(["a"], 0))


class TestReadTable:
    """Test header extraction and empty-input detection."""

    def test_headers_are_trimmed(self):
        table = read_table(' Timestamp , "User",Model\n1,2,3')
        assert table.headers == ["Timestamp", "User", "Model"]
        assert table.lines == ["1,2,3"]

    def test_empty_input_raises_error(self):
        with pytest.raises(EmptyInputError, match="empty"):
            read_table("")

    def test_header_only_raises_error(self):
        """Test that a header with no data rows aborts ingestion."""
        with pytest.raises(EmptyInputError, match="no data rows"):
            read_table("Timestamp,User,Model\n\n")

    def test_empty_input_is_an_ingestion_error(self):
        with pytest.raises(IngestionError):
            read_table("\ufeff")

    def test_blank_lines_between_rows_skipped(self):
        table = read_table("h1,h2\na,b\n\nc,d")
        assert table.lines == ["a,b", "c,d"]
        assert table.line_numbers == [2, 4]
