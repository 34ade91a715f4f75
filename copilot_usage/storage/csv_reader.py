"""
CSV tokenizing for usage exports.

Splits raw CSV text into lines and lines into fields. Parsing is per line
with no state carried across lines, so rows can be processed in batches.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Sequence

BOM = "\ufeff"
QUOTE = '"'
DELIMITER = ","


class IngestionError(Exception):
    """Base class for errors that abort ingestion."""


class EmptyInputError(IngestionError):
    """Raised when the CSV text is empty or has a header but no data rows."""


@dataclass(frozen=True)
class CsvTable:
    """Header row plus the unparsed data lines that follow it.

    ``line_numbers`` holds the 1-based position of each data line, counting
    the header as line 1 and including any skipped blank lines.
    """
    headers: List[str]
    lines: List[str]
    line_numbers: List[int] = field(default_factory=list)


def parse_line(line: str) -> List[str]:
    """Split one CSV line into its fields.

    A double quote toggles quoting and is not part of the field; a comma
    inside quotes is literal. The last field is flushed at end of line.

    Args:
        line: A single line of CSV text, without its newline

    Returns:
        Ordered list of field strings
    """
    if line.endswith("\r"):
        line = line[:-1]

    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == QUOTE:
            in_quotes = not in_quotes
        elif char == DELIMITER and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)

    fields.append("".join(current))
    return fields


def split_lines(text: str) -> List[str]:
    """Split CSV text into lines once.

    Strips a byte-order mark from the first line only and drops blank lines
    around the content.
    """
    if text.startswith(BOM):
        text = text[len(BOM):]
    return text.strip().split("\n") if text.strip() else []


def iter_line_batches(lines: Sequence[str], batch_size: int) -> Iterator[List[str]]:
    """Yield consecutive fixed-size batches of lines.

    Args:
        lines: Lines to batch
        batch_size: Maximum number of lines per batch

    Raises:
        ValueError: If batch_size is not positive
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    for start in range(0, len(lines), batch_size):
        yield list(lines[start:start + batch_size])


def read_table(text: str) -> CsvTable:
    """Split CSV text into its header fields and data lines.

    Raises:
        EmptyInputError: If the text is empty or holds no data lines
    """
    lines = split_lines(text or "")
    if not lines:
        raise EmptyInputError("CSV input is empty")

    headers = [header.strip() for header in parse_line(lines[0])]
    numbered = [(number, line) for number, line in enumerate(lines[1:], start=2) if line.strip()]
    if not numbered:
        raise EmptyInputError("CSV input has a header row but no data rows")

    return CsvTable(
        headers=headers,
        lines=[line for _, line in numbered],
        line_numbers=[number for number, _ in numbered],
    )
