"""Line-oriented CSV reading for Tradify quote exports.

Tradify exports are parsed with a simple quote-toggle rule rather than full
RFC 4180: every ``"`` flips the in-quotes state and is dropped, and ``,``
separates fields only outside quotes. Stored pattern keys were built from
this exact behaviour, so it must not change.
"""

from __future__ import annotations

import re

_MONEY_NOISE = re.compile(r"[$,\s\"]")


def parse_csv_line(line: str) -> list[str]:
    """Split one CSV line into trimmed fields.

    Example:
        >>> parse_csv_line('Q-1,"Ridge, capping",3')
        ['Q-1', 'Ridge, capping', '3']
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    fields.append("".join(current).strip())
    return fields


def split_lines(content: str) -> list[str]:
    """Split CSV content into lines, dropping carriage returns and blank lines."""
    lines = (line.replace("\r", "") for line in content.split("\n"))
    return [line for line in lines if line.strip()]


def parse_number(value: str | None) -> float | None:
    """Parse a numeric cell, tolerating currency symbols and thousands separators.

    Returns:
        The number, or None for an empty or unparseable cell
    """
    if value is None:
        return None
    cleaned = _MONEY_NOISE.sub("", value)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


class CsvTable:
    """Header-indexed view over parsed CSV rows."""

    def __init__(self, header: list[str], rows: list[list[str]]):
        self.header = header
        self.rows = rows
        self._index = {name: i for i, name in enumerate(header)}

    @classmethod
    def from_text(cls, content: str) -> CsvTable:
        lines = split_lines(content)
        if not lines:
            return cls([], [])
        header = parse_csv_line(lines[0])
        return cls(header, [parse_csv_line(line) for line in lines[1:]])

    def has_column(self, name: str) -> bool:
        return name in self._index

    def missing_columns(self, required: tuple[str, ...]) -> list[str]:
        return [name for name in required if name not in self._index]

    def cell(self, row: list[str], name: str) -> str | None:
        """Value of a named column in a row, or None if absent or out of range."""
        idx = self._index.get(name)
        if idx is None or idx >= len(row):
            return None
        return row[idx]
