from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from workbench_preprocessor.cells import normalize_cell

ACCESS_IDENTIFIER = "accessIdentifier"
FILE_EXTENSION_COLUMNS = ("file_extension", "file_extention")


@dataclass(frozen=True)
class RowContext:
    """Read-only snapshot of one row, keyed by header name."""

    headers: tuple[str, ...]
    values: tuple[str, ...]
    row_index: int = 0

    @classmethod
    def snapshot(cls, headers: Sequence[str], values: Sequence[str], row_index: int = 0) -> "RowContext":
        return cls(tuple(headers), tuple(values), row_index)

    def get(self, column: str) -> str | None:
        try:
            idx = self.headers.index(column)
        except ValueError:
            return None
        if idx >= len(self.values):
            return None
        return self.values[idx]

    def get_or_empty(self, column: str) -> str:
        value = self.get(column)
        return normalize_cell(value) if value is not None else ""

    def get_first_non_empty(self, columns: Sequence[str]) -> str | None:
        for column in columns:
            value = self.get(column)
            if value is None:
                continue
            clean = normalize_cell(value)
            if clean:
                return clean
        return None

    def file_extension(self) -> str:
        return self.get_first_non_empty(FILE_EXTENSION_COLUMNS) or ""


class ColumnModifier:
    """
    A rule bound to one column.

    Subclasses override ``modify`` and ``description``; ``validate`` defaults
    to accepting every value. The processor only calls ``modify`` when
    ``validate`` returned True for the same snapshot.
    """

    def modify(self, value: str, row: RowContext) -> str:
        raise NotImplementedError

    def description(self) -> str:
        raise NotImplementedError

    def validate(self, value: str, row: RowContext) -> bool:
        return True


def strip_last_segment(access_identifier: str) -> str:
    """2024_19_01_001 -> 2024_19_01; identifiers without an underscore come back unchanged."""
    head, sep, _ = access_identifier.rpartition("_")
    return head if sep else access_identifier
