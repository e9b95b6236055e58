"""
items.py — one summary row per parent container

Reads a processed export, groups rows by `parent_id` and writes:

    file_identifier,title,# of items,field_member_of,field_date

The date column is inferred from each row's `field_date` (or, failing that,
its `fileTitle`): a dominant month wins as MM/YYYY, otherwise the rounded
mean year is used.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from workbench_preprocessor.cells import is_effectively_empty, normalize_cell
from workbench_preprocessor.loader import load_csv_text
from workbench_preprocessor.processor import atomic_text_writer

logger = logging.getLogger(__name__)

ITEMS_HEADER = ["file_identifier", "title", "# of items", "field_member_of", "field_date"]
DIGIT_RUN_RE = re.compile(r"[0-9]+")
DATE_SEPARATORS = ("-", "/")
MIN_YEAR = 1000
MAX_YEAR = 2999


class MissingColumnError(ValueError):
    pass


@dataclass
class ItemGenerationStats:
    unique_parents: int = 0
    total_items: int = 0
    skipped_rows: int = 0

    def as_metrics(self) -> dict:
        return {
            "unique_parents": self.unique_parents,
            "total_items": self.total_items,
            "skipped_rows": self.skipped_rows,
        }


def extract_year_month(text: str) -> tuple[Optional[int], Optional[int]]:
    """
    Pull a (year, month) pair out of free text.

    The year is the first run of exactly four digits between 1000 and 2999.
    The month is a one or two digit run joined to the year by '-' or '/',
    looked for after the year first and then before it.

    >>> extract_year_month("2024-01-05")
    (2024, 1)
    >>> extract_year_month("Letters 03/1911")
    (1911, 3)
    >>> extract_year_month("Box 12")
    (None, None)
    """
    runs = list(DIGIT_RUN_RE.finditer(text))
    for pos, run in enumerate(runs):
        digits = run.group()
        if len(digits) != 4 or not MIN_YEAR <= int(digits) <= MAX_YEAR:
            continue

        year = int(digits)
        after = runs[pos + 1] if pos + 1 < len(runs) else None
        if after is not None and _is_month_link(text, run.end(), after.start(), after.group()):
            return year, int(after.group())

        before = runs[pos - 1] if pos > 0 else None
        if before is not None and _is_month_link(text, before.end(), run.start(), before.group()):
            return year, int(before.group())
        return year, None
    return None, None


def _is_month_link(text: str, gap_start: int, gap_end: int, digits: str) -> bool:
    if gap_end - gap_start != 1 or text[gap_start] not in DATE_SEPARATORS:
        return False
    return len(digits) <= 2 and 1 <= int(digits) <= 12


@dataclass
class ParentGroup:
    title: str = ""
    item_count: int = 0
    year_counts: Counter = field(default_factory=Counter)
    year_month_counts: Counter = field(default_factory=Counter)
    total_date_samples: int = 0

    def add_item(self, title: str, date_text: str) -> None:
        if not self.title and title:
            self.title = title
        self.item_count += 1

        year, month = extract_year_month(date_text)
        if year is None:
            return
        self.year_counts[year] += 1
        if month is not None:
            self.year_month_counts[(year, month)] += 1
        self.total_date_samples += 1

    def inferred_date(self) -> str:
        if not self.total_date_samples:
            return ""

        if self.year_month_counts:
            (year, month), count = min(
                self.year_month_counts.items(),
                key=lambda item: (-item[1], item[0][0], item[0][1]),
            )
            if count * 2 > self.total_date_samples:
                return f"{month:02d}/{year:04d}"

        weighted = sum(year * count for year, count in self.year_counts.items())
        total = sum(self.year_counts.values())
        # round half up in integer arithmetic
        return f"{(2 * weighted + total) // (2 * total):04d}"


def _column_index(headers: Sequence[str], column: str, hint: str) -> int:
    try:
        return list(headers).index(column)
    except ValueError:
        raise MissingColumnError(f"Column '{column}' not found in CSV. {hint}") from None


class ItemCsvGenerator:
    """Builds the items file from a processed export."""

    @classmethod
    def generate(
        cls,
        input_path: str | Path,
        output_path: str | Path,
        node: Optional[str] = None,
    ) -> ItemGenerationStats:
        loaded = load_csv_text(input_path)
        return cls.generate_from_text(loaded.text, output_path, node, delimiter=loaded.delimiter)

    @classmethod
    def generate_from_processed(
        cls,
        processed_path: str | Path,
        output_path: str | Path,
        node: Optional[str] = None,
    ) -> ItemGenerationStats:
        """Read a file written by CsvModifier: UTF-8, comma-separated, whatever its suffix."""
        text = Path(processed_path).read_text(encoding="utf-8")
        return cls.generate_from_text(text, output_path, node)

    @classmethod
    def generate_from_text(
        cls,
        csv_text: str,
        output_path: str | Path,
        node: Optional[str] = None,
        *,
        delimiter: str = ",",
    ) -> ItemGenerationStats:
        reader = csv.reader(io.StringIO(csv_text, newline=""), delimiter=delimiter, strict=True)
        stats, groups = cls.group_rows(reader)

        with atomic_text_writer(Path(output_path)) as handle:
            writer = csv.writer(handle)
            writer.writerow(ITEMS_HEADER)
            for parent_id in sorted(groups):
                group = groups[parent_id]
                writer.writerow([parent_id, group.title, group.item_count, node or "", group.inferred_date()])

        logger.info(
            "Wrote %d parent rows from %d items (%d skipped) to %s",
            stats.unique_parents,
            stats.total_items,
            stats.skipped_rows,
            output_path,
        )
        return stats

    @staticmethod
    def group_rows(rows: Iterable[Sequence[str]]) -> tuple[ItemGenerationStats, dict[str, ParentGroup]]:
        iterator = iter(rows)
        headers = next(iterator, None)
        if headers is None:
            raise MissingColumnError("Input CSV is empty; a header row with 'parent_id' and 'fileTitle' is required")

        parent_idx = _column_index(
            headers, "parent_id", "Please ensure the input file has been processed with parent_id modifier."
        )
        title_idx = _column_index(
            headers, "fileTitle", "Please ensure the input file contains a fileTitle column."
        )
        date_idx = headers.index("field_date") if "field_date" in headers else None

        def cell(row: Sequence[str], idx: Optional[int]) -> str:
            if idx is None or idx >= len(row):
                return ""
            return row[idx]

        stats = ItemGenerationStats()
        groups: dict[str, ParentGroup] = {}
        for row in iterator:
            stats.total_items += 1
            parent_raw = cell(row, parent_idx)
            if is_effectively_empty(parent_raw):
                stats.skipped_rows += 1
                continue

            title = normalize_cell(cell(row, title_idx))
            date_text = normalize_cell(cell(row, date_idx)) or title
            groups.setdefault(normalize_cell(parent_raw), ParentGroup()).add_item(title, date_text)

        stats.unique_parents = len(groups)
        return stats, groups
