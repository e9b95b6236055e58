"""
processor.py — streaming row processor for archival asset exports

Public API:
    modifier = CsvModifier().add_column_modifier("parent_id", ParentIdModifier())
    stats    = modifier.process_file("export.csv", "export-modified.csv")

One pass, one row at a time: sanitize -> title gate -> column modifiers in
ascending column-name order -> delimiter normalization -> write. Rows are
either written in full or skipped in full; skipped rows can optionally be
copied to a quarantine CSV with the reason attached.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
from collections import Counter
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Sequence

from workbench_preprocessor.cells import is_effectively_empty, normalize_cell, sanitize_text
from workbench_preprocessor.google_sheets import fetch_google_sheets_csv
from workbench_preprocessor.loader import load_csv_text
from workbench_preprocessor.modifiers import (
    AccessIdentifierValidator,
    ColumnModifier,
    FieldDescriptionSemicolonEscaper,
    FieldModelMapping,
    FieldModelModifier,
    FileExtensionModifier,
    ParentIdModifier,
    RowContext,
)
from workbench_preprocessor.modifiers.base import ACCESS_IDENTIFIER, FILE_EXTENSION_COLUMNS

logger = logging.getLogger(__name__)

TITLE_COLUMNS = ("title", "fileTitle")
FIELD_DESCRIPTION = "field_description"
FIELD_MODEL = "field_model"
CLEARABLE_COLUMNS = ("parent_id", "file")
DELIMITER_EXEMPT_COLUMNS = {"field_description", "description"}
QUARANTINE_REASON_COLUMN = "quarantine_reason"
VALIDATION_LOG_LIMIT = 25

OPTIONAL_MODIFIERS = ("parent-id", "file-extension", "field-model")
PROCESSED_SUFFIX = ".csv"

REASON_EMPTY_TITLE = "empty_title"
REASON_DUPLICATE_IDENTIFIER = "duplicate_access_identifier"
REASON_INVALID_IDENTIFIER = "invalid_access_identifier"


@dataclass
class ProcessingStats:
    total_rows: int = 0
    cells_modified: int = 0
    validation_failures: int = 0
    skipped_rows: int = 0
    columns_processed: set[str] = field(default_factory=set)
    quarantine_reason_counts: Counter = field(default_factory=Counter)

    def as_metrics(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "cells_modified": self.cells_modified,
            "validation_failures": self.validation_failures,
            "skipped_rows": self.skipped_rows,
            "columns_processed": sorted(self.columns_processed),
            "quarantine_reason_counts": dict(sorted(self.quarantine_reason_counts.items())),
        }


class ValidationLogBudget:
    """Allows detailed failure logs up to `limit`, then emits a single suppression notice."""

    def __init__(self, limit: int = VALIDATION_LOG_LIMIT) -> None:
        self.limit = limit
        self.suppressed = False

    def allow(self, failure_count: int) -> bool:
        if failure_count <= self.limit:
            return True
        if not self.suppressed:
            logger.warning(
                "More than %d validation failures encountered. "
                "Suppressing additional validation logs to avoid noise.",
                self.limit,
            )
            self.suppressed = True
        return False


@dataclass
class RowOutcome:
    values: list[str]
    accepted: bool
    reason: str | None = None


def mark_row(row: list[str]) -> None:
    if not row:
        return
    first = row[0]
    if first.startswith("#"):
        return
    row[0] = "#" if first == "" else "#" + first


def _find_title_column(header_index: dict[str, int]) -> tuple[int, str] | None:
    for name in TITLE_COLUMNS:
        if name in header_index:
            return header_index[name], name
    return None


class ProcessingPass:
    """
    State for one run over one input: stats, seen identifiers and the log budget.

    Nothing here outlives the pass; a new CsvModifier run builds a new one.
    """

    def __init__(
        self,
        headers: Sequence[str],
        modifiers: Sequence[tuple[str, ColumnModifier]],
        *,
        source_width: int | None = None,
        budget: ValidationLogBudget | None = None,
    ) -> None:
        self.headers = list(headers)
        self.width = len(self.headers)
        self.source_width = source_width if source_width is not None else self.width
        self.modifiers = list(modifiers)
        self.budget = budget or ValidationLogBudget()
        self.stats = ProcessingStats()
        self.seen_identifiers: set[str] = set()

        self.header_index: dict[str, int] = {}
        for idx, name in enumerate(self.headers):
            self.header_index.setdefault(name, idx)
        self.title_column = _find_title_column(self.header_index)
        self.delimiter_exempt = {
            idx for idx, name in enumerate(self.headers) if name.lower() in DELIMITER_EXEMPT_COLUMNS
        }

    def process_row(self, row_idx: int, raw_row: Sequence[str]) -> RowOutcome:
        if len(raw_row) > self.source_width:
            raise ValueError(
                f"Row {row_idx + 1} has {len(raw_row)} fields but the header has {self.source_width}"
            )
        row = list(raw_row) + [""] * (self.width - len(raw_row))

        for idx, cell in enumerate(row):
            cleaned, changed = sanitize_text(cell)
            if changed:
                row[idx] = cleaned
                self.stats.cells_modified += 1

        if self.title_column is not None:
            title_idx, title_name = self.title_column
            if not normalize_cell(row[title_idx]):
                mark_row(row)
                if self._record_failure():
                    logger.warning(
                        "Validation failed for column '%s' at row %d. "
                        "Reason: empty value detected; row marked and skipped.",
                        title_name,
                        row_idx + 1,
                    )
                return self._reject(row, REASON_EMPTY_TITLE)

        sanitized = list(row)
        pending_identifier: str | None = None

        for column, modifier in self.modifiers:
            col_idx = self.header_index.get(column)
            if col_idx is None:
                continue
            cell = row[col_idx]
            context = RowContext.snapshot(self.headers, row, row_idx)

            if not modifier.validate(cell, context):
                self._handle_invalid(column, modifier, cell, context, row, col_idx)
                if column == ACCESS_IDENTIFIER:
                    return self._reject(sanitized, REASON_INVALID_IDENTIFIER)
                continue

            if column == ACCESS_IDENTIFIER:
                identifier = normalize_cell(cell)
                if identifier and identifier in self.seen_identifiers:
                    if self._record_failure():
                        logger.warning(
                            "Duplicate accessIdentifier '%s' detected at row %d. Skipping row.",
                            identifier,
                            row_idx + 1,
                        )
                    return self._reject(sanitized, REASON_DUPLICATE_IDENTIFIER)
                if identifier:
                    pending_identifier = identifier

            new_value = modifier.modify(cell, context)
            if new_value != cell:
                self.stats.cells_modified += 1
                row[col_idx] = new_value

        for idx, cell in enumerate(row):
            if idx in self.delimiter_exempt or ";" not in cell:
                continue
            row[idx] = cell.replace(";", "|")
            self.stats.cells_modified += 1

        if pending_identifier is not None:
            self.seen_identifiers.add(pending_identifier)
        self.stats.total_rows += 1
        return RowOutcome(row, True)

    def finish(self) -> ProcessingStats:
        self.stats.columns_processed.update(column for column, _ in self.modifiers)
        return self.stats

    def _record_failure(self) -> bool:
        self.stats.validation_failures += 1
        return self.budget.allow(self.stats.validation_failures)

    def _reject(self, row: list[str], reason: str) -> RowOutcome:
        self.stats.skipped_rows += 1
        self.stats.quarantine_reason_counts[reason] += 1
        return RowOutcome(row, False, reason)

    def _handle_invalid(
        self,
        column: str,
        modifier: ColumnModifier,
        cell: str,
        context: RowContext,
        row: list[str],
        col_idx: int,
    ) -> None:
        should_log = self._record_failure()

        if column in CLEARABLE_COLUMNS and cell and not normalize_cell(cell):
            row[col_idx] = ""
            self.stats.cells_modified += 1

        if not should_log:
            return

        missing = self._missing_fields(column, cell, context)
        reason = (
            f"missing {', '.join(missing)}"
            if missing
            else "validation predicate returned false without missing fields"
        )
        logger.warning(
            "Validation failed for column '%s' at row %d using modifier '%s'. "
            "Current value='%s' (normalized='%s'). accessIdentifier='%s', "
            "file_extension='%s', file_extention='%s'. Reason: %s",
            column,
            context.row_index + 1,
            modifier.description(),
            cell,
            normalize_cell(cell),
            context.get(ACCESS_IDENTIFIER) or "",
            context.get("file_extension") or "",
            context.get("file_extention") or "",
            reason,
        )

    @staticmethod
    def _missing_fields(column: str, cell: str, context: RowContext) -> list[str]:
        missing: list[str] = []
        if is_effectively_empty(cell):
            missing.append(column)

        # an absent extension column reads as empty, so both spellings are named
        if not context.file_extension():
            missing.append("/".join(FILE_EXTENSION_COLUMNS))

        if not context.get_or_empty(ACCESS_IDENTIFIER) and ACCESS_IDENTIFIER not in missing:
            missing.append(ACCESS_IDENTIFIER)
        return missing


def processed_file_name(source_name: str | Path) -> str:
    """`<stem>-modified.csv`; processed output is always comma-separated whatever the input was."""
    return f"{Path(source_name).stem}-modified{PROCESSED_SUFFIX}"


@contextmanager
def atomic_text_writer(path: Path) -> Iterator[io.TextIOBase]:
    """Write next to `path` and move into place only when the block finishes cleanly."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=path.suffix or ".csv", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            yield handle
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class CsvModifier:
    """
    Column-rule engine.

    `accessIdentifier` and `field_description` rules are always registered;
    further rules are added with `add_column_modifier`. Rules run in ascending
    column-name order, so a later column sees values written by an earlier one.
    """

    def __init__(self, *, quoting: int = csv.QUOTE_MINIMAL) -> None:
        self.column_modifiers: dict[str, ColumnModifier] = {}
        self.quoting = quoting
        self.add_column_modifier(ACCESS_IDENTIFIER, AccessIdentifierValidator())
        self.add_column_modifier(FIELD_DESCRIPTION, FieldDescriptionSemicolonEscaper())

    def add_column_modifier(self, column: str, modifier: ColumnModifier) -> "CsvModifier":
        self.column_modifiers[column] = modifier
        return self

    def ordered_modifiers(self) -> list[tuple[str, ColumnModifier]]:
        return sorted(self.column_modifiers.items(), key=lambda item: item[0])

    def output_headers(self, headers: Sequence[str]) -> list[str]:
        result = list(headers)
        if FIELD_MODEL in self.column_modifiers and FIELD_MODEL not in result:
            result.append(FIELD_MODEL)
        return result

    def process_file(
        self,
        input_path: str | Path,
        output_path: str | Path,
        quarantine_path: str | Path | None = None,
    ) -> ProcessingStats:
        loaded = load_csv_text(input_path)
        for warning in loaded.warnings:
            logger.info(warning)
        return self.process_text(loaded.text, output_path, quarantine_path, delimiter=loaded.delimiter)

    def process_google_sheets(
        self,
        sheets_url: str,
        output_path: str | Path,
        quarantine_path: str | Path | None = None,
        fetch: Callable[[str], str] = fetch_google_sheets_csv,
    ) -> ProcessingStats:
        return self.process_text(fetch(sheets_url), output_path, quarantine_path)

    def process_text(
        self,
        csv_text: str,
        output_path: str | Path,
        quarantine_path: str | Path | None = None,
        *,
        delimiter: str = ",",
    ) -> ProcessingStats:
        reader = csv.reader(io.StringIO(csv_text, newline=""), delimiter=delimiter, strict=True)
        with ExitStack() as stack:
            output = stack.enter_context(atomic_text_writer(Path(output_path)))
            writer = csv.writer(output, quoting=self.quoting)
            quarantine_writer = None
            if quarantine_path is not None:
                quarantine = stack.enter_context(atomic_text_writer(Path(quarantine_path)))
                quarantine_writer = csv.writer(quarantine, quoting=self.quoting)
            return self.process_rows(reader, writer, quarantine_writer)

    def process_rows(
        self,
        rows: Iterable[Sequence[str]],
        writer: Any,
        quarantine_writer: Any | None = None,
    ) -> ProcessingStats:
        iterator = iter(rows)
        source_headers = next(iterator, None)
        if source_headers is None:
            raise ValueError("Input CSV is empty; a header row is required")

        headers = self.output_headers(source_headers)
        writer.writerow(headers)
        if quarantine_writer is not None:
            quarantine_writer.writerow(headers + [QUARANTINE_REASON_COLUMN])

        run = ProcessingPass(headers, self.ordered_modifiers(), source_width=len(source_headers))
        for row_idx, raw_row in enumerate(iterator):
            outcome = run.process_row(row_idx, raw_row)
            if outcome.accepted:
                writer.writerow(outcome.values)
            elif quarantine_writer is not None:
                quarantine_writer.writerow(outcome.values + [outcome.reason or ""])
        return run.finish()


def build_csv_modifier(
    selected: Iterable[str] = OPTIONAL_MODIFIERS,
    *,
    field_model_mapping: FieldModelMapping | None = None,
    quoting: int = csv.QUOTE_MINIMAL,
) -> CsvModifier:
    """Processor with the always-on rules plus the named optional ones."""
    modifier = CsvModifier(quoting=quoting)
    for name in selected:
        if name == "parent-id":
            modifier.add_column_modifier("parent_id", ParentIdModifier())
        elif name == "file-extension":
            modifier.add_column_modifier("file", FileExtensionModifier())
        elif name == "field-model":
            modifier.add_column_modifier(FIELD_MODEL, FieldModelModifier(field_model_mapping))
        else:
            raise ValueError(f"Unknown modifier '{name}'. Available: {', '.join(OPTIONAL_MODIFIERS)}")
    return modifier
