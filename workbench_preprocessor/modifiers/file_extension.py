from __future__ import annotations

from workbench_preprocessor.cells import normalize_cell
from workbench_preprocessor.modifiers.base import ACCESS_IDENTIFIER, ColumnModifier, RowContext, strip_last_segment


class FileExtensionModifier(ColumnModifier):
    """Rewrites `file` as <parent_id>/<basename>.<extension>, dropping any extension already present."""

    def modify(self, value: str, row: RowContext) -> str:
        extension = row.file_extension()
        access_identifier = row.get_or_empty(ACCESS_IDENTIFIER)
        value_clean = normalize_cell(value)

        if not extension or not value_clean or not access_identifier:
            return value_clean

        parent_id = strip_last_segment(access_identifier)
        base_name, dot, _ = value_clean.rpartition(".")
        if not dot:
            base_name = value_clean
        return f"{parent_id}/{base_name}.{extension}"

    def description(self) -> str:
        return "Creates file path with parent_id directory and file extension from accessIdentifier"

    def validate(self, value: str, row: RowContext) -> bool:
        has_value = bool(normalize_cell(value))
        has_extension = bool(row.file_extension())
        has_access_identifier = bool(row.get_or_empty(ACCESS_IDENTIFIER))
        return has_value and has_extension and has_access_identifier
