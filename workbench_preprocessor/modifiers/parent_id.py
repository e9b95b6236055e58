from __future__ import annotations

from workbench_preprocessor.modifiers.base import ACCESS_IDENTIFIER, ColumnModifier, RowContext, strip_last_segment


class ParentIdModifier(ColumnModifier):
    def modify(self, value: str, row: RowContext) -> str:
        access_identifier = row.get_or_empty(ACCESS_IDENTIFIER)
        if not access_identifier:
            return ""
        return strip_last_segment(access_identifier)

    def description(self) -> str:
        return "Extracts parent_id from accessIdentifier by removing the last underscore segment"

    def validate(self, value: str, row: RowContext) -> bool:
        return bool(row.get_or_empty(ACCESS_IDENTIFIER))
