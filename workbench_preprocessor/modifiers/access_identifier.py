from __future__ import annotations

from workbench_preprocessor.cells import normalize_cell
from workbench_preprocessor.modifiers.base import ColumnModifier, RowContext

# Container-level records end in _00 / _000 and never describe a single item.
CONTAINER_SUFFIXES = ("_00", "_000")


class AccessIdentifierValidator(ColumnModifier):
    def modify(self, value: str, row: RowContext) -> str:
        return normalize_cell(value)

    def description(self) -> str:
        return "Validates accessIdentifier for item-level suitability"

    def validate(self, value: str, row: RowContext) -> bool:
        clean = normalize_cell(value)
        if not clean:
            return False
        return not clean.endswith(CONTAINER_SUFFIXES)
