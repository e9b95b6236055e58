from __future__ import annotations

from workbench_preprocessor.modifiers.base import ColumnModifier, RowContext


def escape_semicolons(value: str) -> str:
    parts: list[str] = []
    previous = ""
    for ch in value:
        if ch == ";" and previous != "\\":
            parts.append("\\")
        parts.append(ch)
        previous = ch
    return "".join(parts)


def ensure_wrapped_in_quotes(value: str) -> str:
    if not value:
        return '""'
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value
    return '"' + value.replace('"', '""') + '"'


class FieldDescriptionSemicolonEscaper(ColumnModifier):
    """
    Protects field_description from downstream importers that split on ';'.

    Bare semicolons are backslash-escaped and the whole value is wrapped in a
    literal pair of double quotes, so the CSV writer emits it as a quoted,
    quote-doubled field. Values that are already wrapped are left as they are,
    which keeps a second run over the same file a no-op.
    """

    def modify(self, value: str, row: RowContext) -> str:
        return ensure_wrapped_in_quotes(escape_semicolons(value))

    def description(self) -> str:
        return "Escapes unescaped semicolons in field_description"
