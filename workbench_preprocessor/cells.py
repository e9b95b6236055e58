"""Cell-level text helpers shared by the processor, the modifiers and the items generator."""

from __future__ import annotations

VALUE_PLACEHOLDER = "#value!"
NBSP = "\u00a0"

# Characters that show up when UTF-8 text was decoded as Windows-1252 / Latin-1.
MOJIBAKE_MARKERS = frozenset("Ãâ€™œ¢‰ŠžÂ")

# Windows-1252 leaves these bytes unassigned; WHATWG decodes them to the C1
# control with the same value, so encoding has to map them back the same way.
CP1252_UNASSIGNED = frozenset({0x81, 0x8D, 0x8F, 0x90, 0x9D})


def normalize_cell(value: str) -> str:
    trimmed = value.strip()
    if trimmed.lower() == VALUE_PLACEHOLDER:
        return ""
    return trimmed


def is_effectively_empty(value: str) -> bool:
    return normalize_cell(value) == ""


def contains_mojibake_markers(value: str) -> bool:
    return any(ch in MOJIBAKE_MARKERS for ch in value)


def _encode_cp1252(value: str) -> bytes | None:
    encoded = bytearray()
    for ch in value:
        try:
            encoded += ch.encode("cp1252")
        except UnicodeEncodeError:
            if ord(ch) in CP1252_UNASSIGNED:
                encoded.append(ord(ch))
            else:
                return None
    return bytes(encoded)


def fix_common_mojibake(value: str) -> str | None:
    """
    Undo one round of UTF-8 bytes being read as Windows-1252.

    Returns the repaired text, or None when the cell carries no marker, the
    round trip is lossy, the bytes are not valid UTF-8, nothing changes, or
    the result still looks corrupted. This is a heuristic: text that was
    corrupted without producing any marker is left alone, and legitimate text
    that happens to contain a marker is only touched when it also decodes
    cleanly.
    """
    if not contains_mojibake_markers(value):
        return None

    raw = _encode_cp1252(value)
    if raw is None:
        return None

    try:
        decoded = raw.decode("utf-8")
    except UnicodeDecodeError:
        return None

    if decoded == value or contains_mojibake_markers(decoded):
        return None
    return decoded


def sanitize_text(value: str) -> tuple[str, bool]:
    """Return (sanitized value, changed). NBSP repair always runs before mojibake repair."""
    result = value
    if NBSP in result:
        result = result.replace(NBSP, " ")

    repaired = fix_common_mojibake(result)
    if repaired is not None:
        result = repaired

    return result, result != value
