"""
loader.py — turns a local export into CSV text for the processor

Supports: .csv .tsv .txt .xlsx .xlsm

Public API:
    source = load_csv_text("path/to/export.csv")
    source.text, source.delimiter

Text files are decoded as UTF-8 (BOM aware) when possible; otherwise the
chardet guess is tried and anything left is decoded line-by-line with cp1252
replacement so a stray byte never aborts a run. Workbooks are read with
openpyxl and the first visible sheet is rendered to CSV text.
"""

from __future__ import annotations

import csv
import datetime as dt
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm"}
ALL_FORMATS = TEXT_FORMATS | EXCEL_FORMATS


@dataclass
class LoadedSource:
    text: str
    detected_format: str
    detected_encoding: Optional[str] = None
    encoding_info: Optional[dict] = None
    delimiter: str = ","
    sheet_name: Optional[str] = None
    sheet_names: Optional[list[str]] = None
    warnings: list[str] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding_info(raw: bytes) -> dict:
    """
    Detect encoding from raw bytes with chardet.

    Returns dict with: detected, confidence, is_utf8, suspicious_chars.
    """
    import chardet

    result = chardet.detect(raw)
    detected = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)
    is_utf8 = detected.upper().replace("-", "") in ("UTF8", "UTF8SIG", "ASCII")

    suspicious: list[str] = []
    if not is_utf8:
        for row_idx, line in enumerate(raw.split(b"\n")[:100], start=1):
            try:
                line.decode("utf-8")
            except UnicodeDecodeError as e:
                bad_byte = line[e.start : e.end]
                suspicious.append(f"row {row_idx}: byte {bad_byte!r} at position {e.start}")

    return {
        "detected": detected,
        "confidence": confidence,
        "is_utf8": is_utf8,
        "suspicious_chars": suspicious[:10],
    }


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. CP1252 with replace (never crashes)

    Embedded null bytes are stripped so the csv module doesn't choke.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines)


def decode_bytes(raw: bytes) -> tuple[str, str, Optional[dict]]:
    """Return (text, encoding used, chardet info or None when UTF-8 worked outright)."""
    try:
        return raw.decode("utf-8-sig"), "utf-8", None
    except UnicodeDecodeError:
        pass

    enc_info = _detect_encoding_info(raw)
    enc = enc_info["detected"] if enc_info["detected"] != "unknown" else "cp1252"
    return _read_text_safely(raw, enc), enc, enc_info


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str) -> LoadedSource:
    text, enc, enc_info = decode_bytes(path.read_bytes())

    warnings: list[str] = []
    if enc_info is not None:
        warnings.append(
            f"{path.name} is not valid UTF-8; decoded as {enc} "
            f"(chardet confidence {enc_info['confidence']})"
        )

    return LoadedSource(
        text=text,
        detected_format=suffix.lstrip("."),
        detected_encoding=enc,
        encoding_info=enc_info,
        delimiter="\t" if suffix == ".tsv" else ",",
        warnings=warnings,
    )


def _render_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, dt.datetime):
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    return str(value)


def _load_excel(path: Path, suffix: str) -> LoadedSource:
    """Render the first visible sheet of an .xlsx/.xlsm workbook as CSV text."""
    import openpyxl

    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    try:
        all_sheets = list(workbook.sheetnames)
        visible = [
            ws for ws in workbook.worksheets
            if getattr(ws, "sheet_state", "visible") == "visible"
        ]
        if not visible:
            raise ValueError(f"Workbook has no visible sheets. Available: {all_sheets}")
        sheet = visible[0]

        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer)
        width = 0
        rows: list[list[str]] = []
        for values in sheet.iter_rows(values_only=True):
            row = [_render_cell(value) for value in values]
            while row and row[-1] == "":
                row.pop()
            rows.append(row)
            width = max(width, len(row))
        while rows and not rows[-1]:
            rows.pop()
        for row in rows:
            writer.writerow(row + [""] * (width - len(row)))
    finally:
        workbook.close()

    warnings: list[str] = []
    if len(all_sheets) > 1:
        others = [name for name in all_sheets if name != sheet.title]
        warnings.append(
            f"Multiple sheets found ({len(all_sheets)} total); used '{sheet.title}'. Ignored: {others}"
        )

    return LoadedSource(
        text=buffer.getvalue(),
        detected_format=suffix.lstrip("."),
        sheet_name=sheet.title,
        sheet_names=all_sheets,
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_csv_text(path: "str | Path") -> LoadedSource:
    """
    Load a supported local export as CSV text.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in TEXT_FORMATS:
        return _load_text(path, suffix)
    return _load_excel(path, suffix)
