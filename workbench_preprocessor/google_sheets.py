from __future__ import annotations

import logging
import os
import re
from urllib.parse import urlparse

import requests

from workbench_preprocessor.loader import decode_bytes

logger = logging.getLogger(__name__)

GOOGLE_SHEETS_HOST = "docs.google.com"
DEFAULT_TIMEOUT_SECONDS = 60
TIMEOUT_ENV_VAR = "WORKBENCH_PREPROCESSOR_FETCH_TIMEOUT"
MAX_REMOTE_FILE_MB = 100
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024

SHEET_PATH_RE = re.compile(r"^/spreadsheets/d/([^/]+)")
SHEET_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]+$")


class GoogleSheetsUrlError(ValueError):
    pass


class GoogleSheetsFetchError(RuntimeError):
    pass


def google_sheets_to_csv_url(sheets_url: str) -> str:
    """
    Convert a share/edit link into the CSV export endpoint.

    https://docs.google.com/spreadsheets/d/<id>/edit#gid=0
        -> https://docs.google.com/spreadsheets/d/<id>/export?format=csv
    """
    parsed = urlparse(sheets_url.strip())
    if parsed.scheme not in {"http", "https"}:
        raise GoogleSheetsUrlError("URL must start with http:// or https://")
    if (parsed.hostname or "").lower() != GOOGLE_SHEETS_HOST:
        raise GoogleSheetsUrlError(f"URL must be a Google Sheets URL (docs.google.com): {sheets_url}")

    match = SHEET_PATH_RE.match(parsed.path)
    if not match:
        raise GoogleSheetsUrlError(f"Could not extract a spreadsheet ID from URL: {sheets_url}")

    sheet_id = match.group(1)
    if sheet_id == "edit" or not SHEET_ID_RE.match(sheet_id):
        raise GoogleSheetsUrlError(f"Invalid spreadsheet ID '{sheet_id}' in URL: {sheets_url}")

    return f"https://{GOOGLE_SHEETS_HOST}/spreadsheets/d/{sheet_id}/export?format=csv"


def fetch_timeout() -> float:
    raw = os.environ.get(TIMEOUT_ENV_VAR, "").strip()
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; expected a number of seconds", TIMEOUT_ENV_VAR, raw)
        return DEFAULT_TIMEOUT_SECONDS
    if value <= 0:
        logger.warning("Ignoring %s=%r; timeout must be positive", TIMEOUT_ENV_VAR, raw)
        return DEFAULT_TIMEOUT_SECONDS
    return value


def fetch_google_sheets_csv(sheets_url: str) -> str:
    """Download a public sheet as CSV text. Raises GoogleSheetsUrlError or GoogleSheetsFetchError."""
    csv_url = google_sheets_to_csv_url(sheets_url)
    logger.info("Fetching Google Sheets export from %s", csv_url)

    try:
        response = requests.get(csv_url, timeout=fetch_timeout(), allow_redirects=True, stream=True)
    except requests.RequestException as exc:
        raise GoogleSheetsFetchError(f"Failed to fetch Google Sheets data: {exc}") from exc

    try:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise GoogleSheetsFetchError(
                f"Google Sheets request failed with status {response.status_code}. "
                "Make sure the sheet is shared as 'Anyone with the link can view'."
            ) from exc

        content_length = response.headers.get("Content-Length")
        if content_length:
            try:
                declared_size = int(content_length)
            except ValueError:
                declared_size = None
            if declared_size and declared_size > MAX_REMOTE_FILE_BYTES:
                raise GoogleSheetsFetchError(f"Remote sheet is larger than {MAX_REMOTE_FILE_MB} MB.")

        chunks: list[bytes] = []
        downloaded = 0
        try:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                if not chunk:
                    continue
                downloaded += len(chunk)
                if downloaded > MAX_REMOTE_FILE_BYTES:
                    raise GoogleSheetsFetchError(f"Remote sheet is larger than {MAX_REMOTE_FILE_MB} MB.")
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise GoogleSheetsFetchError(f"Failed to read Google Sheets response: {exc}") from exc
    finally:
        response.close()

    text, _, _ = decode_bytes(b"".join(chunks))
    return text
