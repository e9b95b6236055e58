#!/usr/bin/env python3
from __future__ import annotations

import io
import logging
import sys
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workbench_preprocessor.items import ItemCsvGenerator  # noqa: E402
from workbench_preprocessor.loader import ALL_FORMATS  # noqa: E402
from workbench_preprocessor.modifiers import FieldModelMapping  # noqa: E402
from workbench_preprocessor.processor import OPTIONAL_MODIFIERS, build_csv_modifier, processed_file_name  # noqa: E402

PACKAGE_LOGGER = "workbench_preprocessor"
PREVIEW_ROWS = 50
MAX_LOG_LINES = 200


class CollectingHandler(logging.Handler):
    """Keeps log lines from one run so the page can show them."""

    def __init__(self) -> None:
        super().__init__(level=logging.INFO)
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        if len(self.messages) < MAX_LOG_LINES:
            self.messages.append(f"{record.levelname}: {record.getMessage()}")


def ensure_state() -> None:
    st.session_state.setdefault("processing", False)
    st.session_state.setdefault("job", None)
    st.session_state.setdefault("result", None)


def read_preview(data: bytes) -> pd.DataFrame:
    return pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False, nrows=PREVIEW_ROWS)


def run_job(job: dict) -> dict:
    handler = CollectingHandler()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.addHandler(handler)
    previous_level = logger.level
    logger.setLevel(logging.INFO)

    try:
        mapping: Optional[FieldModelMapping] = None
        if "field-model" in job["modifiers"]:
            if job.get("field_model_toml"):
                mapping = FieldModelMapping.from_toml_str(job["field_model_toml"])
            else:
                mapping = FieldModelMapping.from_default_config()
        modifier = build_csv_modifier(job["modifiers"], field_model_mapping=mapping)

        with tempfile.TemporaryDirectory(prefix="workbench-preprocessor-") as tmp:
            folder = Path(tmp)
            if job.get("url"):
                processed_name = "sheets-output-modified.csv"
                processed_path = folder / processed_name
                quarantine_path = folder / "quarantine.csv"
                stats = modifier.process_google_sheets(job["url"], processed_path, quarantine_path)
            else:
                source_path = folder / job["name"]
                source_path.write_bytes(job["bytes"])
                processed_name = processed_file_name(job["name"])
                processed_path = folder / processed_name
                quarantine_path = folder / "quarantine.csv"
                stats = modifier.process_file(source_path, processed_path, quarantine_path)

            result = {
                "status": "success" if not stats.skipped_rows else "review",
                "stats": stats.as_metrics(),
                "processed_name": processed_name,
                "processed_bytes": processed_path.read_bytes(),
                "quarantine_bytes": quarantine_path.read_bytes() if stats.skipped_rows else None,
                "items_bytes": None,
                "items_stats": None,
            }

            if job["full"]:
                items_path = folder / f"{processed_path.stem}-items.csv"
                items_stats = ItemCsvGenerator.generate_from_processed(
                    processed_path, items_path, job.get("node") or None
                )
                result["items_name"] = items_path.name
                result["items_bytes"] = items_path.read_bytes()
                result["items_stats"] = items_stats.as_metrics()
    except Exception as exc:
        result = {"status": "error", "error": str(exc)}
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)

    result["messages"] = handler.messages
    return result


def render_download(label: str, data: bytes, file_name: str, key: str) -> None:
    st.download_button(label, data=data, file_name=file_name, mime="text/csv", width="stretch", key=key)


def render_result(result: dict) -> None:
    st.subheader("Results")
    if result["status"] == "error":
        st.error(result["error"])
        if result.get("messages"):
            st.code("\n".join(result["messages"]))
        return

    stats = result["stats"]
    cols = st.columns(4)
    cols[0].metric("Rows written", stats["total_rows"])
    cols[1].metric("Rows skipped", stats["skipped_rows"])
    cols[2].metric("Cells modified", stats["cells_modified"])
    cols[3].metric("Validation failures", stats["validation_failures"])
    st.caption(f"Columns processed: {', '.join(stats['columns_processed']) or '-'}")

    if stats["quarantine_reason_counts"]:
        st.warning(
            "Skipped rows by reason:\n- "
            + "\n- ".join(f"{reason}: {count}" for reason, count in stats["quarantine_reason_counts"].items())
        )

    st.dataframe(read_preview(result["processed_bytes"]), width="stretch", hide_index=True)
    render_download("Download processed CSV", result["processed_bytes"], result["processed_name"], "download_processed")

    if result.get("quarantine_bytes"):
        with st.expander("Quarantined rows", expanded=False):
            st.dataframe(read_preview(result["quarantine_bytes"]), width="stretch", hide_index=True)
            render_download("Download quarantine CSV", result["quarantine_bytes"], "quarantine.csv", "download_quarantine")

    if result.get("items_bytes"):
        items_stats = result["items_stats"]
        st.markdown(
            f"**Parents:** `{items_stats['unique_parents']}`  \n"
            f"**Items:** `{items_stats['total_items']}`  \n"
            f"**Skipped:** `{items_stats['skipped_rows']}`"
        )
        st.dataframe(read_preview(result["items_bytes"]), width="stretch", hide_index=True)
        render_download("Download items CSV", result["items_bytes"], result["items_name"], "download_items")

    if result.get("messages"):
        with st.expander(f"Log ({len(result['messages'])} lines)", expanded=False):
            st.code("\n".join(result["messages"]))


def main() -> None:
    st.set_page_config(page_title="workbench-preprocessor", layout="wide", initial_sidebar_state="collapsed")
    ensure_state()

    st.title("workbench-preprocessor")
    st.caption("Upload an asset export or paste a public Google Sheets link to get a Workbench-ready CSV.")

    processing = st.session_state["processing"]

    upload = st.file_uploader(
        "Upload export",
        type=[ext.lstrip(".") for ext in sorted(ALL_FORMATS)],
        key="upload_input",
        disabled=processing,
    )
    url = st.text_input(
        "Google Sheets URL",
        key="url_input",
        disabled=processing,
        placeholder="https://docs.google.com/spreadsheets/d/<id>/edit",
    ).strip()
    st.caption("Google Sheets mode makes an outbound request; the sheet must be viewable by anyone with the link.")

    modifiers = st.multiselect(
        "Optional modifiers",
        options=list(OPTIONAL_MODIFIERS),
        default=list(OPTIONAL_MODIFIERS),
        key="modifiers_input",
        disabled=processing,
    )
    config_upload = None
    if "field-model" in modifiers:
        config_upload = st.file_uploader(
            "Field model mapping (TOML, optional)",
            type=["toml"],
            key="field_model_input",
            disabled=processing,
        )
    full = st.checkbox("Also generate items file", key="full_input", disabled=processing)
    node = st.text_input("Node (field_member_of)", key="node_input", disabled=processing or not full)

    has_source = bool(upload) or bool(url)
    submit = st.button("Run", type="primary", width="stretch", disabled=processing or not has_source)

    if submit and has_source:
        if upload and url:
            st.error("Use either an upload or a Google Sheets URL, not both.")
            return
        st.session_state["job"] = {
            "name": upload.name if upload else None,
            "bytes": upload.getvalue() if upload else None,
            "url": url if not upload else None,
            "modifiers": modifiers,
            "field_model_toml": config_upload.getvalue().decode("utf-8") if config_upload else None,
            "full": full,
            "node": node.strip(),
        }
        st.session_state["result"] = None
        st.session_state["processing"] = True
        st.rerun()

    if st.session_state["processing"]:
        with st.spinner("Processing export..."):
            st.session_state["result"] = run_job(st.session_state["job"])
        st.session_state["processing"] = False
        st.session_state["job"] = None
        st.rerun()

    if st.session_state.get("result") is None:
        st.info("Supported here: local uploads (.csv .tsv .txt .xlsx .xlsm) or a public Google Sheets URL.")
        return

    render_result(st.session_state["result"])


if __name__ == "__main__":
    main()
