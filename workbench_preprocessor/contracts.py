"""Versioned JSON run summaries printed by `workbench-preprocessor --json`."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from workbench_preprocessor.items import ItemGenerationStats
from workbench_preprocessor.processor import ProcessingStats

TOOL_NAME = "workbench-preprocessor"
PROCESS_CONTRACT = "workbench_preprocessor.process_summary"
ITEMS_CONTRACT = "workbench_preprocessor.items_summary"

CONTRACT_VERSIONS = {
    PROCESS_CONTRACT: "1.0.0",
    ITEMS_CONTRACT: "1.0.0",
}

STATUS_OK = "ok"
STATUS_SKIPPED_ROWS = "skipped_rows"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def run_status(skipped_rows: int) -> str:
    return STATUS_SKIPPED_ROWS if skipped_rows else STATUS_OK


def build_run_summary(
    *,
    contract: str,
    command: str,
    source: str,
    skipped_rows: int,
    outputs: dict[str, str],
    metrics: dict[str, Any],
    warnings: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    warnings = list(warnings or [])
    return {
        "contract": build_contract(contract),
        "tool": TOOL_NAME,
        "command": command,
        "status": run_status(skipped_rows),
        "generated_at": utc_now_iso(),
        "source": source,
        "outputs": dict(outputs),
        "warnings_count": len(warnings),
        "warnings": warnings,
        "metrics": metrics,
    }


def build_process_summary(
    source: str,
    stats: ProcessingStats,
    *,
    modifiers: Sequence[str],
    outputs: dict[str, str],
    items_stats: Optional[ItemGenerationStats] = None,
    warnings: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    """Summary for one processing run; an items step from `--full` contributes its own metrics and skips."""
    metrics: dict[str, Any] = {"processing": stats.as_metrics(), "modifiers": list(modifiers)}
    skipped = stats.skipped_rows
    if items_stats is not None:
        metrics["items"] = items_stats.as_metrics()
        skipped += items_stats.skipped_rows
    return build_run_summary(
        contract=PROCESS_CONTRACT,
        command="process",
        source=source,
        skipped_rows=skipped,
        outputs=outputs,
        metrics=metrics,
        warnings=warnings,
    )


def build_items_summary(
    source: str,
    stats: ItemGenerationStats,
    *,
    output_path: str,
    warnings: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    return build_run_summary(
        contract=ITEMS_CONTRACT,
        command="generate-items",
        source=source,
        skipped_rows=stats.skipped_rows,
        outputs={"items": output_path},
        metrics=stats.as_metrics(),
        warnings=warnings,
    )
