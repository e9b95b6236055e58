from __future__ import annotations

import json
import re
import unittest
from collections import Counter

from workbench_preprocessor.contracts import (
    CONTRACT_VERSIONS,
    ITEMS_CONTRACT,
    PROCESS_CONTRACT,
    TOOL_NAME,
    build_contract,
    build_items_summary,
    build_process_summary,
    utc_now_iso,
)
from workbench_preprocessor.items import ItemGenerationStats
from workbench_preprocessor.processor import ProcessingStats

SUMMARY_KEYS = {
    "contract",
    "tool",
    "command",
    "status",
    "generated_at",
    "source",
    "outputs",
    "warnings_count",
    "warnings",
    "metrics",
}


class ContractTests(unittest.TestCase):
    def test_build_contract_uses_registered_version(self):
        self.assertEqual(build_contract(PROCESS_CONTRACT), {"name": PROCESS_CONTRACT, "version": "1.0.0"})
        with self.assertRaises(KeyError):
            build_contract("workbench_preprocessor.unknown")

    def test_every_contract_has_a_semver(self):
        for name, version in CONTRACT_VERSIONS.items():
            self.assertTrue(name.startswith("workbench_preprocessor."), name)
            self.assertRegex(version, r"^\d+\.\d+\.\d+$")

    def test_utc_timestamp_format(self):
        self.assertTrue(re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", utc_now_iso()))


class ProcessSummaryTests(unittest.TestCase):
    def test_clean_run(self):
        stats = ProcessingStats(total_rows=3, cells_modified=6, columns_processed={"parent_id", "accessIdentifier"})
        summary = build_process_summary(
            "assets.csv",
            stats,
            modifiers=["parent-id"],
            outputs={"processed": "assets-modified.csv"},
        )
        self.assertEqual(set(summary), SUMMARY_KEYS)
        self.assertEqual(summary["contract"]["name"], PROCESS_CONTRACT)
        self.assertEqual(summary["tool"], TOOL_NAME)
        self.assertEqual(summary["command"], "process")
        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["metrics"]["processing"]["columns_processed"], ["accessIdentifier", "parent_id"])
        self.assertEqual(summary["metrics"]["modifiers"], ["parent-id"])
        self.assertNotIn("items", summary["metrics"])
        self.assertEqual(summary["warnings_count"], 0)
        json.dumps(summary)

    def test_skips_in_either_step_mark_the_run(self):
        stats = ProcessingStats(total_rows=2, skipped_rows=1, quarantine_reason_counts=Counter(empty_title=1))
        summary = build_process_summary("assets.csv", stats, modifiers=[], outputs={})
        self.assertEqual(summary["status"], "skipped_rows")
        self.assertEqual(summary["metrics"]["processing"]["quarantine_reason_counts"], {"empty_title": 1})

        items = ItemGenerationStats(unique_parents=1, total_items=3, skipped_rows=1)
        summary = build_process_summary(
            "assets.csv",
            ProcessingStats(total_rows=3),
            modifiers=["parent-id"],
            outputs={"items": "items.csv"},
            items_stats=items,
            warnings=["Multiple sheets found"],
        )
        self.assertEqual(summary["status"], "skipped_rows")
        self.assertEqual(summary["metrics"]["items"], {"unique_parents": 1, "total_items": 3, "skipped_rows": 1})
        self.assertEqual(summary["warnings_count"], 1)


class ItemsSummaryTests(unittest.TestCase):
    def test_items_summary(self):
        stats = ItemGenerationStats(unique_parents=2, total_items=4)
        summary = build_items_summary("assets-modified.csv", stats, output_path="items.csv")
        self.assertEqual(set(summary), SUMMARY_KEYS)
        self.assertEqual(summary["contract"]["name"], ITEMS_CONTRACT)
        self.assertEqual(summary["command"], "generate-items")
        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["outputs"], {"items": "items.csv"})
        self.assertEqual(summary["metrics"], {"unique_parents": 2, "total_items": 4, "skipped_rows": 0})


if __name__ == "__main__":
    unittest.main()
