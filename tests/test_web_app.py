from __future__ import annotations

import csv
import importlib.util
import io
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
WEB_APP = ROOT / "web" / "app.py"


def load_module(module_path: Path, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


WEB_APP_MODULE = load_module(WEB_APP, "workbench_preprocessor_web_app_tests")

EXPORT = (
    "accessIdentifier,fileTitle,parent_id,file,file_extension\n"
    "2024_19_01_001,Annual Report 2024,,document,pdf\n"
    "2024_19_01_001,Annual Report 2024,,copy,pdf\n"
).encode("utf-8")


def rows_of(data: bytes) -> list[list[str]]:
    return list(csv.reader(io.StringIO(data.decode("utf-8"))))


class WebAppTests(unittest.TestCase):
    def test_processed_name_is_always_csv(self):
        self.assertEqual(WEB_APP_MODULE.processed_file_name("assets.csv"), "assets-modified.csv")
        self.assertEqual(WEB_APP_MODULE.processed_file_name("assets.tsv"), "assets-modified.csv")
        self.assertEqual(WEB_APP_MODULE.processed_file_name("assets.xlsx"), "assets-modified.csv")
        self.assertEqual(WEB_APP_MODULE.processed_file_name("assets"), "assets-modified.csv")

    def test_read_preview_keeps_text(self):
        frame = WEB_APP_MODULE.read_preview(b"accessIdentifier,pages\n2024_19_01_001,007\n")
        self.assertEqual(frame.loc[0, "pages"], "007")

    def test_run_job_processes_upload_with_items(self):
        result = WEB_APP_MODULE.run_job(
            {
                "name": "assets.csv",
                "bytes": EXPORT,
                "modifiers": ["parent-id", "file-extension"],
                "full": True,
                "node": "19",
            }
        )
        self.assertEqual(result["status"], "review")
        self.assertEqual(result["stats"]["skipped_rows"], 1)
        self.assertEqual(result["processed_name"], "assets-modified.csv")

        processed = rows_of(result["processed_bytes"])
        self.assertEqual(processed[1][3], "2024_19_01/document.pdf")
        quarantine = rows_of(result["quarantine_bytes"])
        self.assertEqual(quarantine[1][-1], "duplicate_access_identifier")
        self.assertEqual(rows_of(result["items_bytes"])[1], ["2024_19_01", "Annual Report 2024", "1", "19", "2024"])
        self.assertTrue(any("Duplicate accessIdentifier" in line for line in result["messages"]))

    def test_run_job_tab_separated_upload_with_items(self):
        tsv = EXPORT.decode("utf-8").replace(",", "\t").encode("utf-8")
        result = WEB_APP_MODULE.run_job(
            {
                "name": "assets.tsv",
                "bytes": tsv,
                "modifiers": ["parent-id"],
                "full": True,
                "node": "",
            }
        )
        self.assertNotEqual(result["status"], "error", result.get("error"))
        self.assertEqual(result["processed_name"], "assets-modified.csv")
        processed = rows_of(result["processed_bytes"])
        self.assertEqual(processed[1][:3], ["2024_19_01_001", "Annual Report 2024", "2024_19_01"])
        self.assertEqual(rows_of(result["items_bytes"])[1], ["2024_19_01", "Annual Report 2024", "1", "", "2024"])

    def test_run_job_reports_bad_field_model_config(self):
        result = WEB_APP_MODULE.run_job(
            {
                "name": "assets.csv",
                "bytes": EXPORT,
                "modifiers": ["field-model"],
                "field_model_toml": "[image\nmodel = ",
                "full": False,
            }
        )
        self.assertEqual(result["status"], "error")
        self.assertIn("field model", result["error"].lower())


if __name__ == "__main__":
    unittest.main()
