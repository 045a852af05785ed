from __future__ import annotations

import json
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from trucktalk import __version__
from trucktalk.analyzer import analyze_table, build_report
from trucktalk.contracts import CONTRACT_VERSIONS, build_contract, build_run_summary, utc_now_iso

ROOT = Path(__file__).resolve().parents[1]
SCHEMAS_DIR = ROOT / "schemas"

HEADERS = ["Load ID", "From", "PU Time", "To", "DEL Time", "Status", "Driver", "Unit", "Customer"]
ROW = ["TL1", "Dallas TX", "2025-09-10T14:00:00Z", "Houston TX", "2025-09-11T16:00:00Z", "Pending", "Ana", "T-1", "Acme"]


class ContractTests(unittest.TestCase):
    def test_every_contract_has_a_version(self):
        for name in CONTRACT_VERSIONS:
            self.assertEqual(build_contract(name), {"name": name, "version": CONTRACT_VERSIONS[name]})
        with self.assertRaisesRegex(KeyError, "trucktalk.analysis"):
            build_contract("trucktalk.unknown")

    def test_run_summary_shape(self):
        summary = build_run_summary(command="analyze", source="loads.csv", warnings=["w"], metrics={"issues": 0})
        self.assertEqual(summary["tool"], "trucktalk")
        self.assertEqual(summary["warnings_count"], 1)
        self.assertIsNone(summary["output_file"])
        self.assertTrue(summary["generated_at"].endswith("Z"))

    def test_utc_now_iso_has_no_offset_suffix(self):
        self.assertNotIn("+00:00", utc_now_iso())
        self.assertTrue(utc_now_iso().endswith("Z"))

    def test_utc_now_iso_converts_aware_times_to_utc(self):
        dispatch = datetime(2025, 9, 10, 10, 0, 30, 999_000, tzinfo=timezone(timedelta(hours=-4)))
        self.assertEqual(utc_now_iso(dispatch), "2025-09-10T14:00:30Z")

    def test_analysis_report_matches_published_schema_keys(self):
        schema = json.loads((SCHEMAS_DIR / "trucktalk.analysis.schema.json").read_text(encoding="utf-8"))
        report = build_report(analyze_table(HEADERS, [ROW]), source="loads.csv")
        self.assertEqual(report["tool_version"], __version__)
        for key in schema["required"]:
            self.assertIn(key, report)
        result_schema = schema["properties"]["result"]
        for key in result_schema["required"]:
            self.assertIn(key, report["result"])
        issue_codes = schema["$defs"]["issue"]["properties"]["code"]["enum"]
        self.assertIn("DUPLICATE_ID", issue_codes)
        self.assertEqual(schema["properties"]["schema_version"]["const"], CONTRACT_VERSIONS["trucktalk.analysis"])


if __name__ == "__main__":
    unittest.main()
