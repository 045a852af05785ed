from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook

from trucktalk.config import CANONICAL_FIELDS
from trucktalk.issues import IssueCode, build_issue
from trucktalk.normalizer import Load
from trucktalk.preview import cell_reference, issue_cells, preview_rows, write_preview

LOADS = [
    Load(2, {"loadId": "L-1", "fromAddress": "Dallas TX", "driverPhone": None, "status": "Scheduled"}),
    Load(3, {"loadId": "L-2", "fromAddress": "Memphis TN", "driverPhone": "2145550101", "status": "Loaded"}),
]


class PreviewRowsTests(unittest.TestCase):
    def test_header_is_the_canonical_field_list(self):
        rows = preview_rows(LOADS)
        self.assertEqual(rows[0], list(CANONICAL_FIELDS))
        self.assertEqual(len(rows), 3)

    def test_absent_values_render_as_empty_strings(self):
        rows = preview_rows(LOADS)
        phone = CANONICAL_FIELDS.index("driverPhone")
        self.assertEqual(rows[1][phone], "")
        self.assertEqual(rows[2][phone], "2145550101")
        self.assertEqual(rows[1][CANONICAL_FIELDS.index("broker")], "")


class WritePreviewTests(unittest.TestCase):
    def test_never_overwrites_an_existing_preview(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            first = write_preview(LOADS, Path(tmpdir))
            second = write_preview(LOADS[:1], Path(tmpdir))
            third = write_preview(LOADS, Path(tmpdir))
            self.assertEqual(first.name, "Preview.xlsx")
            self.assertEqual(second.name, "Preview (2).xlsx")
            self.assertEqual(third.name, "Preview (3).xlsx")

            workbook = load_workbook(first)
            sheet = workbook["Preview"]
            values = [[cell.value for cell in row] for row in sheet.iter_rows()]
            self.assertEqual(values[0], list(CANONICAL_FIELDS))
            self.assertEqual(values[1][0], "L-1")
            self.assertEqual(len(values), 3)
            self.assertEqual(load_workbook(second)["Preview"].max_row, 2)


class CellReferenceTests(unittest.TestCase):
    HEADERS = ["Load ID", "From", "PU Time"]

    def test_a1_reference_for_header_and_row(self):
        self.assertEqual(cell_reference(self.HEADERS, "PU Time", 4), "C4")
        self.assertEqual(cell_reference(self.HEADERS, "load id", 2), "A2")

    def test_wide_sheets_use_two_letter_columns(self):
        headers = [f"col{n}" for n in range(30)] + ["Status"]
        self.assertEqual(cell_reference(headers, "Status", 2), "AE2")

    def test_unknown_column_raises(self):
        with self.assertRaises(ValueError):
            cell_reference(self.HEADERS, "Driver", 2)

    def test_issue_cells(self):
        issue = build_issue(IssueCode.NON_ISO_DATE, "x", rows=[2, 5], column="PU Time")
        self.assertEqual(issue_cells(issue, self.HEADERS), ["C2", "C5"])
        structural = build_issue(IssueCode.MISSING_COLUMN, "x", column="broker")
        self.assertEqual(issue_cells(structural, self.HEADERS), [])


if __name__ == "__main__":
    unittest.main()
