from __future__ import annotations

import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

import requests
from openpyxl import Workbook

from trucktalk.analyzer import analyze_table
from trucktalk.errors import TableLoadError
from trucktalk.issues import IssueCode
from trucktalk.loader import MAX_REMOTE_FILE_BYTES, detect_delimiter, load_table, read_text_safely

ROOT = Path(__file__).resolve().parents[1]
SAMPLE_CSV = ROOT / "sample-data" / "loads_sample.csv"


def fake_response(content: bytes, *, url: str, headers: dict[str, str] | None = None) -> mock.MagicMock:
    response = mock.MagicMock()
    response.url = url
    response.headers = headers or {}
    response.iter_content.return_value = [content]
    response.raise_for_status.return_value = None
    return response


class LocalLoaderTests(unittest.TestCase):
    def test_sample_csv_keeps_header_row_and_raw_strings(self):
        table = load_table(SAMPLE_CSV)
        self.assertEqual(table.detected_format, "csv")
        self.assertEqual(table.delimiter, ",")
        self.assertEqual(table.headers[0], "Load ID")
        self.assertEqual(table.rows[0][2], "2025-09-10T14:00:00Z")
        self.assertEqual(len(table.rows), 3)
        self.assertEqual(table.values[0], table.headers)

    def test_semicolon_delimited_text(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.csv"
            path.write_text("Load ID;From;To\nL-1;Dallas TX;Houston TX\nL-2;Memphis TN;Nashville TN\n", encoding="utf-8")
            table = load_table(path)
        self.assertEqual(table.delimiter, ";")
        self.assertEqual(table.rows[1], ["L-2", "Memphis TN", "Nashville TN"])

    def test_blank_lines_keep_their_row_position(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.csv"
            path.write_text("Load ID,Status\nL-1,Loaded\n\nL-2,Loaded\n", encoding="utf-8")
            table = load_table(path)
        self.assertEqual(len(table.rows), 3)
        self.assertEqual(table.rows[1], ["", ""])
        self.assertEqual(table.rows[2], ["L-2", "Loaded"])

    def test_rows_with_extra_fields_are_kept_and_trimmed(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.csv"
            path.write_text(
                "Load ID,From,PU Time,To,DEL Time,Status,Driver,Unit,Customer\n"
                "TL1,Dallas TX,2025-09-10T14:00:00Z,Houston TX,2025-09-11T16:00:00Z,Pending,Ana,T-1,Acme\n"
                "TL2,Austin TX,2025-09-10T15:00:00Z,Waco TX,2025-09-11T17:00:00Z,Pending,Bo,T-2,Acme,EXTRA\n"
                "TL3,Tyler TX,Invalid Date,Lufkin TX,2025-09-11T18:00:00Z,Pending,Cy,T-3,Acme\n",
                encoding="utf-8",
            )
            table = load_table(path)
        self.assertEqual(len(table.rows), 3)
        self.assertEqual(table.rows[1][0], "TL2")
        self.assertEqual(len(table.rows[1]), len(table.headers))
        self.assertTrue(any("Row 3" in warning and "EXTRA" in warning for warning in table.warnings))

        result = analyze_table(table.headers, table.rows)
        self.assertEqual(result.analyzed_rows, 3)
        bad_dates = [issue for issue in result.issues if issue.code == IssueCode.BAD_DATE_FORMAT]
        self.assertEqual(len(bad_dates), 1)
        self.assertEqual(bad_dates[0].rows, (4,))
        self.assertEqual(bad_dates[0].column, "PU Time")

    def test_short_rows_are_padded_without_warning(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.csv"
            path.write_text("Load ID,Status,Driver\nL-1,Loaded\nL-2,Loaded,Ana,\n", encoding="utf-8")
            table = load_table(path)
        self.assertEqual(table.rows, [["L-1", "Loaded", ""], ["L-2", "Loaded", "Ana"]])
        self.assertEqual(table.warnings, [])

    def test_mixed_encoding_lines_are_decoded(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.csv"
            path.write_bytes("Load ID,Driver\nL-1,Zoë\n".encode("utf-8") + b"L-2,Jos\xe9\n")
            table = load_table(path)
        self.assertEqual(table.rows[0][1], "Zoë")
        self.assertEqual(table.rows[1][1], "José")

    def test_workbook_keeps_native_cells(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.xlsx"
            workbook = Workbook()
            sheet = workbook.active
            sheet.title = "Loads"
            sheet.append(["Load ID", "PU Time", "Unit", "Notes"])
            sheet.append(["L-1", datetime(2025, 9, 10, 14, 0), 101, None])
            other = workbook.create_sheet("Archive")
            other.append(["Load ID"])
            other.append(["OLD-1"])
            workbook.save(path)

            table = load_table(path)
            archive = load_table(path, sheet_name="Archive")
            with self.assertRaisesRegex(TableLoadError, "not found"):
                load_table(path, sheet_name="Missing")

        self.assertEqual(table.sheet_name, "Loads")
        self.assertEqual(table.headers, ["Load ID", "PU Time", "Unit", "Notes"])
        self.assertIsInstance(table.rows[0][1], datetime)
        self.assertEqual(table.rows[0][2], 101)
        self.assertIsNone(table.rows[0][3])
        self.assertTrue(any("Multiple sheets" in warning for warning in table.warnings))
        self.assertEqual(archive.rows, [["OLD-1"]])

    def test_json_records(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "loads.json"
            path.write_text(json.dumps({"loads": [{"loadId": "L-1", "status": "Loaded"}]}), encoding="utf-8")
            table = load_table(path)
        self.assertEqual(table.headers, ["loadId", "status"])
        self.assertEqual(table.rows, [["L-1", "Loaded"]])
        self.assertIn("loads", table.warnings[0])

    def test_unreadable_inputs_raise_table_load_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaisesRegex(TableLoadError, "File not found"):
                load_table(Path(tmpdir) / "absent.csv")
            notes = Path(tmpdir) / "loads.pdf"
            notes.write_bytes(b"%PDF")
            with self.assertRaisesRegex(TableLoadError, "Unsupported file type"):
                load_table(notes)
            broken = Path(tmpdir) / "loads.xlsx"
            broken.write_bytes(b"not a workbook")
            with self.assertRaisesRegex(TableLoadError, "Could not open workbook"):
                load_table(broken)
            bad_json = Path(tmpdir) / "loads.json"
            bad_json.write_text("{", encoding="utf-8")
            with self.assertRaisesRegex(TableLoadError, "Invalid JSON"):
                load_table(bad_json)
            empty = Path(tmpdir) / "empty.csv"
            empty.write_text("", encoding="utf-8")
            with self.assertRaisesRegex(TableLoadError, "empty"):
                load_table(empty)


class RemoteLoaderTests(unittest.TestCase):
    def test_fetches_csv_over_http(self):
        content = SAMPLE_CSV.read_bytes()
        response = fake_response(content, url="https://sheets.example.test/export/loads.csv")
        with mock.patch("trucktalk.loader.requests.get", return_value=response) as get:
            table = load_table("https://sheets.example.test/export/loads.csv")
        get.assert_called_once()
        self.assertTrue(get.call_args.kwargs["stream"])
        self.assertEqual(table.headers[0], "Load ID")
        response.close.assert_called_once()

    def test_content_type_decides_format_when_url_has_no_suffix(self):
        response = fake_response(
            b"Load ID,Status\nL-1,Loaded\n",
            url="https://sheets.example.test/export?id=1",
            headers={"content-type": "text/csv; charset=utf-8"},
        )
        with mock.patch("trucktalk.loader.requests.get", return_value=response):
            table = load_table("https://sheets.example.test/export?id=1")
        self.assertEqual(table.detected_format, "csv")

    def test_oversized_download_is_refused(self):
        response = fake_response(
            b"",
            url="https://sheets.example.test/big.csv",
            headers={"Content-Length": str(MAX_REMOTE_FILE_BYTES + 1)},
        )
        with mock.patch("trucktalk.loader.requests.get", return_value=response):
            with self.assertRaisesRegex(TableLoadError, "larger than"):
                load_table("https://sheets.example.test/big.csv")

    def test_network_errors_become_table_load_errors(self):
        with mock.patch("trucktalk.loader.requests.get", side_effect=requests.ConnectionError("offline")):
            with self.assertRaisesRegex(TableLoadError, "Could not fetch"):
                load_table("https://sheets.example.test/loads.csv")


class TextHelperTests(unittest.TestCase):
    def test_detect_delimiter_prefers_consistent_columns(self):
        self.assertEqual(detect_delimiter("a\tb\tc\n1\t2\t3\n4\t5\t6\n"), "\t")
        self.assertEqual(detect_delimiter("a|b\n1|2\n3|4\n"), "|")

    def test_read_text_safely_strips_bom_and_nulls(self):
        self.assertEqual(read_text_safely("\ufeffa,b\n1,\x002".encode("utf-8"), "utf-8"), "a,b\n1,2")


if __name__ == "__main__":
    unittest.main()
