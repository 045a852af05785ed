"""
Hand-off helpers for the spreadsheet side: a 2-D preview of the normalized
loads, a workbook writer that never replaces an existing preview, and A1
cell references for issue navigation.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from trucktalk.config import DEFAULT_CONFIG, AnalyzerConfig, normalize_header
from trucktalk.issues import Issue
from trucktalk.normalizer import Load

logger = logging.getLogger(__name__)

PREVIEW_BASENAME = "Preview"
PREVIEW_SHEET_TITLE = "Preview"
HEADER_FONT = Font(bold=True)


def preview_rows(loads: Sequence[Load], config: AnalyzerConfig = DEFAULT_CONFIG) -> list[list[str]]:
    rows: list[list[str]] = [list(config.fields)]
    for load in loads:
        rows.append(["" if load.get(name) is None else str(load.get(name)) for name in config.fields])
    return rows


def next_preview_path(directory: Path, basename: str = PREVIEW_BASENAME) -> Path:
    candidate = directory / f"{basename}.xlsx"
    counter = 2
    while candidate.exists():
        candidate = directory / f"{basename} ({counter}).xlsx"
        counter += 1
    return candidate


def write_preview(
    loads: Sequence[Load],
    directory: Path,
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> Path:
    """Write the preview grid into a fresh workbook; existing files are left alone."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    target = next_preview_path(directory)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = PREVIEW_SHEET_TITLE
    for row in preview_rows(loads, config):
        sheet.append(row)
    for cell in sheet[1]:
        cell.font = HEADER_FONT
    sheet.freeze_panes = "A2"
    for index, name in enumerate(config.fields, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(12, len(name) + 2)

    workbook.save(target)
    logger.info("Wrote %d loads to %s", len(loads), target)
    return target


def cell_reference(headers: Sequence[Any], column: str, row: int) -> str:
    """A1 reference for the cell under header `column` on sheet row `row`."""
    wanted = normalize_header(column)
    for index, header in enumerate(headers, start=1):
        if normalize_header(header) == wanted:
            return f"{get_column_letter(index)}{row}"
    raise ValueError(f"Column '{column}' is not in the header row")


def issue_cells(issue: Issue, headers: Sequence[Any]) -> list[str]:
    if issue.column is None or not issue.rows:
        return []
    try:
        return [cell_reference(headers, issue.column, row) for row in issue.rows]
    except ValueError:
        return []
