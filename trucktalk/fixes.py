"""
Batch fix actions attached to fixable issues.

Each fix works on a copy of the data rows and only touches the cells named
by the action; cells the fix cannot improve are left as they are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from trucktalk.config import DEFAULT_CONFIG, AnalyzerConfig, normalize_header
from trucktalk.dates import normalize_datetime
from trucktalk.errors import FixError
from trucktalk.issues import FixAction, IssueCode, fix_command
from trucktalk.normalizer import cell_text, is_absent
from trucktalk.validator import canonical_status

logger = logging.getLogger(__name__)

PLACEHOLDER = "N/A"
FIRST_DATA_ROW = 2


@dataclass
class FixOutcome:
    rows: list[list[Any]]
    changed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


def _fill_placeholder(value: Any, config: AnalyzerConfig) -> Any:
    return PLACEHOLDER if is_absent(value) else value


def _rewrite_date(value: Any, config: AnalyzerConfig) -> Any:
    result = normalize_datetime(value, config.assume_timezone)
    return result.iso if result.ok else value


def _rewrite_status(value: Any, config: AnalyzerConfig) -> Any:
    text = cell_text(value)
    if text is None:
        return value
    return canonical_status(text, config) or value


FIXERS: dict[str, Callable[[Any, AnalyzerConfig], Any]] = {
    fix_command(IssueCode.MISSING_REQUIRED_FIELD): _fill_placeholder,
    fix_command(IssueCode.NON_ISO_DATE): _rewrite_date,
    fix_command(IssueCode.INCONSISTENT_STATUS): _rewrite_status,
}


def action_from_dict(payload: Mapping[str, Any]) -> FixAction:
    try:
        rows = tuple(int(row) for row in payload.get("rows") or ())
    except (TypeError, ValueError) as exc:
        raise FixError(f"Fix rows must be integers: {payload.get('rows')!r}") from exc
    return FixAction(command=str(payload.get("command", "")), column=payload.get("column"), rows=rows)


def _column_index(headers: Sequence[Any], column: str | None) -> int:
    if column is None:
        raise FixError("Fix action does not name a column")
    wanted = normalize_header(column)
    for index, header in enumerate(headers):
        if normalize_header(header) == wanted:
            return index
    raise FixError(f"Column '{column}' is not in the header row")


def apply_fix(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    action: FixAction | Mapping[str, Any],
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> FixOutcome:
    if not isinstance(action, FixAction):
        action = action_from_dict(action)
    fixer = FIXERS.get(action.command)
    if fixer is None:
        raise FixError(f"Unknown fix command: {action.command}")
    index = _column_index(headers, action.column)

    outcome = FixOutcome(rows=[list(row) for row in rows])
    for row_number in action.rows:
        offset = row_number - FIRST_DATA_ROW
        if offset < 0 or offset >= len(outcome.rows):
            logger.warning("Skipping row %d: outside the data range", row_number)
            outcome.skipped.append(row_number)
            continue
        row = outcome.rows[offset]
        if len(row) <= index:
            row.extend([""] * (index + 1 - len(row)))
        before = row[index]
        after = fixer(before, config)
        if after is before or after == before:
            outcome.skipped.append(row_number)
            continue
        row[index] = after
        outcome.changed.append(row_number)

    logger.info(
        "%s on '%s': %d changed, %d skipped",
        action.command,
        action.column,
        len(outcome.changed),
        len(outcome.skipped),
    )
    return outcome
