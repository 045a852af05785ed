from __future__ import annotations

import re
from typing import Iterable, Sequence

from trucktalk.config import DEFAULT_CONFIG, AnalyzerConfig
from trucktalk.header_mapper import HeaderMapping
from trucktalk.issues import Issue, IssueCode, build_issue
from trucktalk.normalizer import Load

STATUS_SEPARATORS_RE = re.compile(r"[\s_\-]+")


def status_key(value: str) -> str:
    return STATUS_SEPARATORS_RE.sub(" ", value.strip().lower()).strip()


def canonical_status(value: str, config: AnalyzerConfig = DEFAULT_CONFIG) -> str | None:
    lookup = {status_key(allowed): allowed for allowed in config.status_values}
    return lookup.get(status_key(value))


def _flagged_cells(issues: Iterable[Issue]) -> set[tuple[int, str | None]]:
    return {(row, issue.column) for issue in issues if issue.is_error for row in issue.rows}


def validate(
    loads: Sequence[Load],
    issues_so_far: Iterable[Issue],
    mapping: HeaderMapping,
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> list[Issue]:
    """
    Apply the row-level business rules in row order.

    Required cells already carrying an error (an unparsable date, say) are
    not reported a second time as empty.
    """
    flagged = _flagged_cells(issues_so_far)
    first_row_for_id: dict[str, int] = {}
    status_verdicts: dict[str, str | None] = {}
    issues: list[Issue] = []

    for load in sorted(loads, key=lambda item: item.row_number):
        row = load.row_number
        for field_name in config.required_fields:
            column = mapping.header_for(field_name)
            if column is None or load.get(field_name) is not None:
                continue
            if (row, column) in flagged:
                continue
            issues.append(
                build_issue(
                    IssueCode.MISSING_REQUIRED_FIELD,
                    f"Required field '{field_name}' is empty in column '{column}'.",
                    rows=[row],
                    column=column,
                    suggestion=f"Fill in {field_name} for every load.",
                )
            )

        load_id = load.get("loadId")
        if load_id is not None:
            first_row = first_row_for_id.get(load_id)
            if first_row is None:
                first_row_for_id[load_id] = row
            else:
                issues.append(
                    build_issue(
                        IssueCode.DUPLICATE_ID,
                        f"Load id '{load_id}' appears on more than one row.",
                        rows=[first_row, row],
                        column=mapping.header_for("loadId"),
                        suggestion="Give each load a unique id or remove the duplicate row.",
                    )
                )

        status = load.get("status")
        if status is None:
            continue
        if status not in status_verdicts:
            # None: allowed as written; "": unknown; otherwise the canonical spelling
            status_verdicts[status] = None if status in config.status_values else canonical_status(status, config) or ""
        verdict = status_verdicts[status]
        if verdict is None:
            continue
        column = mapping.header_for("status")
        if verdict:
            issues.append(
                build_issue(
                    IssueCode.INCONSISTENT_STATUS,
                    f"'{column}' uses non-standard spellings of known statuses.",
                    rows=[row],
                    column=column,
                    suggestion=f"Write '{status}' as '{verdict}'.",
                )
            )
        else:
            issues.append(
                build_issue(
                    IssueCode.INVALID_STATUS,
                    f"'{column}' has values outside the known status list.",
                    rows=[row],
                    column=column,
                    suggestion="Use one of: " + ", ".join(config.status_values) + ".",
                )
            )

    return issues
