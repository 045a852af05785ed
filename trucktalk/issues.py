"""
Issue taxonomy and aggregation.

Keeps severity and fixability in one place so the mapper, normalizer,
validator and CLI do not drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class Severity(str, Enum):
    ERROR = "error"
    WARN = "warn"


class IssueCode(str, Enum):
    MISSING_COLUMN = "MISSING_COLUMN"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_ID = "DUPLICATE_ID"
    BAD_DATE_FORMAT = "BAD_DATE_FORMAT"
    BAD_DATE_MISSING_TZ = "BAD_DATE_MISSING_TZ"
    NON_ISO_DATE = "NON_ISO_DATE"
    INVALID_STATUS = "INVALID_STATUS"
    INCONSISTENT_STATUS = "INCONSISTENT_STATUS"
    NO_DATA = "NO_DATA"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ISSUE_DEFINITIONS: dict[IssueCode, dict[str, Any]] = {
    IssueCode.MISSING_COLUMN: {
        "severity": Severity.ERROR,
        "description": "A required field has no matching column in the header row.",
        "evidence": "No header matched a saved mapping, the field name, or any of its aliases.",
    },
    IssueCode.MISSING_REQUIRED_FIELD: {
        "severity": Severity.ERROR,
        "description": "A required cell is empty.",
        "evidence": "The mapped column is blank for this row.",
    },
    IssueCode.DUPLICATE_ID: {
        "severity": Severity.ERROR,
        "description": "The same load id is used on more than one row.",
        "evidence": "A loadId value repeats an id seen on an earlier row.",
    },
    IssueCode.BAD_DATE_FORMAT: {
        "severity": Severity.ERROR,
        "description": "An appointment time could not be parsed as a date.",
        "evidence": "The value failed date parsing, including the retry with '/' replaced by '-'.",
    },
    IssueCode.BAD_DATE_MISSING_TZ: {
        "severity": Severity.ERROR,
        "description": "An appointment time has no timezone, so its instant is ambiguous.",
        "evidence": "The value parsed but carried no Z, numeric offset, or zone abbreviation.",
    },
    IssueCode.NON_ISO_DATE: {
        "severity": Severity.WARN,
        "description": "An appointment time is valid but not written as ISO-8601.",
        "evidence": "The value did not start with YYYY-MM-DDTHH:MM:SS.",
    },
    IssueCode.INVALID_STATUS: {
        "severity": Severity.WARN,
        "description": "A status value is outside the known status vocabulary.",
        "evidence": "No allowed status matches the value, ignoring case and spacing.",
    },
    IssueCode.INCONSISTENT_STATUS: {
        "severity": Severity.WARN,
        "description": "A status value is a spelling variant of a known status.",
        "evidence": "The value matches an allowed status only after ignoring case and spacing.",
    },
    IssueCode.NO_DATA: {
        "severity": Severity.ERROR,
        "description": "The sheet has no header row or no data rows.",
        "evidence": "Fewer than two rows were supplied.",
    },
    IssueCode.INTERNAL_ERROR: {
        "severity": Severity.ERROR,
        "description": "The analysis stopped because of an unexpected internal failure.",
        "evidence": "An exception escaped the analysis pipeline.",
    },
}


def fix_command(code: IssueCode) -> str:
    return f"fix_{code.value.lower()}"


@dataclass(frozen=True)
class FixAction:
    command: str
    column: str | None
    rows: tuple[int, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"command": self.command, "column": self.column, "rows": list(self.rows)}


@dataclass(frozen=True)
class Issue:
    code: IssueCode
    severity: Severity
    message: str
    rows: tuple[int, ...] = ()
    column: str | None = None
    suggestion: str | None = None
    action: FixAction | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.rows:
            payload["rows"] = list(self.rows)
        if self.column is not None:
            payload["column"] = self.column
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        if self.action is not None:
            payload["action"] = self.action.to_dict()
        return payload


def build_issue(
    code: IssueCode,
    message: str,
    *,
    rows: Iterable[int] = (),
    column: str | None = None,
    suggestion: str | None = None,
) -> Issue:
    return Issue(
        code=code,
        severity=ISSUE_DEFINITIONS[code]["severity"],
        message=message,
        rows=tuple(rows),
        column=column,
        suggestion=suggestion,
    )


@dataclass
class _Group:
    first: Issue
    rows: list[int] = field(default_factory=list)
    seen: set[int] = field(default_factory=set)

    def add_rows(self, rows: Iterable[int]) -> None:
        for row in rows:
            if row not in self.seen:
                self.seen.add(row)
                self.rows.append(row)


def group_issues(issues: Iterable[Issue], fixable_codes: Iterable[str] = ()) -> list[Issue]:
    """
    Merge issues sharing (code, column) into one entry per pair.

    Rows are unioned in order of first appearance. Message, suggestion and
    severity come from the first occurrence. Fixable codes get a batch
    action covering every merged row.
    """
    fixable = set(fixable_codes)
    groups: dict[tuple[IssueCode, str | None], _Group] = {}
    for issue in issues:
        key = (issue.code, issue.column)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(first=issue)
        group.add_rows(issue.rows)

    grouped: list[Issue] = []
    for (code, column), group in groups.items():
        rows = tuple(group.rows)
        action = None
        if code.value in fixable:
            action = FixAction(command=fix_command(code), column=column, rows=rows)
        grouped.append(
            Issue(
                code=code,
                severity=group.first.severity,
                message=group.first.message,
                rows=rows,
                column=column,
                suggestion=group.first.suggestion,
                action=action,
            )
        )
    return grouped


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.is_error for issue in issues)


def error_rows(issues: Iterable[Issue]) -> set[int]:
    return {row for issue in issues if issue.is_error for row in issue.rows}
