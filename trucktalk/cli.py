from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import pandas as pd

from trucktalk import __version__ as TOOL_VERSION
from trucktalk.analyzer import AnalysisResult, Analyzer, build_report
from trucktalk.config import DEFAULT_CONFIG, load_config, starter_config
from trucktalk.contracts import build_contract, build_run_summary
from trucktalk.errors import MappingStoreError, TableLoadError
from trucktalk.fixes import apply_fix
from trucktalk.issues import ISSUE_DEFINITIONS, Issue, IssueCode, fix_command
from trucktalk.loader import LoadedTable, is_remote, load_table
from trucktalk.mapping_store import JsonFileMappingStore, confirm_mapping, default_store_path
from trucktalk.preview import issue_cells, write_preview

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_ANALYSIS_ERRORS = 3

OUTPUT_STAMP_ENV = "TRUCKTALK_OUTPUT_STAMP"
DEFAULT_OUTPUT_ROOT = "trucktalk-output"
DEFAULT_CONFIG_NAME = "trucktalk.json"

logger = logging.getLogger("trucktalk.cli")


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class TruckTalkArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def configure_logging(verbosity: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def source_stem(source: str) -> str:
    if is_remote(source):
        return Path(urlparse(source).path).stem or "remote"
    return Path(source).stem


def determine_output_dir(args: argparse.Namespace) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return Path.cwd() / DEFAULT_OUTPUT_ROOT / f"{source_stem(args.input)}-{timestamp_token()}"


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, TableLoadError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def parse_mapping_pairs(pairs: list[str] | None) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for pair in pairs or []:
        header, sep, field_name = pair.rpartition("=")
        if not sep or not header.strip() or not field_name.strip():
            raise CliError(f"Mapping must look like 'Header=field': {pair!r}", EXIT_COMMAND_ERROR)
        mapping[header.strip()] = field_name.strip()
    return mapping


def store_for(args: argparse.Namespace) -> JsonFileMappingStore:
    return JsonFileMappingStore(Path(args.store) if getattr(args, "store", None) else default_store_path())


def build_analyzer(args: argparse.Namespace) -> Analyzer:
    config = load_config(Path(args.config) if args.config else None)
    store = store_for(args) if args.user else None
    return Analyzer(config, store)


def run_analysis(args: argparse.Namespace) -> tuple[LoadedTable, Analyzer, AnalysisResult]:
    if not is_remote(args.input) and not Path(args.input).exists():
        raise CliError(f"File not found: {args.input}", EXIT_COMMAND_ERROR)
    table = load_table(args.input, sheet_name=args.sheet_name)
    for warning in table.warnings:
        logger.warning(warning)
    analyzer = build_analyzer(args)
    result = analyzer.analyze(table.values, user=args.user, mapping_override=parse_mapping_pairs(args.map))
    return table, analyzer, result


def render_issue(issue: Issue, headers: list[Any]) -> list[str]:
    label = issue.code.value + (f" [{issue.column}]" if issue.column else "")
    lines = [f"- {issue.severity.value}: {label}: {issue.message}"]
    if issue.rows:
        cells = issue_cells(issue, headers)
        rows = ", ".join(str(row) for row in issue.rows)
        lines.append(f"  rows: {rows}" + (f" ({', '.join(cells)})" if cells else ""))
    if issue.suggestion:
        lines.append(f"  suggestion: {issue.suggestion}")
    if issue.action:
        lines.append(f"  fix: trucktalk fix <input> --code {issue.code.value} --column '{issue.action.column}'")
    return lines


def render_analysis_text(table: LoadedTable, result: AnalysisResult) -> str:
    lines = [
        "trucktalk analyze",
        f"Source: {table.source}",
        f"Format: {table.detected_format}",
        f"Rows analyzed: {result.analyzed_rows}",
        f"Result: {'ok' if result.ok else 'has errors'}",
        f"Issues: {len(result.issues)} ({result.error_count} errors, {result.warning_count} warnings)",
    ]
    if table.sheet_name:
        lines.append(f"Sheet: {table.sheet_name}")
    if result.mapping:
        lines.append("Mapping:")
        lines.extend(f"  {header} -> {field_name}" for header, field_name in result.mapping.items())
    for issue in result.issues:
        lines.extend(render_issue(issue, table.headers))
    if result.loads is not None:
        lines.append(f"Loads ready: {len(result.loads)}")
    return "\n".join(lines) + "\n"


EXPLAIN_HINTS = {
    IssueCode.MISSING_COLUMN: "Rename the column to the field name or a known alias, or confirm a mapping with 'trucktalk mapping confirm'.",
    IssueCode.MISSING_REQUIRED_FIELD: "Fill the cell, or run the fix to write N/A into the blanks.",
    IssueCode.DUPLICATE_ID: "Give each load its own id; duplicates are never merged automatically.",
    IssueCode.BAD_DATE_FORMAT: "Retype the value as ISO-8601 with a timezone.",
    IssueCode.BAD_DATE_MISSING_TZ: "Add Z, an offset or a zone abbreviation, or set assume_timezone in the config.",
    IssueCode.NON_ISO_DATE: "Run the fix to rewrite the column as ISO-8601 UTC.",
    IssueCode.INVALID_STATUS: "Use a status from the configured list, or add it to status_values.",
    IssueCode.INCONSISTENT_STATUS: "Run the fix to rewrite the spelling to the configured one.",
    IssueCode.NO_DATA: "Put headers in row 1 and loads below them.",
    IssueCode.INTERNAL_ERROR: "Run again with -vv to see the traceback.",
}


def build_parser() -> argparse.ArgumentParser:
    parser = TruckTalkArgumentParser(prog="trucktalk", description="Map, validate and normalize trucking load sheets.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_analysis_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("input", help="Input file path or http(s) URL")
        sub.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
        sub.add_argument("--config", help="JSON config path")
        sub.add_argument("--user", help="User whose confirmed header mapping applies")
        sub.add_argument("--store", help="Mapping store path")
        sub.add_argument("--map", action="append", metavar="HEADER=FIELD", help="Header mapping override; repeatable")
        sub.add_argument("-o", "--out", dest="out_dir", help="Output directory")
        sub.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
        sub.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
        sub.add_argument("-v", "--verbose", action="count", default=0, help="More logs (-vv for debug)")

    analyze = subparsers.add_parser("analyze", help="Analyze a load sheet and write an issue report.")
    add_analysis_arguments(analyze)
    analyze.add_argument("--output", help="Explicit report output path")

    preview = subparsers.add_parser("preview", help="Write normalized loads to a new preview workbook.")
    add_analysis_arguments(preview)

    fix = subparsers.add_parser("fix", help="Apply fix actions and write a corrected copy.")
    add_analysis_arguments(fix)
    fix.add_argument("--code", choices=sorted(code.value for code in IssueCode), help="Only fix issues with this code")
    fix.add_argument("--column", help="Only fix issues in this column")
    fix.add_argument("--format", choices=["csv", "xlsx"], default="csv", help="Format of the corrected copy")
    fix.add_argument("--dry-run", action="store_true", help="Report what would change without writing files")

    mapping = subparsers.add_parser("mapping", help="Show or confirm saved header mappings.")
    mapping_subparsers = mapping.add_subparsers(dest="mapping_command", required=True)
    mapping_show = mapping_subparsers.add_parser("show", help="Print the saved mapping for a user.")
    mapping_show.add_argument("--user", required=True, help="User identity")
    mapping_show.add_argument("--store", help="Mapping store path")
    mapping_confirm = mapping_subparsers.add_parser("confirm", help="Save a header mapping for a user.")
    mapping_confirm.add_argument("--user", required=True, help="User identity")
    mapping_confirm.add_argument("--store", help="Mapping store path")
    mapping_confirm.add_argument("--map", action="append", metavar="HEADER=FIELD", help="Header mapping entry; repeatable")
    mapping_confirm.add_argument("--from-input", dest="from_input", help="Confirm the mapping detected for this sheet")
    mapping_confirm.add_argument("--config", help="JSON config path")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_NAME, help="Config output path")

    explain = subparsers.add_parser("explain", help="Explain an issue code.")
    explain.add_argument("code", help="Issue code, e.g. NON_ISO_DATE")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_analyze(args: argparse.Namespace) -> int:
    try:
        table, _, result = run_analysis(args)
        report_path = safe_output_path(Path(args.output) if args.output else determine_output_dir(args) / "analysis.json")
        report = build_report(result, source=table.source, warnings=table.warnings)
        report["run_summary"]["output_file"] = str(report_path)
        write_json(report_path, report)
        if args.json:
            maybe_emit_json_stdout(report, True)
        else:
            emit_human(render_analysis_text(table, result).rstrip(), quiet=args.quiet)
            emit_human(f"Report written: {report_path}", quiet=args.quiet)
        return EXIT_SUCCESS if result.ok else EXIT_ANALYSIS_ERRORS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_preview(args: argparse.Namespace) -> int:
    try:
        table, analyzer, result = run_analysis(args)
        if not result.ok:
            if args.json:
                maybe_emit_json_stdout(build_report(result, source=table.source, warnings=table.warnings), True)
            else:
                emit_human(render_analysis_text(table, result).rstrip(), quiet=args.quiet)
            eprint("Preview not written: the sheet has errors.")
            return EXIT_ANALYSIS_ERRORS
        target = write_preview(result.loads or [], determine_output_dir(args), analyzer.config)
        contract = build_contract("trucktalk.preview")
        payload = {
            "contract": contract,
            "schema_version": contract["version"],
            "tool_version": TOOL_VERSION,
            "preview_file": str(target),
            "run_summary": build_run_summary(
                command="preview",
                source=table.source,
                output_path=str(target),
                warnings=table.warnings,
                metrics={"loads": len(result.loads or []), "warnings": result.warning_count},
            ),
        }
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Preview written: {target} ({len(result.loads or [])} loads)", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def select_fix_actions(result: AnalysisResult, code: str | None, column: str | None) -> list[Issue]:
    selected = []
    for issue in result.issues:
        if issue.action is None:
            continue
        if code and issue.code.value != code:
            continue
        if column and issue.column != column:
            continue
        selected.append(issue)
    return selected


def write_fixed_copy(path: Path, headers: list[Any], rows: list[list[Any]], output_format: str) -> None:
    ensure_parent(path)
    frame = pd.DataFrame(rows, columns=[str(header) for header in headers])
    if output_format == "xlsx":
        frame.to_excel(path, index=False, engine="openpyxl")
    else:
        frame.to_csv(path, index=False)


def run_fix(args: argparse.Namespace) -> int:
    try:
        table, analyzer, result = run_analysis(args)
        if args.code and IssueCode(args.code).value not in analyzer.config.fixable_codes:
            raise CliError(f"{args.code} has no fix action.", EXIT_COMMAND_ERROR)
        selected = select_fix_actions(result, args.code, args.column)
        if not selected:
            emit_human("Nothing to fix.", quiet=args.quiet)
            return EXIT_SUCCESS if result.ok else EXIT_ANALYSIS_ERRORS

        rows = table.rows
        applied: list[dict[str, Any]] = []
        for issue in selected:
            outcome = apply_fix(table.headers, rows, issue.action, analyzer.config)
            rows = outcome.rows
            applied.append(
                {
                    "command": issue.action.command,
                    "column": issue.action.column,
                    "changed_rows": outcome.changed,
                    "skipped_rows": outcome.skipped,
                }
            )

        out_dir = determine_output_dir(args)
        fixed_path = out_dir / f"{source_stem(args.input)}-fixed.{args.format}"
        summary_path = out_dir / "fix-summary.json"
        if not args.dry_run:
            safe_output_path(fixed_path)
            safe_output_path(summary_path)

        contract = build_contract("trucktalk.fix")
        payload = {
            "contract": contract,
            "schema_version": contract["version"],
            "tool_version": TOOL_VERSION,
            "dry_run": args.dry_run,
            "actions": applied,
            "run_summary": build_run_summary(
                command="fix",
                source=table.source,
                output_path=None if args.dry_run else str(fixed_path),
                warnings=table.warnings,
                metrics={
                    "actions": len(applied),
                    "cells_changed": sum(len(item["changed_rows"]) for item in applied),
                },
            ),
        }
        if not args.dry_run:
            write_fixed_copy(fixed_path, table.headers, rows, args.format)
            write_json(summary_path, payload)

        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            for item in applied:
                emit_human(
                    f"{item['command']} [{item['column']}]: {len(item['changed_rows'])} changed, "
                    f"{len(item['skipped_rows'])} unchanged",
                    quiet=args.quiet,
                )
            if not args.dry_run:
                emit_human(f"Fixed copy written: {fixed_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_mapping_show(args: argparse.Namespace) -> int:
    try:
        mapping = store_for(args).get(args.user)
    except MappingStoreError as exc:
        eprint(str(exc))
        return EXIT_COMMAND_ERROR
    if mapping is None:
        eprint(f"No saved mapping for {args.user}")
        return EXIT_COMMAND_ERROR
    print(json_dumps(mapping))
    return EXIT_SUCCESS


def run_mapping_confirm(args: argparse.Namespace) -> int:
    try:
        config = load_config(Path(args.config) if args.config else None)
        mapping: dict[str, str] = {}
        if args.from_input:
            table = load_table(args.from_input)
            detected = Analyzer(config).analyze(table.values)
            mapping.update(detected.mapping)
        explicit = parse_mapping_pairs(args.map)
        if explicit:
            overridden = set(explicit.values())
            mapping = {header: name for header, name in mapping.items() if name not in overridden}
            mapping.update(explicit)
        if not mapping:
            raise CliError("Nothing to confirm: pass --map or --from-input.", EXIT_COMMAND_ERROR)
        saved = confirm_mapping(store_for(args), args.user, mapping, config)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)
    emit_human(f"Saved {len(saved)} mapping entries for {args.user}")
    print(json_dumps(saved))
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, starter_config())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    try:
        code = IssueCode(args.code.strip().upper())
    except ValueError:
        eprint(f"Unknown issue code: {args.code}")
        return EXIT_COMMAND_ERROR
    definition = ISSUE_DEFINITIONS[code]
    fixable = code.value in DEFAULT_CONFIG.fixable_codes
    payload = {
        "code": code.value,
        "severity": definition["severity"].value,
        "description": definition["description"],
        "evidence": definition["evidence"],
        "auto_fixable": fixable,
        "fix_command": fix_command(code) if fixable else None,
        "hint": EXPLAIN_HINTS[code],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Code: {code.value}",
                    f"Severity: {payload['severity']}",
                    f"What it means: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                    f"Auto-fixable: {'yes (' + payload['fix_command'] + ')' if fixable else 'no'}",
                    f"What to do: {payload['hint']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "verbose", 0), getattr(args, "quiet", False))
        if args.command == "analyze":
            return run_analyze(args)
        if args.command == "preview":
            return run_preview(args)
        if args.command == "fix":
            return run_fix(args)
        if args.command == "mapping":
            if args.mapping_command == "show":
                return run_mapping_show(args)
            if args.mapping_command == "confirm":
                return run_mapping_confirm(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
