# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Command line interface for the Angular anti-pattern scanner."""

import argparse
import json
import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import asdict, replace
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.style import Style
from rich.table import Table

from ngsmells.companion import FileCompanionLookup
from ngsmells.config import (
    ConfigurationError,
    RuleConfig,
    ScanConfig,
    load_config_from_env,
    parse_option_assignment,
)
from ngsmells.engine import AnalysisEngine
from ngsmells.model import Finding, Severity
from ngsmells.result import AnalysisResult
from ngsmells.scanner import FileScanner, ScanError

logger = logging.getLogger(__name__)

TABLE_COLUMN_RATIOS: dict[str, int] = {
    "severity": 1,
    "rule_id": 3,
    "location": 3,
    "message": 5,
    "remediation": 5,
}

SEVERITY_STYLES: dict[Severity, Style] = {
    Severity.CRITICAL: Style(color="red", bold=True),
    Severity.HIGH: Style(color="red"),
    Severity.MEDIUM: Style(color="yellow"),
    Severity.LOW: Style(color="blue"),
}


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser.

    Returns:
        Configured argument parser instance.
    """
    parser = argparse.ArgumentParser(prog="ngsmells")
    parser.add_argument("path", help="Root path of the Angular project to analyze.")
    parser.add_argument(
        "--min-severity",
        default=None,
        help="Lowest severity to report (low, medium, high, critical).",
    )
    parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Output format.",
    )
    parser.add_argument(
        "--output",
        required=False,
        help="Optional output file path for raw JSON when --format json is used.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads.",
    )
    parser.add_argument(
        "--set",
        dest="options",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a rule threshold, e.g. godComponent.maxImports=25.",
    )
    parser.add_argument(
        "--no-fail-on-critical",
        action="store_true",
        help="Exit with 0 even when critical findings are reported.",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        type=str.upper,
        default=None,
        help="Logging level.",
    )
    return parser


def run(
    argv: list[str],
    stdout: TextIO,
    stderr: TextIO,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Run the scanner command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.
        environ: Environment mapping; ``os.environ`` when omitted.

    Returns:
        Exit code: 0 on success, 1 when critical findings fail the run and
        2 on invalid input.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        logger.warning(f"Argument parsing failed (argv={argv})")
        return 2

    try:
        scan_config, rule_config = _resolve_config(
            args=args, environ=os.environ if environ is None else environ
        )
    except ConfigurationError as exc:
        logger.warning(f"Invalid configuration (error={exc})")
        stderr.write(f"Invalid configuration: {exc}\n")
        return 2
    logging.getLogger().setLevel(scan_config.log_level)

    root_path = Path(args.path)
    if not root_path.is_dir():
        logger.warning(f"Path does not exist (path={root_path})")
        stderr.write(f"Path does not exist: {root_path}\n")
        return 2

    scanner = FileScanner(
        include_patterns=scan_config.include_patterns,
        exclude_patterns=scan_config.exclude_patterns,
        max_file_size=scan_config.max_file_size,
    )
    artifacts, scan_errors = scanner.scan(root_path)
    engine = AnalysisEngine(
        config=rule_config,
        companions=FileCompanionLookup(root_path),
        max_workers=scan_config.max_workers,
    )
    result = engine.analyze(str(root_path), artifacts).filter_by_severity(
        scan_config.min_severity
    )
    _write_scan_errors(errors=scan_errors, stderr=stderr)

    if args.format == "json":
        payload = _build_payload(result=result, scan_errors=scan_errors)
        if args.output:
            try:
                _write_json_file(payload=payload, output_path=Path(args.output))
            except OSError as exc:
                logger.warning(
                    f"Failed to write JSON output file (output_path={args.output} error={exc})"
                )
                stderr.write(f"Failed to write JSON output file: {args.output}\n")
                return 2
        else:
            _write_json(payload=payload, stdout=stdout)
    else:
        _write_table(result=result, stdout=stdout)

    if scan_config.exit_on_critical and result.has_critical_issues:
        logger.info(
            f"Critical findings reported (count={len(result.findings_by_severity(Severity.CRITICAL))})"
        )
        return 1
    return 0


def _resolve_config(
    args: argparse.Namespace, environ: Mapping[str, str]
) -> tuple[ScanConfig, RuleConfig]:
    """Merge environment configuration with command line arguments.

    Command line values take precedence over environment variables.

    Raises:
        ConfigurationError: If any value is invalid.
    """
    scan_config, rule_config = load_config_from_env(environ)
    changes: dict[str, object] = {}
    if args.min_severity is not None:
        try:
            changes["min_severity"] = Severity.from_string(args.min_severity)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    if args.workers is not None:
        if args.workers <= 0:
            raise ConfigurationError("workers must be > 0")
        changes["max_workers"] = args.workers
    if args.no_fail_on_critical:
        changes["exit_on_critical"] = False
    if args.log_level is not None:
        changes["log_level"] = args.log_level
    overrides = dict(parse_option_assignment(option) for option in args.options)
    if overrides:
        rule_config = rule_config.with_overrides(overrides)
    return replace(scan_config, **changes), rule_config  # type: ignore[arg-type]


def _write_scan_errors(errors: list[ScanError], stderr: TextIO) -> None:
    for error in errors:
        stderr.write(f"scan_error: {error.path}: {error.reason}\n")


def _finding_payload(finding: Finding) -> dict[str, object]:
    return {
        "id": finding.id,
        "rule_id": finding.rule_id,
        "severity": finding.severity.name,
        "category": finding.category.value,
        "path": finding.location.path,
        "line": finding.location.line,
        "column": finding.location.column,
        "message": finding.message,
        "remediation": finding.remediation,
    }


def _build_payload(
    result: AnalysisResult, scan_errors: list[ScanError]
) -> dict[str, object]:
    """Build the JSON report payload.

    Args:
        result: Filtered analysis result.
        scan_errors: Files skipped by the scanner.

    Returns:
        JSON-serializable payload.
    """
    highest = result.highest_severity()
    return {
        "project_path": result.project_path,
        "timestamp": result.timestamp.isoformat(),
        "duration_ms": result.duration_ms,
        "artifact_count": result.artifact_count,
        "cancelled": result.cancelled,
        "partial": result.partial,
        "summary": {
            "total": result.total_findings,
            "highest_severity": highest.name if highest is not None else None,
            "by_severity": result.severity_counts(),
            "by_category": result.category_counts(),
        },
        "findings": [_finding_payload(finding) for finding in result.findings],
        "failures": [asdict(failure) for failure in result.failures],
        "scan_errors": [asdict(error) for error in scan_errors],
    }


def _write_json(payload: dict[str, object], stdout: TextIO) -> None:
    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    console.print(
        json.dumps(payload, indent=2, sort_keys=True),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _write_json_file(payload: dict[str, object], output_path: Path) -> None:
    """Write raw JSON payload to an output file.

    Raises:
        OSError: If directory creation or file writing fails.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
    )


def _write_table(result: AnalysisResult, stdout: TextIO) -> None:
    """Write findings grouped by category, followed by a severity summary.

    Args:
        result: Filtered analysis result.
        stdout: Standard output stream.
    """
    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    findings_by_category: dict[str, list[Finding]] = {}
    for finding in result.findings:
        findings_by_category.setdefault(finding.category.value, []).append(finding)

    for category in sorted(findings_by_category):
        console.rule(category, style=Style(color="cyan"), characters="-")
        table = Table(show_header=True, show_lines=True, expand=True)
        for column, ratio in TABLE_COLUMN_RATIOS.items():
            table.add_column(column, ratio=ratio, overflow="fold")
        for finding in findings_by_category[category]:
            table.add_row(
                finding.severity.name,
                finding.rule_id,
                str(finding.location),
                finding.message,
                finding.remediation,
                style=SEVERITY_STYLES[finding.severity],
            )
        console.print(table)

    console.rule("Summary", style=Style(color="cyan"), characters="-")
    summary = Table(show_header=True, show_lines=False)
    summary.add_column("severity")
    summary.add_column("count", justify="right")
    for name, count in result.severity_counts().items():
        summary.add_row(name, str(count))
    summary.add_row("TOTAL", str(result.total_findings))
    console.print(summary)
    console.print(
        f"Analyzed {result.artifact_count} files in {result.duration_ms} ms",
        markup=False,
        highlight=False,
    )
    if result.partial:
        console.print(
            f"Result is partial (cancelled={result.cancelled} rule_failures={len(result.failures)})",
            markup=False,
            highlight=False,
        )


def main() -> None:
    """Run the CLI application and exit."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
