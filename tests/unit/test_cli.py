import io
import json
import re
from pathlib import Path

from cli.smells_cli import build_parser, run

SERVICE = "\n".join(
    [
        "@Injectable({ providedIn: 'root' })",
        "export class FooService {",
        "  constructor(private foo: FooService) {}",
        "}",
    ]
)


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _project(tmp_path: Path) -> Path:
    project_root = tmp_path / "project"
    _write_file(project_root / "src" / "app" / "foo.service.ts", SERVICE)
    _write_file(project_root / "src" / "app" / "util.ts", "let x: any;")
    _write_file(project_root / "node_modules" / "lib" / "index.ts", "let y: any;")
    return project_root


def _run(argv: list[str], environ: dict[str, str] | None = None) -> tuple[int, str, str]:
    stdout = io.StringIO()
    stderr = io.StringIO()
    exit_code = run(argv, stdout=stdout, stderr=stderr, environ=environ or {})
    return exit_code, stdout.getvalue(), stderr.getvalue()


def test_ph8_cli_001_json_report_fails_on_critical_findings(tmp_path: Path) -> None:
    project_root = _project(tmp_path)

    exit_code, stdout, stderr = _run([str(project_root), "--format", "json"])

    assert exit_code == 1
    assert stderr == ""
    payload = json.loads(stdout)
    assert payload["artifact_count"] == 2
    assert payload["cancelled"] is False
    assert payload["summary"]["highest_severity"] == "CRITICAL"
    assert payload["summary"]["total"] == len(payload["findings"])
    circular = [
        finding
        for finding in payload["findings"]
        if finding["rule_id"] == "CIRCULAR_DEPENDENCY_INJECTION"
    ]
    assert circular == [
        {
            "id": "CIRCULAR_DEPENDENCY_INJECTION:src/app/foo.service.ts:3",
            "rule_id": "CIRCULAR_DEPENDENCY_INJECTION",
            "severity": "CRITICAL",
            "category": circular[0]["category"],
            "path": "src/app/foo.service.ts",
            "line": 3,
            "column": circular[0]["column"],
            "message": "Service 'FooService' injects itself - circular dependency",
            "remediation": circular[0]["remediation"],
        }
    ]
    assert all("node_modules" not in finding["path"] for finding in payload["findings"])
    assert any(finding["path"] == "src/app/util.ts" for finding in payload["findings"])


def test_ph8_cli_002_exit_zero_when_critical_does_not_fail(tmp_path: Path) -> None:
    project_root = _project(tmp_path)

    flag_code, _, _ = _run([str(project_root), "--format", "json", "--no-fail-on-critical"])
    env_code, _, _ = _run(
        [str(project_root), "--format", "json"],
        environ={"ANGULAR_SMELLS_EXIT_ON_CRITICAL": "false"},
    )

    assert flag_code == 0
    assert env_code == 0


def test_ph8_cli_003_min_severity_filters_findings(tmp_path: Path) -> None:
    project_root = _project(tmp_path)

    _, stdout, _ = _run([str(project_root), "--format", "json", "--min-severity", "critical"])

    payload = json.loads(stdout)
    assert payload["findings"]
    assert {finding["severity"] for finding in payload["findings"]} == {"CRITICAL"}
    assert payload["summary"]["by_severity"]["MEDIUM"] == 0


def test_ph8_cli_004_output_file_receives_raw_json(tmp_path: Path) -> None:
    project_root = _project(tmp_path)
    output_path = tmp_path / "reports" / "smells.json"

    exit_code, stdout, _ = _run(
        [str(project_root), "--format", "json", "--output", str(output_path)]
    )

    assert exit_code == 1
    assert stdout == ""
    payload = json.loads(output_path.read_text(encoding="utf-8"))
    assert payload["project_path"] == str(project_root)
    assert payload["scan_errors"] == []


def test_ph8_cli_005_table_output_has_summary(tmp_path: Path) -> None:
    project_root = _project(tmp_path)

    exit_code, stdout, _ = _run([str(project_root), "--no-fail-on-critical"])

    text = _strip_ansi(stdout)
    assert exit_code == 0
    assert "Summary" in text
    assert "TOTAL" in text
    assert "CRITICAL" in text
    assert "Analyzed 2 files in" in text


def test_ph8_cli_006_skipped_files_are_reported_on_stderr(tmp_path: Path) -> None:
    project_root = _project(tmp_path)

    exit_code, _, stderr = _run(
        [str(project_root), "--format", "json"],
        environ={"ANGULAR_SMELLS_MAX_FILE_SIZE": "20"},
    )

    assert exit_code == 0
    assert "scan_error: src/app/foo.service.ts: file too large" in stderr


def test_ph8_cli_007_invalid_input_returns_two(tmp_path: Path) -> None:
    project_root = _project(tmp_path)

    missing_code, _, missing_err = _run([str(tmp_path / "missing")])
    option_code, _, option_err = _run([str(project_root), "--set", "unknown.option=3"])
    value_code, _, _ = _run([str(project_root), "--set", "godComponent.maxImports=many"])
    severity_code, _, _ = _run([str(project_root), "--min-severity", "urgent"])
    env_code, _, env_err = _run([str(project_root)], environ={"ANGULAR_SMELLS_PARALLEL": "0"})

    assert missing_code == 2
    assert "Path does not exist" in missing_err
    assert option_code == 2
    assert "Invalid configuration: Unknown rule option: unknown.option" in option_err
    assert value_code == 2
    assert severity_code == 2
    assert env_code == 2
    assert "PARALLEL must be >= 1" in env_err


def test_ph8_cli_008_argument_errors_return_two() -> None:
    exit_code, _, _ = _run(["--format", "xml"])

    assert exit_code == 2
    args = build_parser().parse_args(["app", "--set", "a=1", "--set", "b=2", "--log-level", "debug"])
    assert args.options == ["a=1", "b=2"]
    assert args.log_level == "DEBUG"
