# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Analysis result aggregation and queries."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from ngsmells.model import Category, Finding, RuleFailure, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Immutable outcome of one analysis run.

    Attributes:
        project_path: Root of the analyzed project.
        findings: Findings in scan order, then rule order, then line order.
        timestamp: UTC time at which the result was assembled.
        duration_ms: Wall-clock analysis time in milliseconds.
        failures: Rules that raised and were skipped.
        cancelled: Whether the run was stopped before all artifacts ran.
        artifact_count: Number of artifacts analyzed.
    """

    project_path: str
    findings: tuple[Finding, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0
    failures: tuple[RuleFailure, ...] = ()
    cancelled: bool = False
    artifact_count: int = 0

    @property
    def partial(self) -> bool:
        return self.cancelled or bool(self.failures)

    @property
    def total_findings(self) -> int:
        return len(self.findings)

    @property
    def has_critical_issues(self) -> bool:
        return any(finding.severity is Severity.CRITICAL for finding in self.findings)

    def is_empty(self) -> bool:
        return not self.findings

    def severity_counts(self) -> dict[str, int]:
        """Return finding counts keyed by severity name, every severity present."""
        counts = {severity.name: 0 for severity in sorted(Severity, reverse=True)}
        for finding in self.findings:
            counts[finding.severity.name] += 1
        return counts

    def category_counts(self) -> dict[str, int]:
        """Return finding counts keyed by category label, every category present."""
        counts = {category.value: 0 for category in Category}
        for finding in self.findings:
            counts[finding.category.value] += 1
        return counts

    def highest_severity(self) -> Severity | None:
        if not self.findings:
            return None
        return max(finding.severity for finding in self.findings)

    def findings_by_severity(self, severity: Severity) -> tuple[Finding, ...]:
        return tuple(finding for finding in self.findings if finding.severity is severity)

    def findings_by_category(self, category: Category) -> tuple[Finding, ...]:
        return tuple(finding for finding in self.findings if finding.category is category)

    def filter_by_severity(self, minimum: Severity) -> "AnalysisResult":
        """Return a copy keeping findings at or above ``minimum``."""
        kept = tuple(finding for finding in self.findings if finding.severity >= minimum)
        return replace(self, findings=kept)


def aggregate(
    project_path: str,
    per_artifact_findings: Iterable[Iterable[Finding]],
    *,
    duration_ms: int = 0,
    failures: Iterable[RuleFailure] = (),
    cancelled: bool = False,
    artifact_count: int | None = None,
) -> AnalysisResult:
    """Combine per-artifact findings into one result.

    Findings are concatenated in the given order and a repeated
    ``(path, rule_id, line)`` identity keeps only its first finding.

    Args:
        project_path: Root of the analyzed project.
        per_artifact_findings: Findings of each artifact, in scan order.
        duration_ms: Wall-clock analysis time in milliseconds.
        failures: Recovered rule failures.
        cancelled: Whether the run was cancelled.
        artifact_count: Number of analyzed artifacts; defaults to the
            number of finding groups.

    Returns:
        Aggregated analysis result.
    """
    groups = [tuple(group) for group in per_artifact_findings]
    seen: set[tuple[str, str, int]] = set()
    findings: list[Finding] = []
    duplicates = 0
    for group in groups:
        for finding in group:
            if finding.identity in seen:
                duplicates += 1
                continue
            seen.add(finding.identity)
            findings.append(finding)
    if duplicates:
        logger.debug(f"Dropped duplicate findings (count={duplicates})")
    return AnalysisResult(
        project_path=project_path,
        findings=tuple(findings),
        duration_ms=duration_ms,
        failures=tuple(failures),
        cancelled=cancelled,
        artifact_count=len(groups) if artifact_count is None else artifact_count,
    )


def filter_by_severity(result: AnalysisResult, minimum: Severity | str) -> AnalysisResult:
    """Filter a result by a severity or severity name.

    Raises:
        ValueError: If ``minimum`` names no severity.
    """
    if isinstance(minimum, str):
        minimum = Severity.from_string(minimum)
    return result.filter_by_severity(minimum)
