# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""TypeScript type-safety rules."""

import re
from collections.abc import Iterator

from ngsmells.model import Category, Severity
from ngsmells.rules.base import Rule, RuleContext, RuleFamily, RuleId, RuleMatch, iter_lines

_ANY_TYPE = re.compile(r":\s*any\b|<any>|\bas\s+any\b|\bany\[\]")
_NON_NULL_ASSERTION = re.compile(r"[\w\])]!(?=[.)\[])")


def _is_comment(line: str) -> bool:
    return line.lstrip().startswith(("//", "/*", "*"))


def _typescript_any(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        if _is_comment(line):
            continue
        match = _ANY_TYPE.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=line.find("any", match.start()) + 1,
                message="Usage of any type defeats type safety",
                remediation="Define a proper type or use unknown",
            )


def _typescript_non_null(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        if _is_comment(line):
            continue
        match = _NON_NULL_ASSERTION.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=match.start() + 2,
                message="Non-null assertion operator used",
                remediation="Add a null check or use optional chaining",
            )


RULES: tuple[Rule, ...] = (
    Rule(RuleId.TYPESCRIPT_ANY, Category.TYPESCRIPT, RuleFamily.TYPESCRIPT, _typescript_any),
    Rule(RuleId.TYPESCRIPT_NON_NULL, Category.TYPESCRIPT, RuleFamily.TYPESCRIPT, _typescript_non_null),
)
