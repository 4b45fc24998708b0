# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Rules for unit test files."""

import re
from collections.abc import Iterator

from ngsmells.model import Category, Severity
from ngsmells.rules.base import (
    Rule,
    RuleContext,
    RuleFamily,
    RuleId,
    RuleMatch,
    column_for_offset,
    column_of,
    iter_lines,
    line_for_offset,
)
from ngsmells.rules.performance import ZONELESS_PROVIDERS

_LEGACY_ASYNC = re.compile(r"(?<![\w.])async\(\s*\(")
_IMPLEMENTATION_ACCESS = re.compile(r"componentInstance\s*\[\s*['\"]\w+['\"]\s*\]|componentInstance\.(?:_\w+|private\w*)")
_SIGNAL_INPUT_SET = re.compile(r"\b(?:componentInstance|component)\.(\w+)\.set\(")
_SERVICE_CONSTRUCTION = re.compile(r"\bnew\s+(\w+Service)\s*\(")


def _is_zoneless(content: str) -> bool:
    return any(provider in content for provider in ZONELESS_PROVIDERS)


def _first(ctx: RuleContext, needle: str) -> tuple[int, int]:
    offset = ctx.content.find(needle)
    return line_for_offset(ctx.content, offset), column_for_offset(ctx.content, offset)


def _testing_async(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        match = _LEGACY_ASYNC.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.LOW,
                line=number,
                column=match.start() + 1,
                message="Deprecated async() test helper",
                remediation="Use waitForAsync() or native async/await",
            )


def _testing_defer_behavior(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "@defer" not in content or "DeferBlockState" in content or "getDeferBlocks" in content:
        return
    line, column = _first(ctx, "@defer")
    yield RuleMatch(
        severity=Severity.MEDIUM,
        line=line,
        column=column,
        message="Deferred block rendered in a test without controlling its state",
        remediation="Use fixture.getDeferBlocks() and render(DeferBlockState.Complete)",
    )


def _testing_fakeasync_zoneless(ctx: RuleContext) -> Iterator[RuleMatch]:
    if not _is_zoneless(ctx.content):
        return
    for number, line in iter_lines(ctx.content):
        if "fakeAsync(" in line:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=column_of(line, "fakeAsync("),
                message="fakeAsync used with zoneless change detection",
                remediation="Use async/await with fixture.whenStable() in zoneless tests",
            )


def _testing_flush_effects(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "effect(" not in content or "flushEffects()" in content or "TestBed.tick()" in content:
        return
    line, column = _first(ctx, "effect(")
    yield RuleMatch(
        severity=Severity.MEDIUM,
        line=line,
        column=column,
        message="Effects are not flushed before assertions",
        remediation="Call TestBed.tick() (or TestBed.flushEffects()) before asserting",
    )


def _testing_implementation(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    clicks_dom = "nativeElement" in content and "click()" in content
    for number, line in iter_lines(content):
        access = _IMPLEMENTATION_ACCESS.search(line)
        if access:
            yield RuleMatch(
                severity=Severity.LOW,
                line=number,
                column=access.start() + 1,
                message="Test reaches into component internals",
                remediation="Assert on rendered output or public API instead",
            )
        elif clicks_dom and "click()" in line and "nativeElement" in line:
            yield RuleMatch(
                severity=Severity.LOW,
                line=number,
                column=column_of(line, "nativeElement"),
                message="Test drives raw DOM elements",
                remediation="Use component harnesses or user-facing queries",
            )


def _testing_signal_input_mutation(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        match = _SIGNAL_INPUT_SET.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=match.start() + 1,
                message=f"Signal input '{match.group(1)}' is set directly on the component",
                remediation="Use fixture.componentRef.setInput() for signal inputs",
            )


def _testing_testbed(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "TestBed" not in content:
        return
    for number, line in iter_lines(content):
        match = _SERVICE_CONSTRUCTION.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=match.start() + 1,
                message=f"{match.group(1)} constructed manually in a TestBed test",
                remediation="Provide the service through TestBed and use TestBed.inject()",
            )


def _testing_zoneless_observable_subscriptions(ctx: RuleContext) -> Iterator[RuleMatch]:
    if not _is_zoneless(ctx.content):
        return
    for number, line in iter_lines(ctx.content):
        if ".subscribe(" in line:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=column_of(line, ".subscribe("),
                message="Observable subscription in a zoneless test",
                remediation="Await fixture.whenStable() or convert with toSignal()",
            )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(rule_id=rule_id, category=Category.TESTING, family=RuleFamily.TESTING, check=check)


RULES: tuple[Rule, ...] = (
    _rule(RuleId.TESTING_ASYNC, _testing_async),
    _rule(RuleId.TESTING_DEFER_BEHAVIOR, _testing_defer_behavior),
    _rule(RuleId.TESTING_FAKEASYNC_ZONELESS, _testing_fakeasync_zoneless),
    _rule(RuleId.TESTING_FLUSH_EFFECTS, _testing_flush_effects),
    _rule(RuleId.TESTING_IMPLEMENTATION, _testing_implementation),
    _rule(RuleId.TESTING_SIGNAL_INPUT_MUTATION, _testing_signal_input_mutation),
    _rule(RuleId.TESTING_TESTBED, _testing_testbed),
    _rule(RuleId.TESTING_ZONELESS_OBSERVABLE_SUBSCRIPTIONS, _testing_zoneless_observable_subscriptions),
)
