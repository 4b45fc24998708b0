# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Performance, change detection and bundle size rules."""

import re
from collections.abc import Iterator

from ngsmells.model import Category, Kind, Severity
from ngsmells.rules.base import (
    Rule,
    RuleContext,
    RuleFamily,
    RuleId,
    RuleMatch,
    column_for_offset,
    column_of,
    find_balanced_end,
    iter_lines,
    line_for_offset,
)

ZONE_POLLUTING_LIBRARIES: tuple[str, ...] = (
    "chart.js",
    "three",
    "leaflet",
    "d3",
    "animejs",
    "gsap",
    "pixi.js",
    "fabric",
    "paper",
    "raphael",
)
HEAVY_LIBRARIES: tuple[str, ...] = (
    "lodash",
    "moment",
    "jquery",
    "rxjs",
    "three",
    "chart.js",
    "leaflet",
    "@angular/material",
    "@angular/cdk",
    "@ngrx/store",
    "@ngrx/effects",
)
TIMER_METHODS: tuple[str, ...] = (
    "setInterval",
    "setTimeout",
    "requestAnimationFrame",
    "requestIdleCallback",
)
ZONELESS_PROVIDERS: tuple[str, ...] = (
    "provideExperimentalZonelessChangeDetection(",
    "provideZonelessChangeDetection(",
)

_UNIT_BYTES = {"": 1, "b": 1, "k": 1024, "kb": 1024, "m": 1024**2, "mb": 1024**2, "g": 1024**3, "gb": 1024**3}
_MAXIMUM_ERROR = re.compile(r'"maximumError"\s*:\s*"(\d+(?:\.\d+)?)\s*(gb|mb|kb|g|m|k|b)?"', re.IGNORECASE)
_IMPORT_FROM = re.compile(r"""^\s*import\s+.*?from\s+['"]([^'"]+)['"]""", re.MULTILINE)
_LAZY_ROUTE = re.compile(r"loadChildren\s*:|loadComponent\s*:|import\s*\(\s*['\"]")
_DOM_ACCESS = re.compile(r"\b(getElementById|querySelector|addEventListener)\b")
_DEFER_TRIGGER = re.compile(r"\bon\s+(viewport|idle|interaction|hover)\b")
_ABOVE_FOLD = ("<header", "<nav", "hero", "banner", "main-content", "above-fold")
_INTERACTIVE = ("(click)", "<button", "<input", "<form", "(submit)", "<select")
_MUTATION = re.compile(
    r"this\.[\w.]+\.(push|splice|pop|shift|unshift|sort|reverse)\(|this\.[\w.]+(\+\+|--)|this\.\w+\.\w+\s*=(?![=>])"
)
_IMG_TAG = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_HEAVY_PIPE = re.compile(r"\|\s*(\w*(?:sort|filter|orderBy|groupBy|search)\w*)", re.IGNORECASE)
_IMPURE_PIPE = re.compile(r"\bpure\s*:\s*false\b")


def bundle_budget_bytes(value: str, unit: str | None) -> int:
    """Convert an angular.json budget size such as ``500kb`` to bytes."""
    return int(float(value) * _UNIT_BYTES[(unit or "").lower()])


def _zone_pollution(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    imported = {match.group(1) for match in _IMPORT_FROM.finditer(content)}
    polluting = sorted(lib for lib in imported if lib in ZONE_POLLUTING_LIBRARIES)
    if not polluting or "runOutsideAngular" in content:
        return
    for number, line in iter_lines(content):
        timer = next((method for method in TIMER_METHODS if method in line), None)
        if timer is not None:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=column_of(line, timer),
                message=f"{timer} used with zone-polluting library ({', '.join(polluting)}) outside runOutsideAngular",
                remediation="Wrap in NgZone.runOutsideAngular(() => { ... }) to prevent global change detection",
            )
    dom = _DOM_ACCESS.search(content)
    if dom:
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, dom.start()),
            column=column_for_offset(content, dom.start()),
            message="Direct DOM manipulation with zone-polluting library detected",
            remediation="Use Renderer2 or wrap DOM operations in runOutsideAngular",
        )


def _initial_bundle_budget_exceeded(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if ctx.kind is Kind.CONFIG:
        minimum = ctx.threshold("bundleBudget.minBytes")
        for match in _MAXIMUM_ERROR.finditer(content):
            size = bundle_budget_bytes(match.group(1), match.group(2))
            if size < minimum:
                yield RuleMatch(
                    severity=Severity.HIGH,
                    line=line_for_offset(content, match.start()),
                    column=column_for_offset(content, match.start()),
                    message=f"Bundle budget too restrictive: {match.group(1)}{match.group(2) or ''} ({size} bytes)",
                    remediation="Increase the bundle budget or implement lazy loading and code splitting",
                )
        return

    heavy = [
        match
        for match in _IMPORT_FROM.finditer(content)
        if any(match.group(1) == lib or match.group(1).startswith(f"{lib}/") for lib in HEAVY_LIBRARIES)
    ]
    if len(heavy) > ctx.threshold("bundleBudget.maxHeavyImports"):
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, heavy[0].start(1)),
            message=f"Multiple heavy library imports ({len(heavy)}) - potential bundle bloat",
            remediation="Lazy load heavy features and import only what is used",
        )

    routes = re.search(r"\bRoutes\b", content)
    if ctx.kind is Kind.ROUTING and routes and not _LAZY_ROUTE.search(content):
        yield RuleMatch(
            severity=Severity.HIGH,
            line=line_for_offset(content, routes.start()),
            column=column_for_offset(content, routes.start()),
            message="Routes without lazy loading detected",
            remediation="Use loadChildren or loadComponent with dynamic imports",
        )


def _onpush_misuse(ctx: RuleContext) -> Iterator[RuleMatch]:
    if "ChangeDetectionStrategy.OnPush" not in ctx.content:
        return
    for number, line in iter_lines(ctx.content):
        match = _MUTATION.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=match.start() + 1,
                message="In-place mutation in OnPush component is invisible to change detection",
                remediation="Assign a new reference or use signals for state",
            )


def _no_onpush_strategy(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in re.finditer(r"@Component\s*\(", content):
        close_index = find_balanced_end(content, match.end() - 1)
        decorator = content[match.end() : close_index if close_index > 0 else len(content)]
        if "ChangeDetectionStrategy.OnPush" in decorator:
            continue
        yield RuleMatch(
            severity=Severity.LOW,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message="Component uses the default change detection strategy",
            remediation="Set changeDetection: ChangeDetectionStrategy.OnPush",
        )


def _is_zoneless(content: str) -> bool:
    return any(provider in content for provider in ZONELESS_PROVIDERS)


def _zoneless_ngzone_stable(ctx: RuleContext) -> Iterator[RuleMatch]:
    if not _is_zoneless(ctx.content):
        return
    for number, line in iter_lines(ctx.content):
        for needle in ("onStable", "onMicrotaskEmpty"):
            if needle in line:
                yield RuleMatch(
                    severity=Severity.HIGH,
                    line=number,
                    column=column_of(line, needle),
                    message=f"NgZone.{needle} never emits in a zoneless application",
                    remediation="Use afterNextRender() or afterRender() instead",
                )
                break


def _zoneless_observable_subscriptions(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if not _is_zoneless(content) or "markForCheck" in content:
        return
    lines = ctx.lines
    for index, line in enumerate(lines):
        if ".subscribe(" not in line:
            continue
        body = "\n".join(lines[index : index + 3])
        if re.search(r"this\.\w+\s*=(?![=>])", body):
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=index + 1,
                column=column_of(line, ".subscribe("),
                message="Subscription updates plain fields in a zoneless application",
                remediation="Use toSignal() or the async pipe so the view is notified",
            )


def _zoneless_timer_updates(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if not _is_zoneless(content) or "markForCheck" in content:
        return
    for number, line in iter_lines(content):
        timer = next((method for method in ("setInterval", "setTimeout") if method in line), None)
        if timer is not None:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=column_of(line, timer),
                message=f"{timer} callback does not schedule change detection in a zoneless application",
                remediation="Update a signal or call ChangeDetectorRef.markForCheck() in the callback",
            )


def _defer_above_fold(ctx: RuleContext) -> Iterator[RuleMatch]:
    lines = ctx.lines
    window = ctx.threshold("defer.errorBlockWindowLines")
    for index, line in enumerate(lines):
        if "@defer" not in line or _DEFER_TRIGGER.search(line):
            continue
        block = "\n".join(lines[index : index + window])
        marker = next((pattern for pattern in _ABOVE_FOLD if pattern in block), None)
        if marker is not None:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=index + 1,
                column=column_of(line, "@defer"),
                message=f"@defer used on above-the-fold content ({marker})",
                remediation="Only defer below-the-fold content; render critical content immediately",
            )


def _hydration_incremental_trigger(ctx: RuleContext) -> Iterator[RuleMatch]:
    lines = ctx.lines
    window = ctx.threshold("defer.errorBlockWindowLines")
    for index, line in enumerate(lines):
        if "@defer" not in line or "hydrate" not in line:
            continue
        column = column_of(line, "@defer")
        block = "\n".join(lines[index + 1 : index + window])
        if "hydrate never" in line and any(marker in block for marker in _INTERACTIVE):
            yield RuleMatch(
                severity=Severity.HIGH,
                line=index + 1,
                column=column,
                message="Interactive content deferred with hydrate never",
                remediation="Use hydrate on interaction or hydrate on viewport for interactive content",
            )
        elif "hydrate on immediate" in line:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=index + 1,
                column=column,
                message="hydrate on immediate defeats incremental hydration",
                remediation="Render the content eagerly or pick a viewport, idle or interaction trigger",
            )
        elif not re.search(r"hydrate\s+(on|when|never)\b", line):
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=index + 1,
                column=column,
                message="Incremental hydration without a trigger",
                remediation="Add a hydrate on viewport or hydrate on idle trigger",
            )


def _heavy_computation_pipes(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        impure = _IMPURE_PIPE.search(line)
        if impure:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=impure.start() + 1,
                message="Impure pipe runs on every change detection cycle",
                remediation="Make the pipe pure or move the computation into a computed signal",
            )
            continue
        if not any(marker in line for marker in ("{{", "ngFor", "@for")):
            continue
        heavy = _HEAVY_PIPE.search(line)
        if heavy and "||" not in line[max(0, heavy.start() - 1) : heavy.start() + 2]:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=heavy.start() + 1,
                message=f"Template pipe '{heavy.group(1)}' sorts or filters collections during rendering",
                remediation="Pre-compute sorted or filtered data in the component",
            )


def _build_ngoptimized_image(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    images = list(_IMG_TAG.finditer(content))
    optimized = [match for match in images if "ngSrc" in match.group(0)]
    if optimized and not any(re.search(r"\bpriority\b", match.group(0)) for match in optimized):
        first = optimized[0]
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, first.start()),
            column=column_for_offset(content, first.start()),
            message="No NgOptimizedImage marked with priority - LCP image loads lazily",
            remediation="Add the priority attribute to the largest above-the-fold image",
        )
    if "NgOptimizedImage" not in content:
        return
    for match in images:
        tag = match.group(0)
        if "ngSrc" not in tag and re.search(r"\bsrc\s*=", tag):
            yield RuleMatch(
                severity=Severity.LOW,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message="Image uses src although NgOptimizedImage is imported",
                remediation="Use ngSrc with width and height",
            )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.PERFORMANCE_BUNDLE_METRICS,
        family=RuleFamily.PERFORMANCE,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.ZONE_POLLUTION, _zone_pollution),
    _rule(RuleId.INITIAL_BUNDLE_BUDGET_EXCEEDED, _initial_bundle_budget_exceeded),
    _rule(RuleId.ONPUSH_MISUSE, _onpush_misuse),
    _rule(RuleId.NO_ONPUSH_STRATEGY, _no_onpush_strategy),
    _rule(RuleId.ZONELESS_NGZONE_STABLE, _zoneless_ngzone_stable),
    _rule(RuleId.ZONELESS_OBSERVABLE_SUBSCRIPTIONS, _zoneless_observable_subscriptions),
    _rule(RuleId.ZONELESS_TIMER_UPDATES, _zoneless_timer_updates),
    _rule(RuleId.DEFER_ABOVE_FOLD, _defer_above_fold),
    _rule(RuleId.HYDRATION_INCREMENTAL_TRIGGER, _hydration_incremental_trigger),
    _rule(RuleId.HEAVY_COMPUTATION_PIPES, _heavy_computation_pipes),
    _rule(RuleId.BUILD_NGOPTIMIZED_IMAGE, _build_ngoptimized_image),
)
