# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Routing and navigation rules.

Route tables are read as text. A route's extent runs from its ``path:``
key to the next ``path:`` key, and nesting is the count of open square
brackets in front of the key, so ``children`` arrays sit one level deeper
than their parent.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass

from ngsmells.model import Category, Severity
from ngsmells.rules.base import (
    Rule,
    RuleContext,
    RuleFamily,
    RuleId,
    RuleMatch,
    column_for_offset,
    iter_lines,
    line_for_offset,
)

_PATH_KEY = re.compile(r"""\bpath\s*:\s*(['"`])([^'"`]*)\1""")
_CLASS_GUARD = re.compile(
    r"\bclass\s+(\w+)[^{]*\bimplements\b[^{]*\b(CanActivate|CanActivateChild|CanDeactivate|CanMatch|CanLoad|Resolve)\b"
)
_ROUTE_GUARD_KEYS = ("canActivate", "canMatch", "canActivateChild", "canLoad")
_PROTECTED_SEGMENTS = ("admin", "account", "settings", "profile", "dashboard", "billing")
_PARAM_STREAM = re.compile(
    r"\.(params|paramMap|queryParams|queryParamMap)\s*\.\s*(?:pipe\([^\n]*\)\s*\.\s*)?subscribe\("
)
_COMPONENT_KEY = re.compile(r"\bcomponent\s*:\s*(\w+)")
_NON_FEATURE_PATHS = ("", "**", "login", "logout", "home", "not-found", "404", "error")
_RENDER_MODE_ROUTE = re.compile(
    r"""\{\s*path\s*:\s*(['"`])([^'"`]*)\1[^{}]*?renderMode\s*:\s*RenderMode\.(\w+)"""
)
_DYNAMIC_SEGMENTS = (
    "dashboard",
    "profile",
    "account",
    "cart",
    "checkout",
    "search",
    "admin",
    "settings",
    "notifications",
    "live",
)
_STATIC_PATHS = ("", "about", "pricing", "terms", "privacy")


@dataclass(frozen=True)
class RouteEntry:
    """A ``path:`` key with its nesting level and source extent.

    Attributes:
        path: Route path literal.
        depth: Number of open square brackets before the key.
        start: Offset of the ``path`` key.
        end: Offset of the next route's key, or the end of the content.
    """

    path: str
    depth: int
    start: int
    end: int


def _bracket_depth(content: str, offset: int) -> int:
    segment = content[:offset]
    return segment.count("[") - segment.count("]")


def route_entries(content: str) -> list[RouteEntry]:
    """Return every ``path:`` entry of a route table in source order."""
    matches = list(_PATH_KEY.finditer(content))
    entries: list[RouteEntry] = []
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(content)
        entries.append(
            RouteEntry(
                path=match.group(2),
                depth=_bracket_depth(content, match.start()),
                start=match.start(),
                end=end,
            )
        )
    return entries


def _lowest_depth(content: str, start: int, end: int) -> int:
    """Return the lowest bracket depth reached between two offsets."""
    depth = _bracket_depth(content, start)
    lowest = depth
    for char in content[start:end]:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            lowest = min(lowest, depth)
    return lowest


def _first_segment(path: str) -> str:
    return path.strip("/").split("/", 1)[0].lower()


def _routing_functional_guards(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in _CLASS_GUARD.finditer(content):
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=f"Class-based guard '{match.group(1)}' implements {match.group(2)}",
            remediation="Replace the class with a functional guard such as CanActivateFn",
        )


def _routing_guards(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    guarded_depths: list[int] = []
    for entry in route_entries(content):
        guarded_depths = [depth for depth in guarded_depths if depth < entry.depth]
        body = content[entry.start : entry.end]
        if any(key in body for key in _ROUTE_GUARD_KEYS):
            guarded_depths.append(entry.depth)
            continue
        if guarded_depths:
            continue
        if _first_segment(entry.path) in _PROTECTED_SEGMENTS:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=line_for_offset(content, entry.start),
                column=column_for_offset(content, entry.start),
                message=f"Route '{entry.path}' has no guard",
                remediation="Protect the route with canActivate or canMatch",
            )


def _routing_input_binding(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "ActivatedRoute" in content:
        for number, line in iter_lines(content):
            match = _PARAM_STREAM.search(line)
            if match:
                yield RuleMatch(
                    severity=Severity.MEDIUM,
                    line=number,
                    column=match.start() + 1,
                    message=f"Route {match.group(1)} read through a subscription",
                    remediation="Enable withComponentInputBinding() and bind route parameters as inputs",
                )
    offset = content.find("provideRouter(")
    if offset >= 0 and "withComponentInputBinding" not in content:
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, offset),
            column=column_for_offset(content, offset),
            message="Router provided without component input binding",
            remediation="Add withComponentInputBinding() to provideRouter()",
        )


def _routing_lazy_loading(ctx: RuleContext) -> Iterator[RuleMatch]:
    lines = ctx.lines
    for index, line in enumerate(lines):
        component = _COMPONENT_KEY.search(line)
        if not component:
            continue
        for candidate in reversed(lines[max(0, index - 3) : index + 1]):
            path = _PATH_KEY.search(candidate)
            if path is None:
                continue
            if _first_segment(path.group(2)) not in _NON_FEATURE_PATHS and ":" not in path.group(2):
                yield RuleMatch(
                    severity=Severity.MEDIUM,
                    line=index + 1,
                    column=component.start() + 1,
                    message=f"Feature route '{path.group(2)}' loads {component.group(1)} eagerly",
                    remediation="Use loadComponent or loadChildren for feature routes",
                )
            break


def _routing_order(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    wildcard_depths: set[int] = set()
    previous_start = 0
    for entry in route_entries(content):
        floor = _lowest_depth(content, previous_start, entry.start)
        wildcard_depths = {depth for depth in wildcard_depths if depth <= floor}
        previous_start = entry.start
        if entry.depth in wildcard_depths:
            yield RuleMatch(
                severity=Severity.CRITICAL,
                line=line_for_offset(content, entry.start),
                column=column_for_offset(content, entry.start),
                message=f"Route '{entry.path}' is unreachable after the wildcard route",
                remediation="Move the '**' wildcard route to the end of the route array",
            )
        if entry.path == "**":
            wildcard_depths.add(entry.depth)


def _is_dynamic_path(path: str) -> bool:
    return ":" in path or any(
        segment in _DYNAMIC_SEGMENTS for segment in path.lower().strip("/").split("/")
    )


def _build_ssr_render_mode(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in _RENDER_MODE_ROUTE.finditer(content):
        path, mode = match.group(2), match.group(3)
        if mode == "Prerender" and _is_dynamic_path(path):
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message=f"Dynamic route '{path}' is prerendered",
                remediation="Use RenderMode.Server or RenderMode.Client for user-specific routes",
            )
        elif mode == "Server" and path.strip("/") in _STATIC_PATHS:
            yield RuleMatch(
                severity=Severity.LOW,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message=f"Static route '{path}' is rendered on every request",
                remediation="Use RenderMode.Prerender for static content",
            )


def _rule(rule_id: RuleId, check, category: Category = Category.ROUTING_NAVIGATION) -> Rule:
    return Rule(rule_id=rule_id, category=category, family=RuleFamily.ROUTING, check=check)


RULES: tuple[Rule, ...] = (
    _rule(RuleId.ROUTING_FUNCTIONAL_GUARDS, _routing_functional_guards),
    _rule(RuleId.ROUTING_GUARDS, _routing_guards),
    _rule(RuleId.ROUTING_INPUT_BINDING, _routing_input_binding),
    _rule(RuleId.ROUTING_LAZY_LOADING, _routing_lazy_loading, Category.PERFORMANCE_BUNDLE_METRICS),
    _rule(RuleId.ROUTING_ORDER, _routing_order),
    _rule(RuleId.BUILD_SSR_RENDER_MODE, _build_ssr_render_mode),
)
