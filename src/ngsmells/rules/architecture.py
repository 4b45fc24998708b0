# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Architecture and dependency-injection rules."""

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
    count_imports,
    find_balanced_end,
    iter_lines,
    line_for_offset,
)

_CLASS_NAME = re.compile(r"export\s+(?:default\s+)?(?:abstract\s+)?class\s+(\w+)")
_CONSTRUCTOR = re.compile(r"\bconstructor\s*\(")
_PARAMETER = re.compile(
    r"(?:@\w+\([^)]*\)\s*)*(?:(?:private|public|protected|readonly)\s+)*\w+\s*[?!]?\s*:\s*(\w+)"
)
_INJECT_CALL = re.compile(r"\binject\(\s*(\w+)")
_RE_EXPORT = re.compile(r"^\s*export\s+.*\bfrom\s+['\"][^'\"]*['\"]", re.MULTILINE)
_ROOT_INJECTABLE = re.compile(
    r"@Injectable\(\s*\{\s*providedIn\s*:\s*['\"]root['\"]\s*,?\s*\}\s*\)"
)
_PROVIDERS = re.compile(r"\bproviders\s*:\s*\[")
_DATA_ACCESS = re.compile(r"\bHttpClient\b|\bStore\b|\binject\(\s*\w+Service\b|:\s*\w+Service\b")


@dataclass(frozen=True)
class Dependency:
    """Injected type and the offset of the injection site."""

    type_name: str
    offset: int


def extract_class_name(content: str) -> str | None:
    match = _CLASS_NAME.search(content)
    return match.group(1) if match else None


def extract_dependencies(content: str) -> list[Dependency]:
    """Collect constructor parameter types and ``inject(X)`` targets.

    Args:
        content: TypeScript source.

    Returns:
        Dependencies in source order.
    """
    dependencies: list[Dependency] = []
    constructor = _CONSTRUCTOR.search(content)
    if constructor:
        open_index = constructor.end() - 1
        close_index = find_balanced_end(content, open_index)
        if close_index > open_index:
            for match in _PARAMETER.finditer(content, open_index + 1, close_index):
                dependencies.append(Dependency(match.group(1), match.start(1)))
    for match in _INJECT_CALL.finditer(content):
        dependencies.append(Dependency(match.group(1), match.start(1)))
    return sorted(dependencies, key=lambda dependency: dependency.offset)


def _god_component(ctx: RuleContext) -> Iterator[RuleMatch]:
    imports = count_imports(ctx.content)
    lines = len(ctx.lines)
    if imports <= ctx.threshold("godComponent.maxImports") and lines <= ctx.threshold(
        "godComponent.maxLines"
    ):
        return
    critical = imports > ctx.threshold("godComponent.maxImportsCritical") or lines > ctx.threshold(
        "godComponent.maxLinesCritical"
    )
    yield RuleMatch(
        severity=Severity.CRITICAL if critical else Severity.HIGH,
        line=1,
        message=f"Component has {imports} imports and {lines} lines - potential god component",
        remediation="Split into smaller, focused components",
    )


def _provider_pollution(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if not _PROVIDERS.search(content):
        return
    for match in _ROOT_INJECTABLE.finditer(content):
        class_match = _CLASS_NAME.search(content, match.end())
        name = class_match.group(1) if class_match else "service"
        provided = re.search(rf"providers\s*:\s*\[[^\]]*\b{re.escape(name)}\b", content)
        if class_match and not provided:
            continue
        yield RuleMatch(
            severity=Severity.CRITICAL,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=f"Root-provided service '{name}' declared in component providers",
            remediation="Remove from providers array - service is already singleton",
        )


def _circular_dependency_injection(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    class_name = extract_class_name(content)
    if class_name:
        for dependency in extract_dependencies(content):
            line = line_for_offset(content, dependency.offset)
            if dependency.type_name == class_name:
                yield RuleMatch(
                    severity=Severity.CRITICAL,
                    line=line,
                    column=column_for_offset(content, dependency.offset),
                    message=f"Service '{class_name}' injects itself - circular dependency",
                    remediation="Extract shared logic to separate service or use Injector for lazy injection",
                )
            elif dependency.type_name.endswith("Service") and re.search(
                rf"\b{re.escape(class_name)}\.\w+\(", content
            ):
                yield RuleMatch(
                    severity=Severity.HIGH,
                    line=line,
                    column=column_for_offset(content, dependency.offset),
                    message=f"Potential circular dependency: {class_name} -> {dependency.type_name}",
                    remediation="Review dependency chain or use lazy injection with Injector",
                )
    exports = list(_RE_EXPORT.finditer(content))
    if len(exports) > ctx.threshold("barrel.maxReExports"):
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, exports[0].start()),
            message=f"Large barrel export ({len(exports)} re-exports) - potential circular dependency",
            remediation="Split barrel exports or use direct imports",
        )


def _smart_dumb_violation(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "@Input()" not in content or not _DATA_ACCESS.search(content):
        return
    for number, line in iter_lines(content):
        if "@Input()" in line:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=line.find("@Input()") + 1,
                message="Presentational component also injects data access services",
                remediation="Split into smart (container) and dumb (presentational) components",
            )
            return


def _defer_non_standalone(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "@defer" not in content:
        return
    for match in re.finditer(r"standalone\s*:\s*false", content):
        yield RuleMatch(
            severity=Severity.HIGH,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message="@defer used alongside non-standalone components",
            remediation="Convert deferred components to standalone components",
        )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.ARCHITECTURE_DEPENDENCY_INJECTION,
        family=RuleFamily.ARCHITECTURE,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.GOD_COMPONENT, _god_component),
    _rule(RuleId.PROVIDER_POLLUTION, _provider_pollution),
    _rule(RuleId.CIRCULAR_DEPENDENCY_INJECTION, _circular_dependency_injection),
    _rule(RuleId.SMART_DUMB_VIOLATION, _smart_dumb_violation),
    _rule(RuleId.DEFER_NON_STANDALONE, _defer_non_standalone),
)
