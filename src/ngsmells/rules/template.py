# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Template and rendering rules driven by structural facts and markup."""

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
    iter_lines,
    line_for_offset,
)
from ngsmells.template_parser import find_call_names

_INLINE_CALL = re.compile(r"\{\{\s*(\w+)\s*\([^}]*\)\s*\}\}")
_BOUND_CALL = re.compile(r"""\[[\w.\-]+\]\s*=\s*(["'])([^"']*\([^"']*)\1""")
_NG_FOR_VALUE = re.compile(r"""\*ngFor\s*=\s*["']([^"']+)["']""")
_COLLECTION = re.compile(r"let\s+\w+\s+of\s+([^;\s|]+)")
_DATA_LIKE_NAME = re.compile(r"\w*(Data|List|Items|Collection|Results)", re.IGNORECASE)
_LEGACY_DIRECTIVE = re.compile(r"\*ng(If|For|SwitchCase|SwitchDefault|Switch)\b")
_SANITIZER = re.compile(
    r"DomSanitizer|bypassSecurityTrustHtml|sanitizeHtml|Sanitizer\.|\.sanitize\("
)
_BLOCK_IN_PARAGRAPH = re.compile(
    r"<p\b[^>]*>(?:(?!</p>).)*?<(div|section|article|header|footer|ul|ol|table|h[1-6]|form|nav)\b",
    re.DOTALL | re.IGNORECASE,
)
_TABLE = re.compile(r"<table\b[^>]*>(.*?)</table>", re.DOTALL | re.IGNORECASE)
_DOM_WRITE = re.compile(r"document\.\w+.*(\.innerHTML\b|\.appendChild\()")

_LEGACY_REPLACEMENTS = {
    "If": "@if",
    "For": "@for",
    "Switch": "@switch",
    "SwitchCase": "@case",
    "SwitchDefault": "@default",
}


def evidence_source(ctx: RuleContext) -> str | None:
    """Return the code backing the markup: the companion for templates, else the artifact."""
    if ctx.kind is Kind.TEMPLATE:
        return ctx.companion_source()
    return ctx.content


def collection_name(ng_for_expression: str) -> str | None:
    match = _COLLECTION.search(ng_for_expression)
    return match.group(1).removeprefix("this.") if match else None


def _is_in_loop(ctx: RuleContext, offset: int) -> bool:
    window = ctx.threshold("templateCall.loopWindowChars")
    context = ctx.content[max(0, offset - window) : offset + window]
    return "*ngFor" in context or "@for" in context


def _offset_for(ctx: RuleContext, line: int, column: int) -> int:
    if line < 1 or line > len(ctx.lines):
        return -1
    return sum(len(text) + 1 for text in ctx.lines[: line - 1]) + max(0, column - 1)


def _impure_template_call(ctx: RuleContext) -> Iterator[RuleMatch]:
    remediation = "Replace with signals, computed values, pure pipes or pre-computed properties"
    if ctx.kind is Kind.TEMPLATE and ctx.facts is not None:
        for site in ctx.facts.function_call_sites:
            offset = _offset_for(ctx, site.line, site.column)
            if offset < 0:
                offset = ctx.content.find(site.expression)
            in_loop = offset >= 0 and _is_in_loop(ctx, offset)
            yield RuleMatch(
                severity=Severity.CRITICAL if in_loop else Severity.HIGH,
                line=site.line or 1,
                column=site.column or 1,
                message=f"Function call in template: {site.expression}"
                + (" (inside a repeated block)" if in_loop else ""),
                remediation=remediation,
            )
        return
    for match in _INLINE_CALL.finditer(ctx.content):
        if not find_call_names(match.group(0)[2:-2]):
            continue
        in_loop = _is_in_loop(ctx, match.start())
        yield RuleMatch(
            severity=Severity.CRITICAL if in_loop else Severity.HIGH,
            line=line_for_offset(ctx.content, match.start()),
            column=column_for_offset(ctx.content, match.start()),
            message=f"Function call '{match.group(0)}' in template binding",
            remediation=remediation,
        )


def _template_method_call(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        for match in _BOUND_CALL.finditer(line):
            if find_call_names(match.group(2)):
                yield RuleMatch(
                    severity=Severity.HIGH,
                    line=number,
                    column=match.start() + 1,
                    message=f"Method call in property binding: {match.group(2).strip()}",
                    remediation="Bind to a signal, computed value or pure pipe instead",
                )
                break


def _large_collection_signal(source: str, collection: str) -> bool:
    if collection not in source:
        return False
    escaped = re.escape(collection)
    patterns = (
        rf"{escaped}\.length\s*>\s*\d+",
        r"Array\(\d+\)",
        r"\w+(Data|List|Items|Collection|Results)\b",
        r"\w+\$",
        r"\.get\(|httpClient\.|\.subscribe\(",
    )
    return any(re.search(pattern, source, re.IGNORECASE) for pattern in patterns)


def ng_for_loops(ctx: RuleContext) -> Iterator[tuple[int, int, str]]:
    """Yield ``(line, column, expression)`` for each ``*ngFor`` in the artifact.

    Templates are gated on the parsed structural directives. Expressions may
    span several lines.
    """
    facts = ctx.facts
    if facts is not None and (
        facts.structural_directive_count == 0
        or not any(directive.name == "*ngFor" for directive in facts.structural_directives)
    ):
        return
    content = ctx.content
    for match in _NG_FOR_VALUE.finditer(content):
        yield (
            line_for_offset(content, match.start()),
            column_for_offset(content, match.start()),
            match.group(1),
        )


def _missing_track_by(ctx: RuleContext) -> Iterator[RuleMatch]:
    source = evidence_source(ctx)
    for line, column, expression in ng_for_loops(ctx):
        if "trackBy" in expression:
            continue
        collection = collection_name(expression)
        large = bool(source and collection and _large_collection_signal(source, collection))
        yield RuleMatch(
            severity=Severity.HIGH if large else Severity.MEDIUM,
            line=line,
            column=column,
            message="*ngFor without trackBy function - list updates re-render every row",
            remediation='Add a trackBy function: *ngFor="let item of items; trackBy: trackById"',
        )


def estimate_list_size(ctx: RuleContext, source: str, collection: str) -> int:
    """Estimate how many items a collection holds from code evidence."""
    escaped = re.escape(collection)
    explicit = (
        rf"{escaped}\s*[:=][^;\n]*?(?:new\s+)?Array\((\d+)\)",
        rf"{escaped}\s*[:=][^;\n]*?Array\.from\(\{{\s*length:\s*(\d+)",
        rf"Array\((\d+)\).*{escaped}",
        rf"{escaped}\.length\s*(?:>|===)\s*(\d+)",
    )
    minimum = ctx.threshold("largeList.minItems")
    for pattern in explicit:
        match = re.search(pattern, source)
        if match and int(match.group(1)) > minimum:
            return int(match.group(1))
    if _DATA_LIKE_NAME.fullmatch(collection.rstrip("$")):
        return ctx.threshold("largeList.dataSourceEstimate")
    if f"{collection}$" in source or "httpClient." in source or ".subscribe(" in source:
        return ctx.threshold("largeList.streamEstimate")
    return 0


def _large_list_without_virtualization(ctx: RuleContext) -> Iterator[RuleMatch]:
    if "cdk-virtual-scroll" in ctx.content:
        return
    source = evidence_source(ctx)
    if not source:
        return
    critical = ctx.threshold("largeList.criticalItems")
    high = ctx.threshold("largeList.highItems")
    for line, column, expression in ng_for_loops(ctx):
        collection = collection_name(expression)
        size = estimate_list_size(ctx, source, collection) if collection else 0
        if size <= 0:
            continue
        if size > critical:
            severity = Severity.CRITICAL
        elif size > high:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        yield RuleMatch(
            severity=severity,
            line=line,
            column=column,
            message=f"Large list (~{size} items) rendered without virtualization",
            remediation="Use @angular/cdk/scrolling CdkVirtualScrollViewport",
        )


def _hydration_mismatch(ctx: RuleContext) -> Iterator[RuleMatch]:
    facts = ctx.facts
    if facts is None:
        return
    if facts.nested_anchor_tags:
        detail = "Nested anchor tags detected - hydration mismatch risk"
        if facts.dynamic_content_detected:
            detail += "; template also renders random or clock values"
        yield RuleMatch(
            severity=Severity.CRITICAL,
            line=1,
            message=detail,
            remediation="Fix the HTML structure so anchors are never nested",
        )
    elif facts.dynamic_content_detected:
        yield RuleMatch(
            severity=Severity.HIGH,
            line=1,
            message="Dynamic or random data in template - SSR hydration mismatch",
            remediation="Compute such values once in component logic and transfer them to the client",
        )


def _unsafe_inner_html(ctx: RuleContext) -> Iterator[RuleMatch]:
    if ctx.facts is not None and not ctx.facts.unsafe_inner_html:
        return
    window = ctx.threshold("innerHtml.sanitizerWindowLines")
    companion = ctx.companion_source() if ctx.kind is Kind.TEMPLATE else None
    companion_sanitizes = bool(companion and _SANITIZER.search(companion))
    lines = ctx.lines
    for index, line in enumerate(lines):
        if "[innerHTML]" not in line:
            continue
        context = "\n".join(lines[max(0, index - window) : index + window])
        sanitized = companion_sanitizes or bool(_SANITIZER.search(context))
        yield RuleMatch(
            severity=Severity.HIGH if sanitized else Severity.CRITICAL,
            line=index + 1,
            column=column_of(line, "[innerHTML]"),
            message="innerHTML binding detected - verify sanitization is adequate"
            if sanitized
            else "Unsafe innerHTML binding - XSS vulnerability",
            remediation="Prefer text interpolation or sanitize through DomSanitizer",
        )


def _control_flow_deprecated(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        found = _LEGACY_DIRECTIVE.findall(line)
        if not found:
            continue
        names = list(dict.fromkeys(found))
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=number,
            column=line.find("*ng") + 1,
            message="Deprecated structural directive "
            + ", ".join(f"*ng{name}" for name in names),
            remediation="Migrate to built-in control flow: "
            + ", ".join(_LEGACY_REPLACEMENTS[name] for name in names),
        )


def _nested_same_tag(content: str, tag: str) -> int:
    """Return the offset where ``tag`` is opened inside itself, or -1."""
    depth = 0
    for match in re.finditer(rf"<(/?){tag}\b[^>]*?(/?)>", content, re.IGNORECASE):
        if match.group(1):
            depth = max(0, depth - 1)
        elif not match.group(2):
            depth += 1
            if depth > 1:
                return match.start()
    return -1


def _hydration_invalid_html(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    remediation = "Fix the HTML structure so server and client DOM trees match"
    paragraph = _BLOCK_IN_PARAGRAPH.search(content)
    if paragraph:
        yield RuleMatch(
            severity=Severity.CRITICAL,
            line=line_for_offset(content, paragraph.start()),
            message=f"Invalid HTML structure: <{paragraph.group(1)}> inside <p>",
            remediation=remediation,
        )
    for table in _TABLE.finditer(content):
        body = table.group(1).lower()
        if "<tr" in body and "<tbody" not in body:
            yield RuleMatch(
                severity=Severity.CRITICAL,
                line=line_for_offset(content, table.start()),
                message="Invalid HTML structure: table rows without <tbody>",
                remediation=remediation,
            )
    for tag in ("button", "form"):
        offset = _nested_same_tag(content, tag)
        if offset >= 0:
            yield RuleMatch(
                severity=Severity.CRITICAL,
                line=line_for_offset(content, offset),
                message=f"Invalid HTML structure: nested <{tag}> elements",
                remediation=remediation,
            )
    if ctx.kind is Kind.TEMPLATE or "isPlatformBrowser" in content or "afterNextRender" in content:
        return
    for number, line in iter_lines(content):
        if _DOM_WRITE.search(line):
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=column_of(line, "document."),
                message="Direct DOM manipulation outside the renderer breaks hydration",
                remediation="Use Renderer2 or run the code in afterNextRender()",
            )


def _hydration_missing_event_replay(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "provideClientHydration(" not in content or "withEventReplay(" in content:
        return
    offset = content.find("provideClientHydration(")
    yield RuleMatch(
        severity=Severity.MEDIUM,
        line=line_for_offset(content, offset),
        column=column_for_offset(content, offset),
        message="Client hydration enabled without event replay",
        remediation="Add withEventReplay() to provideClientHydration()",
    )


def _defer_error_blocks(ctx: RuleContext) -> Iterator[RuleMatch]:
    lines = ctx.lines
    window = ctx.threshold("defer.errorBlockWindowLines")
    for index, line in enumerate(lines):
        if "@defer" not in line:
            continue
        has_error_block = False
        for candidate in lines[index : index + window]:
            if "@error" in candidate:
                has_error_block = True
                break
            if "}" in candidate and "@" not in candidate:
                break
        if not has_error_block:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=index + 1,
                column=column_of(line, "@defer"),
                message="@defer block without @error block",
                remediation="Add an @error block to handle deferred loading failures",
            )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.TEMPLATE_RENDERING,
        family=RuleFamily.TEMPLATE,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.IMPURE_TEMPLATE_CALL, _impure_template_call),
    _rule(RuleId.TEMPLATE_METHOD_CALL, _template_method_call),
    _rule(RuleId.MISSING_TRACKBY, _missing_track_by),
    _rule(RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION, _large_list_without_virtualization),
    _rule(RuleId.HYDRATION_MISMATCH, _hydration_mismatch),
    _rule(RuleId.UNSAFE_INNER_HTML, _unsafe_inner_html),
    _rule(RuleId.CONTROL_FLOW_DEPRECATED, _control_flow_deprecated),
    _rule(RuleId.HYDRATION_INVALID_HTML, _hydration_invalid_html),
    _rule(RuleId.HYDRATION_MISSING_EVENT_REPLAY, _hydration_missing_event_replay),
    _rule(RuleId.DEFER_ERROR_BLOCKS, _defer_error_blocks),
)
