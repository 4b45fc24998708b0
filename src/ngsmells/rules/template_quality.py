# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Template quality rules: readability, accessibility, security and bindings.

These rules read markup as text, so they apply equally to external
templates and to inline ``template:`` strings in component sources. Where a
rule needs to know how a name is declared it reads the evidence source:
the companion component for templates, the artifact itself otherwise.
"""

import re
from collections import Counter
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
from ngsmells.rules.template import evidence_source
from ngsmells.template_parser import VOID_ELEMENTS

_TAG = re.compile(r"""<(/?)([a-zA-Z][\w-]*)((?:[^>"']|"[^"]*"|'[^']*')*?)(/?)>""")
_ASYNC_STREAM = re.compile(r"([\w$.]+)\s*\|\s*async\b")
_INTERPOLATION = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_NG_IF_VALUE = re.compile(r"""\*ngIf\s*=\s*"([^"]*)\"""")
_TERNARY = re.compile(r"(?<![?])\?(?![.?])")
_LOGICAL = re.compile(r"&&|\|\|")
_IF_BLOCK = re.compile(r"@if\s*\(")
_IMG_WITHOUT_ALT = re.compile(r"<img\b(?![^>]*(?:\balt\s*=|\[alt\]|\[attr\.alt\]))[^>]*>", re.IGNORECASE)
_CLICKABLE_NON_INTERACTIVE = re.compile(
    r"<(div|span|li|td)\b(?=[^>]*\(click\))(?![^>]*\brole\s*=)(?![^>]*tabindex)[^>]*>",
    re.IGNORECASE,
)
_ICON_ONLY_BUTTON = re.compile(
    r"<button\b([^>]*)>\s*<(mat-icon|i|svg)\b[^>]*>[^<]*(?:<[^/][^>]*>[^<]*</[^>]+>\s*)*</\2>\s*</button>",
    re.IGNORECASE | re.DOTALL,
)
_I18N_MARKERS = ("i18n", "| translate", "$localize", "transloco", "*transloco", "translate:")
_STATIC_TEXT = re.compile(r">\s*([^<>{}@]*[A-Za-z]{2,}[^<>{}@]*?)\s*<")
_BYPASS_URL = re.compile(r"bypassSecurityTrust(?:Resource)?Url\(\s*([^)]*)\)")
_BOUND_URL = re.compile(r"""\[(href|src)\]\s*=\s*"([^"]+)\"""")
_URL_VALIDATION = re.compile(r"sanitize|isSafeUrl|validateUrl|isValidUrl|allowedHosts|startsWith\(\s*['\"]https")
_BANANA_BINDING = re.compile(r"\[\((\w+)\)\]")
_INPUT_PROPERTY = re.compile(r"@Input\([^)]*\)\s*(?:set\s+)?(\w+)")
_OUTPUT_PROPERTY = re.compile(r"@Output\([^)]*\)\s*(\w+)Change\b")
_MODEL_OBJECT_BINDING = re.compile(r"""\[\(ngModel\)\]\s*=\s*"(\w+)\.[\w.]+\"""")
_MEMBER_INTERPOLATION = re.compile(r"\{\{\s*(\w+)\.(\w+)")
_ENCAPSULATION_NONE = re.compile(r"ViewEncapsulation\.None\b")


def _is_literal(value: str) -> bool:
    return value.strip().startswith(("'", '"', "`"))


def _input_declared(source: str, name: str) -> bool:
    escaped = re.escape(name)
    return bool(
        re.search(rf"@Input\([^)]*\)\s*(?:set\s+)?{escaped}\b", source)
        or re.search(rf"\b{escaped}\s*=\s*input(?:\.required)?\s*[<(]", source)
    )


def _possibly_missing(source: str, name: str) -> bool:
    """Report whether ``name`` is optional, nullable or declared without a value."""
    escaped = re.escape(name)
    declaration = re.search(
        rf"^\s*(?:@Input\([^)]*\)\s*)?(?:public\s+|readonly\s+)*{escaped}\s*(\??!?)\s*:\s*([^;=\n]+)(=)?",
        source,
        re.MULTILINE,
    )
    if declaration is None:
        return False
    marker, type_text, initializer = declaration.groups()
    if "?" in marker or "null" in type_text or "undefined" in type_text:
        return True
    return initializer is None and "!" not in marker


def _async_pipe_multiple_subscriptions(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    limit = ctx.threshold("asyncPipe.maxSubscriptionsPerStream")
    seen: Counter[str] = Counter()
    for match in _ASYNC_STREAM.finditer(content):
        stream = match.group(1)
        seen[stream] += 1
        if seen[stream] == limit + 1:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message=f"Stream '{stream}' is subscribed multiple times with the async pipe",
                remediation="Subscribe once with @if (stream | async; as value) or convert with toSignal()",
            )


def _complex_template_logic(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    max_length = ctx.threshold("templateLogic.maxExpressionLength")
    expressions = [(match.start(), match.group(1)) for match in _INTERPOLATION.finditer(content)]
    expressions += [(match.start(), match.group(1)) for match in _NG_IF_VALUE.finditer(content)]
    for offset, expression in sorted(expressions):
        text = expression.strip()
        reasons = []
        if len(text) > max_length:
            reasons.append(f"{len(text)} characters")
        if len(_TERNARY.findall(text)) >= 2:
            reasons.append("nested ternaries")
        if len(_LOGICAL.findall(text)) >= 3:
            reasons.append("chained logical operators")
        if reasons:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=line_for_offset(content, offset),
                column=column_for_offset(content, offset),
                message="Complex template expression: " + ", ".join(reasons),
                remediation="Move the logic into a computed signal or component method result",
            )


def _nested_if_blocks(content: str, limit: int) -> Iterator[int]:
    spans: list[tuple[int, int]] = []
    for match in _IF_BLOCK.finditer(content):
        close_paren = find_balanced_end(content, match.end() - 1)
        open_brace = content.find("{", close_paren) if close_paren > 0 else -1
        close_brace = find_balanced_end(content, open_brace, "{", "}")
        if close_brace < 0:
            continue
        depth = 1 + sum(1 for start, end in spans if start < match.start() < end)
        if depth == limit + 1:
            yield match.start()
        spans.append((open_brace, close_brace))


def _nested_ngif_tags(content: str, limit: int) -> Iterator[int]:
    stack: list[tuple[str, bool]] = []
    for match in _TAG.finditer(content):
        closing, name, attributes, self_closing = match.groups()
        name = name.lower()
        if closing:
            while stack:
                if stack.pop()[0] == name:
                    break
            continue
        has_if = "*ngIf" in attributes
        if has_if:
            depth = 1 + sum(1 for _, flagged in stack if flagged)
            if depth == limit + 1:
                yield match.start()
        if not self_closing and name not in VOID_ELEMENTS:
            stack.append((name, has_if))


def _nested_ngif(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    limit = ctx.threshold("templateLogic.maxNestedIfDepth")
    offsets = sorted([*_nested_ngif_tags(content, limit), *_nested_if_blocks(content, limit)])
    for offset in offsets:
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, offset),
            column=column_for_offset(content, offset),
            message=f"Conditionals nested more than {limit} levels deep",
            remediation="Flatten conditions into a computed value or extract child components",
        )


def _ngif_ngfor_same_element(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in _TAG.finditer(content):
        attributes = match.group(3)
        if "*ngIf" in attributes and "*ngFor" in attributes:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message=f"*ngIf and *ngFor on the same <{match.group(2)}> element",
                remediation="Wrap the loop in <ng-container *ngIf> or use @if and @for blocks",
            )


def _missing_accessibility_attributes(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    checks = (
        (_IMG_WITHOUT_ALT, "Image without alt text", "Add an alt attribute (empty for decorative images)"),
        (
            _CLICKABLE_NON_INTERACTIVE,
            "Click handler on a non-interactive element without role or tabindex",
            "Use a <button> or add role and tabindex with keyboard handlers",
        ),
    )
    for pattern, message, remediation in checks:
        for match in pattern.finditer(content):
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message=message,
                remediation=remediation,
            )
    for match in _ICON_ONLY_BUTTON.finditer(content):
        if "aria-label" in match.group(1) or "aria-labelledby" in match.group(1):
            continue
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message="Icon-only button without an accessible name",
            remediation="Add aria-label to the button",
        )


def _no_i18n_integration(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if ctx.kind is not Kind.TEMPLATE and "template:" not in content:
        return
    if any(marker in content for marker in _I18N_MARKERS):
        return
    texts = list(_STATIC_TEXT.finditer(content))
    if len(texts) < ctx.threshold("i18n.minTextNodes"):
        return
    yield RuleMatch(
        severity=Severity.LOW,
        line=line_for_offset(content, texts[0].start(1)),
        column=column_for_offset(content, texts[0].start(1)),
        message=f"{len(texts)} hard-coded text nodes without internationalization",
        remediation="Mark user-facing text with i18n attributes or a translation pipe",
    )


def _trusting_external_urls(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in _BYPASS_URL.finditer(content):
        if _is_literal(match.group(1)):
            continue
        yield RuleMatch(
            severity=Severity.HIGH,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message="Dynamic URL marked as trusted with bypassSecurityTrust",
            remediation="Validate the URL against an allow-list before trusting it",
        )
    source = evidence_source(ctx) or ""
    if _URL_VALIDATION.search(source) or _URL_VALIDATION.search(content):
        return
    for match in _BOUND_URL.finditer(content):
        if _is_literal(match.group(2)):
            continue
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=f"[{match.group(1)}] bound to an unvalidated URL '{match.group(2)}'",
            remediation="Validate external URLs before binding them",
        )


def _two_way_binding_heavy_use(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    limit = ctx.threshold("twoWayBinding.maxBindings")
    bindings = list(_BANANA_BINDING.finditer(content))
    if len(bindings) > limit:
        extra = bindings[limit]
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, extra.start()),
            column=column_for_offset(content, extra.start()),
            message=f"{len(bindings)} two-way bindings in one template",
            remediation="Prefer one-way data flow with inputs and outputs or signals",
        )
    inputs = {match.group(1) for match in _INPUT_PROPERTY.finditer(content)}
    for match in _OUTPUT_PROPERTY.finditer(content):
        if match.group(1) in inputs:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=line_for_offset(content, match.start()),
                column=column_for_offset(content, match.start()),
                message=f"Hand-written two-way binding for '{match.group(1)}'",
                remediation="Use a model() signal for two-way bindable properties",
            )


def _two_way_object_binding(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    source = evidence_source(ctx)
    if not source:
        return
    for number, line in iter_lines(content):
        match = _MODEL_OBJECT_BINDING.search(line)
        if match and _input_declared(source, match.group(1)):
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=match.start() + 1,
                message=f"ngModel mutates a property of input '{match.group(1)}'",
                remediation="Copy the input into local state or emit changes through an output",
            )


def _template_null_safety(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    source = evidence_source(ctx)
    if not source:
        return
    for number, line in iter_lines(content):
        for match in _MEMBER_INTERPOLATION.finditer(line):
            root = match.group(1)
            if root == "this" or not _possibly_missing(source, root):
                continue
            if re.search(rf"""\*ngIf\s*=\s*"\s*{re.escape(root)}\b|@if\s*\(\s*{re.escape(root)}\b""", content):
                continue
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=match.start() + 1,
                message=f"'{root}.{match.group(2)}' is read without a null check",
                remediation=f"Use {root}?.{match.group(2)} or guard the block with @if ({root})",
            )


def _no_component_encapsulation(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        match = _ENCAPSULATION_NONE.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=match.start() + 1,
                message="Component view encapsulation disabled",
                remediation="Keep emulated encapsulation and expose styling hooks with CSS variables",
            )
        elif "::ng-deep" in line:
            yield RuleMatch(
                severity=Severity.LOW,
                line=number,
                column=column_of(line, "::ng-deep"),
                message="Deprecated ::ng-deep style piercing",
                remediation="Style children through CSS custom properties or their own inputs",
            )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.TEMPLATE_RENDERING,
        family=RuleFamily.TEMPLATE,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.ASYNC_PIPE_MULTIPLE_SUBSCRIPTIONS, _async_pipe_multiple_subscriptions),
    _rule(RuleId.COMPLEX_TEMPLATE_LOGIC, _complex_template_logic),
    _rule(RuleId.NESTED_NGIF, _nested_ngif),
    _rule(RuleId.NGIF_NGFOR_SAME_ELEMENT, _ngif_ngfor_same_element),
    _rule(RuleId.MISSING_ACCESSIBILITY_ATTRIBUTES, _missing_accessibility_attributes),
    _rule(RuleId.NO_I18N_INTEGRATION, _no_i18n_integration),
    _rule(RuleId.TRUSTING_EXTERNAL_URLS, _trusting_external_urls),
    _rule(RuleId.TWO_WAY_BINDING_HEAVY_USE, _two_way_binding_heavy_use),
    _rule(RuleId.TWO_WAY_OBJECT_BINDING, _two_way_object_binding),
    _rule(RuleId.TEMPLATE_NULL_SAFETY, _template_null_safety),
    _rule(RuleId.NO_COMPONENT_ENCAPSULATION, _no_component_encapsulation),
)
