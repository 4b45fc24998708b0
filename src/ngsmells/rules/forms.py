# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Forms and validation rules."""

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
    find_balanced_end,
    iter_lines,
    line_for_offset,
)

_REACTIVE_MARKERS = ("[formControl]", "formControlName", "[formGroup]")
_UNTYPED_FORM = re.compile(
    r"\bUntypedForm(?:Group|Control|Array)\b|:\s*Form(?:Group|Control|Array)\b(?!\s*<)|\bForm(?:Group|Control|Array)<any>"
)
_VALUE_CHANGES_CLEANUP = ("takeUntil(", "takeUntilDestroyed(", "unsubscribe()")
_SUBMIT_HANDLER = re.compile(
    r"^\s*(?:async\s+)?(onSubmit|submit\w*|save\w*)\s*\([^)]*\)\s*(?::\s*[\w<>]+\s*)?\{",
    re.MULTILINE,
)
_FORM_RESET = re.compile(r"\.reset\(|resetForm\(|this\.\w*[fF]orm\w*\s*=(?![=>])")
_TWO_WAY_MODEL = re.compile(r"\[\(ngModel\)\]")
_MANUAL_VALIDATION = re.compile(r"\bvalidate\w*\s*\(|\bsubmitted\s*&&")


def _forms_mixed(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "ngModel" not in content or not any(marker in content for marker in _REACTIVE_MARKERS):
        return
    offset = content.find("ngModel")
    yield RuleMatch(
        severity=Severity.CRITICAL,
        line=line_for_offset(content, offset),
        column=column_for_offset(content, offset),
        message="Mixing template-driven and reactive forms",
        remediation="Choose one approach: template-driven (ngModel) or reactive (formControl)",
    )


def _forms_typed(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        match = _UNTYPED_FORM.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=match.start() + 1,
                message=f"Untyped form declaration: {match.group(0).lstrip(': ')}",
                remediation="Use typed forms such as FormGroup<{ name: FormControl<string> }>",
            )


def _forms_value_changes(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if any(marker in content for marker in _VALUE_CHANGES_CLEANUP):
        return
    lines = ctx.lines
    for index, line in enumerate(lines):
        if ".valueChanges" not in line:
            continue
        if any(".subscribe(" in candidate for candidate in lines[index : index + 4]):
            yield RuleMatch(
                severity=Severity.HIGH,
                line=index + 1,
                column=column_of(line, ".valueChanges"),
                message="valueChanges subscription without cleanup",
                remediation="Pipe through takeUntilDestroyed() or unsubscribe in ngOnDestroy",
            )


def _form_state_not_cleared(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "ngSubmit" not in content and "onSubmit" not in content:
        return
    if _FORM_RESET.search(content):
        return
    for match in _SUBMIT_HANDLER.finditer(content):
        open_index = match.end() - 1
        close_index = find_balanced_end(content, open_index, "{", "}")
        body = content[open_index : close_index if close_index > 0 else len(content)]
        if ".subscribe(" in body or "await " in body:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=line_for_offset(content, match.start(1)),
                column=column_for_offset(content, match.start(1)),
                message=f"Form data is not reset after '{match.group(1)}' completes",
                remediation="Reset the form (form.reset() or resetForm()) after a successful submit",
            )


def _template_driven_complex_forms(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    controls = list(_TWO_WAY_MODEL.finditer(content))
    if not controls:
        return
    limit = ctx.threshold("forms.maxTemplateDrivenControls")
    manual_validation = bool(_MANUAL_VALIDATION.search(content))
    if len(controls) <= limit and not (len(controls) > 1 and manual_validation):
        return
    detail = f"{len(controls)} ngModel controls"
    if manual_validation:
        detail += " with hand-written validation"
    yield RuleMatch(
        severity=Severity.MEDIUM,
        line=line_for_offset(content, controls[0].start()),
        column=column_for_offset(content, controls[0].start()),
        message=f"Complex template-driven form: {detail}",
        remediation="Use reactive forms with validators for complex forms",
    )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.FORMS_VALIDATION,
        family=RuleFamily.FORMS,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.FORMS_MIXED, _forms_mixed),
    _rule(RuleId.FORMS_TYPED, _forms_typed),
    _rule(RuleId.FORMS_VALUE_CHANGES, _forms_value_changes),
    _rule(RuleId.FORM_STATE_NOT_CLEARED, _form_state_not_cleared),
    _rule(RuleId.TEMPLATE_DRIVEN_COMPLEX_FORMS, _template_driven_complex_forms),
)
