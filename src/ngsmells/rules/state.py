# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""State management rules for NgRx stores, selectors and effects."""

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
    column_of,
    find_balanced_end,
    iter_lines,
    line_for_offset,
)

_STATE_INTERFACE = re.compile(r"interface\s+(\w+State)\s*(?:extends[^{]*)?\{")
_PROPERTY = re.compile(r"^\s*(?:readonly\s+)?(\w+)\s*\??\s*:\s*([^;\n]+?)\s*;?\s*$", re.MULTILINE)
_SELECTOR = re.compile(r"export\s+const\s+(\w+)\s*=\s*createSelector\s*\(")
_SELECT_INPUT = re.compile(r"\bselect\w+")
_IDENTITY_PROJECTOR = re.compile(r"\(\s*(\w+)\s*(?::[^)]*)?\)\s*=>\s*\1\s*(?:[,)]|$)", re.MULTILINE)
_EXPENSIVE_OPERATION = re.compile(
    r"\.(filter|map|reduce|forEach|sort)\(\s*\(?\w+[^)]*\)?\s*=>\s*\{|\.(filter|map|reduce|forEach|sort)\([^}]*\w+\.\w+"
)
_RETURNED_OBJECT = re.compile(r"=>\s*\(?\s*\{([^{}]*)\}")
_UNMEMOIZED_SELECTOR = re.compile(
    r"export\s+const\s+(select\w+)\s*=\s*(?:\([^)]*\)\s*=>\s*)?\(\s*state\s*(?::\s*\w+)?\s*\)\s*(?::\s*[^=]+)?=>"
)
_INLINE_PROJECTOR = re.compile(r"\bselect\(\s*\(?\s*state\b[^)]*\)?\s*=>")
_NESTED_TYPE = re.compile(r"^\s*\w+\s*\??\s*:\s*(Array<\{|\{(?!\s*\[)|\w+\[\]\[\])", re.MULTILINE)
_NESTED_ENTITY = re.compile(r"Array<\{|:\s*\{(?!\s*\[)|\b[A-Z]\w*\[\]|:\s*[A-Z]\w*\s*;")
_STATE_MUTATION = re.compile(
    r"\bstate\.[\w.\[\]]+\s*(?:=(?![=>])|\.(?:push|pop|splice|shift|unshift|sort|reverse)\()"
)
_SELECT_CALL = re.compile(r"(?:\.|\b)select\(")
_REDUCER_ON = re.compile(r"\bon\(")

_ENTITY_PREFIXES = ("selected", "current", "active", "total", "num")
_ENTITY_SUFFIXES = ("byid", "ids", "id", "count", "total", "list", "array", "entities", "map")


@dataclass(frozen=True)
class StateProperty:
    """Property parsed from a state interface body."""

    name: str
    type_text: str


def entity_key(name: str) -> str:
    """Reduce a property name to the entity it stores.

    ``users``, ``selectedUser``, ``userIds`` and ``userCount`` all map to
    ``user``.
    """
    key = name.lower()
    for prefix in _ENTITY_PREFIXES:
        if key.startswith(prefix) and len(key) > len(prefix):
            key = key[len(prefix) :]
            break
    for suffix in _ENTITY_SUFFIXES:
        if key.endswith(suffix) and len(key) > len(suffix):
            key = key[: -len(suffix)]
            break
    if key.endswith("s") and len(key) > 1:
        key = key[:-1]
    return key


def parse_properties(body: str) -> list[StateProperty]:
    return [
        StateProperty(name=match.group(1), type_text=match.group(2).strip())
        for match in _PROPERTY.finditer(body)
    ]


def _is_array(type_text: str) -> bool:
    return "[]" in type_text or "Array<" in type_text


def entity_shape(prop: StateProperty) -> str:
    """Classify how a property stores its entity.

    Returns:
        One of ``"ids"``, ``"count"``, ``"collection"`` or ``"single"``.
    """
    name = prop.name.lower()
    if name.endswith(("ids", "id")):
        return "ids"
    if "count" in name or "total" in name or prop.type_text == "number":
        return "count"
    if _is_array(prop.type_text):
        return "collection"
    return "single"


def is_entity_duplication(group: list[StateProperty]) -> bool:
    """Report whether one entity is stored as a collection and in another redundant shape.

    The other shape is a parallel id list, a count or total, or a single
    selected item.
    """
    shapes = {entity_shape(prop) for prop in group}
    return "collection" in shapes and len(shapes) > 1


def _interface_bodies(content: str) -> Iterator[tuple[re.Match[str], str, int]]:
    """Yield each state interface with its body text and body start offset."""
    for match in _STATE_INTERFACE.finditer(content):
        open_index = match.end() - 1
        close_index = find_balanced_end(content, open_index, "{", "}")
        if close_index > open_index:
            yield match, content[open_index + 1 : close_index], open_index + 1


def _entity_duplication(ctx: RuleContext) -> Iterator[RuleMatch]:
    for match, body, _ in _interface_bodies(ctx.content):
        groups: dict[str, list[StateProperty]] = {}
        for prop in parse_properties(body):
            groups.setdefault(entity_key(prop.name), []).append(prop)
        duplicated = [
            f"{name} ({', '.join(prop.name for prop in group)})"
            for name, group in groups.items()
            if is_entity_duplication(group)
        ]
        if duplicated:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=line_for_offset(ctx.content, match.start()),
                column=column_for_offset(ctx.content, match.start()),
                message=f"Entity duplicated in {match.group(1)}: " + "; ".join(duplicated),
                remediation="Normalize state structure or use selectors for derived data",
            )


@dataclass(frozen=True)
class SelectorAnalysis:
    severity: Severity
    message: str
    remediation: str


def analyze_selector(ctx: RuleContext, name: str, body: str) -> SelectorAnalysis | None:
    """Classify one ``createSelector`` call body, or return ``None`` when focused."""
    if _IDENTITY_PROJECTOR.search(body):
        return SelectorAnalysis(
            Severity.CRITICAL,
            f"Selector '{name}' returns entire state object",
            "Create focused selectors that return only needed data",
        )
    inputs = [item for item in _SELECT_INPUT.findall(body) if item != name]
    if len(inputs) > ctx.threshold("selectors.maxInputs"):
        return SelectorAnalysis(
            Severity.HIGH,
            f"Selector '{name}' combines {len(inputs)} data sources",
            "Split into smaller, focused selectors",
        )
    if len(inputs) > 1 and _EXPENSIVE_OPERATION.search(body):
        return SelectorAnalysis(
            Severity.MEDIUM,
            f"Selector '{name}' performs expensive computations across multiple data sources",
            "Extract the computation to a separate memoized selector",
        )
    returned = _RETURNED_OBJECT.search(body)
    if returned:
        properties = [part for part in returned.group(1).split(",") if part.strip()]
        if len(properties) > ctx.threshold("selectors.maxReturnedProperties"):
            return SelectorAnalysis(
                Severity.MEDIUM,
                f"Selector '{name}' returns {len(properties)} properties - consider splitting",
                "Create separate selectors for each data requirement",
            )
    return None


def _broad_selectors(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in _SELECTOR.finditer(content):
        open_index = match.end() - 1
        close_index = find_balanced_end(content, open_index)
        if close_index < 0:
            continue
        analysis = analyze_selector(ctx, match.group(1), content[open_index + 1 : close_index])
        if analysis is None:
            continue
        yield RuleMatch(
            severity=analysis.severity,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=analysis.message,
            remediation=analysis.remediation,
        )


def _ngrx_effects_issues(ctx: RuleContext) -> Iterator[RuleMatch]:
    lines = ctx.lines
    if "createEffect(" not in ctx.content:
        return
    window = ctx.threshold("ngrx.effectErrorWindowLines")
    for index, line in enumerate(lines):
        if "createEffect(" in line:
            following = lines[index : index + window]
            if not any("catchError" in item or "retry" in item for item in following):
                yield RuleMatch(
                    severity=Severity.HIGH,
                    line=index + 1,
                    column=column_of(line, "createEffect("),
                    message="Effect without error handling",
                    remediation="Add catchError inside the flattening operator so the effect survives errors",
                )
        if ".subscribe(" in line:
            yield RuleMatch(
                severity=Severity.HIGH,
                line=index + 1,
                column=column_of(line, ".subscribe("),
                message="Manual subscription in effects file",
                remediation="Return the observable from createEffect instead of subscribing",
            )


def _ngrx_missing_memoization(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in _UNMEMOIZED_SELECTOR.finditer(content):
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=f"Selector '{match.group(1)}' is a plain function without memoization",
            remediation="Build the selector with createSelector",
        )
    for number, line in iter_lines(content):
        inline = _INLINE_PROJECTOR.search(line)
        if inline or (".pipe(map(" in line and "state =>" in line):
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=inline.start() + 1 if inline else column_of(line, ".pipe(map("),
                message="Inline state projection without memoization",
                remediation="Create memoized selector with createSelector",
            )


def _ngrx_non_normalized_state(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for _, body, body_offset in _interface_bodies(content):
        for match in _NESTED_TYPE.finditer(body):
            start = match.start(1)
            if match.group(1).endswith("[]"):
                nested = True
            else:
                open_index = body.find("{", start)
                close_index = find_balanced_end(body, open_index, "{", "}")
                block = body[open_index + 1 : close_index if close_index > 0 else len(body)]
                nested = bool(_NESTED_ENTITY.search(block))
            if not nested:
                continue
            offset = body_offset + match.start(1)
            yield RuleMatch(
                severity=Severity.HIGH,
                line=line_for_offset(content, offset),
                message="Deeply nested entities in state structure",
                remediation="Normalize state using the entity adapter pattern",
            )


def _ngrx_over_selecting(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    calls = list(_SELECT_CALL.finditer(content))
    if len(calls) <= ctx.threshold("ngrx.maxSelectCalls"):
        return
    yield RuleMatch(
        severity=Severity.MEDIUM,
        line=line_for_offset(content, calls[0].start()),
        column=column_for_offset(content, calls[0].start()),
        message=f"Too many select calls ({len(calls)}) in a single file",
        remediation="Create a combined selector or use a facade",
    )


def _ngrx_state_mutation(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    if "createReducer" not in content and not _REDUCER_ON.search(content):
        return
    for number, line in iter_lines(content):
        match = _STATE_MUTATION.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.CRITICAL,
                line=number,
                column=match.start() + 1,
                message="Direct state mutation in reducer",
                remediation="Return a new state object instead of mutating",
            )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.STATE_MANAGEMENT,
        family=RuleFamily.STATE,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.ENTITY_DUPLICATION, _entity_duplication),
    _rule(RuleId.BROAD_SELECTORS, _broad_selectors),
    _rule(RuleId.NGRX_EFFECTS_ISSUES, _ngrx_effects_issues),
    _rule(RuleId.NGRX_MISSING_MEMOIZATION, _ngrx_missing_memoization),
    _rule(RuleId.NGRX_NON_NORMALIZED_STATE, _ngrx_non_normalized_state),
    _rule(RuleId.NGRX_OVER_SELECTING, _ngrx_over_selecting),
    _rule(RuleId.NGRX_STATE_MUTATION, _ngrx_state_mutation),
)
