# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Reactivity rules for RxJS subscriptions and Angular signals.

The effect rules share a per-artifact line state machine: a line containing
``effect(`` enters the effect body and a line containing ``});`` leaves it.
The state never outlives a single rule evaluation.
"""

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
    has_inline_template,
    iter_lines,
    line_for_offset,
)

_SUBSCRIBE = re.compile(r"\.subscribe\s*\(")
_SIGNAL_READ = re.compile(r"\b(\w+)\(\)")
_NOT_SIGNALS = frozenset({"effect", "untracked", "computed", "signal", "super"})
_READ_ONLY_MARKERS = ("console.", "return ", "if (", "else if (", "&&", "||", "===", "!==", " < ", " > ", "<=", ">=")
_ASSIGNMENT = re.compile(
    r"^\s*(?:(?:const|let|var)\s+)?(?:this\.)?[\w.$]+\s*(?::[^=]+)?=(?![=>])"
)
_CLEANUP_MARKERS = (
    "takeUntil(",
    "takeUntilDestroyed(",
    "unsubscribe()",
    "DestroyRef",
    "ngOnDestroy",
)
_SUBSCRIPTION_FIELD = re.compile(r"^\s*(?:(?:private|public|protected|readonly)\s+)*(\w*[Ss]ubscription\w*|\w+Sub)\s*[!?]?\s*[:=]")
_SUBJECT_FIELD = re.compile(r"=\s*new\s+(?:Behavior|Replay|Async)?Subject\b")
_PUBLIC_SUBJECT = re.compile(
    r"^\s*(?:public\s+)?(?:readonly\s+)?\w+\$?\s*(?::\s*[^=]+)?=\s*new\s+(?:Behavior|Replay|Async)?Subject\b"
    r"|\bpublic\s+(?:readonly\s+)?\w+\$?\s*:\s*(?:Behavior|Replay|Async)?Subject<"
)
_UNBOUNDED_REPLAY = re.compile(r"new\s+ReplaySubject(?:<[^>]*>)?\(\s*\)")
_PROPERTY_FROM_SUBSCRIBE = re.compile(r"this\.(\w+)\s*=.*\.subscribe\(")
_SUBSCRIBE_CALLBACK = re.compile(r"\.subscribe\(\s*\(?\s*(\w+)(?:\s*:\s*[\w<>\[\]]+)?\s*\)?\s*=>")
_WRITE_REQUEST = re.compile(r"\.(post|put|patch|delete)\s*[<(]|\b(save|submit|create|update)\w*\(")
_RESOURCE_CALL = re.compile(r"\bresource\s*[<(]")


def _effect_lines(ctx: RuleContext) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` for lines inside an ``effect(`` body."""
    inside = False
    for number, line in iter_lines(ctx.content):
        if "effect(" in line:
            inside = True
        if inside:
            yield number, line
        if inside and "});" in line:
            inside = False


def _signal_write_in_effect(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in _effect_lines(ctx):
        if ".set(" in line or ".update(" in line:
            needle = ".set(" if ".set(" in line else ".update("
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=column_of(line, needle),
                message="Signal write detected inside effect - potential infinite loop",
                remediation="Use computed() for derived state or untracked() for read-only access",
            )


def _untracked_signal_read(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in _effect_lines(ctx):
        stripped = line.strip()
        if "untracked(" in line or stripped.startswith(("//", "/*", "*")):
            continue
        reads = [match for match in _SIGNAL_READ.finditer(line) if match.group(1) not in _NOT_SIGNALS]
        if not reads or not any(marker in line for marker in _READ_ONLY_MARKERS):
            continue
        yield RuleMatch(
            severity=Severity.HIGH,
            line=number,
            column=reads[0].start() + 1,
            message=f"Signal read '{reads[0].group(0)}' inside effect may create unintended dependency",
            remediation="Wrap in untracked(() => signal()) if read-only access is intended",
        )


def _nested_subscription_hell(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    max_depth = ctx.threshold("subscriptionHell.maxDepth")
    high = ctx.threshold("subscriptionHell.highDepth")
    critical = ctx.threshold("subscriptionHell.criticalDepth")
    reported: list[tuple[int, int]] = []
    for match in _SUBSCRIBE.finditer(content):
        if any(start < match.start() < end for start, end in reported):
            continue
        open_index = match.end() - 1
        close_index = find_balanced_end(content, open_index)
        if close_index < 0:
            close_index = len(content)
        nested = len(_SUBSCRIBE.findall(content, open_index + 1, close_index))
        depth = nested + 1
        if depth <= max_depth:
            continue
        if depth >= critical:
            severity = Severity.CRITICAL
        elif depth >= high:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        reported.append((match.start(), close_index))
        yield RuleMatch(
            severity=severity,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=f"Nested subscription hell: {depth} levels deep",
            remediation="Use RxJS operators (switchMap, forkJoin, combineLatest) and async pipe instead of nested subscriptions",
        )


def _memory_leak_subscription(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    has_cleanup = any(marker in content for marker in _CLEANUP_MARKERS)
    if not has_cleanup:
        for number, line in iter_lines(content):
            if ".subscribe(" not in line or _ASSIGNMENT.search(line):
                continue
            if "take(1)" in line or "first()" in line or ".add(" in line:
                continue
            yield RuleMatch(
                severity=Severity.CRITICAL,
                line=number,
                column=column_of(line, ".subscribe("),
                message="Unassigned subscription without proper cleanup mechanism",
                remediation="Use takeUntilDestroyed(), unsubscribe in ngOnDestroy or use the async pipe",
            )

    if "implements" in content and "OnDestroy" in content and "unsubscribe()" not in content and "takeUntil" not in content:
        for number, line in iter_lines(content):
            if _SUBSCRIPTION_FIELD.search(line):
                yield RuleMatch(
                    severity=Severity.HIGH,
                    line=number,
                    message="Component implements OnDestroy but subscriptions are not cleaned up",
                    remediation="Add unsubscribe() calls or the takeUntil pattern in ngOnDestroy",
                )
                break

    if "ngOnDestroy" in content and ".complete()" not in content:
        for number, line in iter_lines(content):
            if _SUBJECT_FIELD.search(line):
                yield RuleMatch(
                    severity=Severity.MEDIUM,
                    line=number,
                    message="Subject declared but never completed",
                    remediation="Call .complete() on subjects in ngOnDestroy",
                )
                break


def _missing_async_pipe(ctx: RuleContext) -> Iterator[RuleMatch]:
    if not has_inline_template(ctx.content):
        return
    lines = ctx.lines
    for index, line in enumerate(lines):
        if ".subscribe(" not in line or line.lstrip().startswith("//"):
            continue
        assigned = _PROPERTY_FROM_SUBSCRIBE.search(line)
        callback = _SUBSCRIBE_CALLBACK.search(line)
        if assigned is None and callback is not None:
            parameter = re.escape(callback.group(1))
            body = "\n".join(lines[index : index + 3])
            assigned = re.search(rf"this\.(\w+)\s*=\s*{parameter}\b", body)
        if assigned is None:
            continue
        yield RuleMatch(
            severity=Severity.MEDIUM,
            line=index + 1,
            column=column_of(line, ".subscribe("),
            message=f"Manual subscription feeding 'this.{assigned.group(1)}' where async pipe could be used",
            remediation="Use the async pipe or toSignal() instead of a manual subscription",
        )


def _subject_misuse(ctx: RuleContext) -> Iterator[RuleMatch]:
    for number, line in iter_lines(ctx.content):
        if _UNBOUNDED_REPLAY.search(line):
            yield RuleMatch(
                severity=Severity.HIGH,
                line=number,
                column=column_of(line, "ReplaySubject"),
                message="ReplaySubject without buffer limit",
                remediation="Specify buffer size: new ReplaySubject(1)",
            )
        stripped = line.lstrip()
        if stripped.startswith(("private", "protected", "#")):
            continue
        if _PUBLIC_SUBJECT.search(line):
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=len(line) - len(stripped) + 1,
                message="Public Subject exposure",
                remediation="Keep the Subject private and expose it with asObservable()",
            )


def _switchmap_data_loss(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    form_context = "valueChanges" in content or "form" in content.lower()
    for match in re.finditer(r"\bswitchMap\(", content):
        close_index = find_balanced_end(content, match.end() - 1)
        span = content[match.end() : close_index if close_index > 0 else len(content)]
        if _WRITE_REQUEST.search(span):
            severity = Severity.HIGH
            message = "switchMap cancels in-flight write requests"
        elif form_context:
            severity = Severity.MEDIUM
            message = "switchMap may cancel in-flight requests triggered by user input"
        else:
            continue
        yield RuleMatch(
            severity=severity,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message=message,
            remediation="Use concatMap or exhaustMap when every emission must complete",
        )


def _signals_effect_derivation(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    for match in re.finditer(r"\beffect\(", content):
        close_index = find_balanced_end(content, match.end() - 1)
        body = content[match.end() : close_index if close_index > 0 else len(content)]
        if not re.search(r"\.set\([^;]*\b\w+\(\)", body):
            continue
        yield RuleMatch(
            severity=Severity.HIGH,
            line=line_for_offset(content, match.start()),
            column=column_for_offset(content, match.start()),
            message="Effect used to derive state from other signals",
            remediation="Use computed() for derived values",
        )


def _signals_linkedsignal_overuse(ctx: RuleContext) -> Iterator[RuleMatch]:
    content = ctx.content
    occurrences = list(re.finditer(r"\blinkedSignal\s*[<(]", content))
    if len(occurrences) <= ctx.threshold("signals.maxLinkedSignals"):
        return
    first = occurrences[0].start()
    yield RuleMatch(
        severity=Severity.MEDIUM,
        line=line_for_offset(content, first),
        column=column_for_offset(content, first),
        message=f"Excessive linkedSignal usage ({len(occurrences)})",
        remediation="Consider using computed() or model() instead",
    )


def _signals_resource_race(ctx: RuleContext) -> Iterator[RuleMatch]:
    if "abortSignal" in ctx.content:
        return
    for number, line in iter_lines(ctx.content):
        match = _RESOURCE_CALL.search(line)
        if match:
            yield RuleMatch(
                severity=Severity.MEDIUM,
                line=number,
                column=match.start() + 1,
                message="Resource loader ignores the abort signal",
                remediation="Pass abortSignal to the request so stale loads are cancelled",
            )


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.REACTIVITY_SIGNALS,
        family=RuleFamily.REACTIVITY,
        check=check,
    )


RULES: tuple[Rule, ...] = (
    _rule(RuleId.SIGNAL_WRITE_IN_EFFECT, _signal_write_in_effect),
    _rule(RuleId.UNTRACKED_SIGNAL_READ, _untracked_signal_read),
    _rule(RuleId.NESTED_SUBSCRIPTION_HELL, _nested_subscription_hell),
    _rule(RuleId.MEMORY_LEAK_SUBSCRIPTION, _memory_leak_subscription),
    _rule(RuleId.MISSING_ASYNC_PIPE, _missing_async_pipe),
    _rule(RuleId.SUBJECT_MISUSE, _subject_misuse),
    _rule(RuleId.SWITCHMAP_DATA_LOSS, _switchmap_data_loss),
    _rule(RuleId.SIGNALS_EFFECT_DERIVATION, _signals_effect_derivation),
    _rule(RuleId.SIGNALS_LINKEDSIGNAL_OVERUSE, _signals_linkedsignal_overuse),
    _rule(RuleId.SIGNALS_RESOURCE_RACE, _signals_resource_race),
)
