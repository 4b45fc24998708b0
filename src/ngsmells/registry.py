# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Rule registry and dispatcher mapping artifact kinds to rules."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ngsmells.companion import CompanionLookup, NullCompanionLookup
from ngsmells.config import RuleConfig
from ngsmells.model import (
    ClassifiedArtifact,
    Finding,
    Kind,
    Location,
    RuleFailure,
    StructuralFacts,
    finding_id,
)
from ngsmells.rules import ALL_RULES
from ngsmells.rules.base import Rule, RuleContext, RuleId, RuleMatch

logger = logging.getLogger(__name__)

_TEMPLATE_QUALITY = (
    RuleId.ASYNC_PIPE_MULTIPLE_SUBSCRIPTIONS,
    RuleId.COMPLEX_TEMPLATE_LOGIC,
    RuleId.NESTED_NGIF,
    RuleId.NGIF_NGFOR_SAME_ELEMENT,
    RuleId.MISSING_ACCESSIBILITY_ATTRIBUTES,
    RuleId.NO_I18N_INTEGRATION,
    RuleId.TRUSTING_EXTERNAL_URLS,
    RuleId.TWO_WAY_BINDING_HEAVY_USE,
    RuleId.TWO_WAY_OBJECT_BINDING,
    RuleId.TEMPLATE_NULL_SAFETY,
    RuleId.NO_COMPONENT_ENCAPSULATION,
)

_ZONELESS = (
    RuleId.ZONELESS_NGZONE_STABLE,
    RuleId.ZONELESS_OBSERVABLE_SUBSCRIPTIONS,
    RuleId.ZONELESS_TIMER_UPDATES,
)

_COMPONENT_RULES: tuple[RuleId, ...] = (
    RuleId.IMPURE_TEMPLATE_CALL,
    RuleId.TEMPLATE_METHOD_CALL,
    RuleId.MISSING_TRACKBY,
    RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION,
    RuleId.UNSAFE_INNER_HTML,
    RuleId.CONTROL_FLOW_DEPRECATED,
    RuleId.HYDRATION_INVALID_HTML,
    RuleId.HYDRATION_MISSING_EVENT_REPLAY,
    RuleId.DEFER_ERROR_BLOCKS,
    *_TEMPLATE_QUALITY,
    RuleId.GOD_COMPONENT,
    RuleId.PROVIDER_POLLUTION,
    RuleId.SMART_DUMB_VIOLATION,
    RuleId.DEFER_NON_STANDALONE,
    RuleId.SIGNAL_WRITE_IN_EFFECT,
    RuleId.UNTRACKED_SIGNAL_READ,
    RuleId.NESTED_SUBSCRIPTION_HELL,
    RuleId.MEMORY_LEAK_SUBSCRIPTION,
    RuleId.MISSING_ASYNC_PIPE,
    RuleId.SUBJECT_MISUSE,
    RuleId.SWITCHMAP_DATA_LOSS,
    RuleId.SIGNALS_EFFECT_DERIVATION,
    RuleId.SIGNALS_LINKEDSIGNAL_OVERUSE,
    RuleId.SIGNALS_RESOURCE_RACE,
    RuleId.ZONE_POLLUTION,
    RuleId.INITIAL_BUNDLE_BUDGET_EXCEEDED,
    RuleId.ONPUSH_MISUSE,
    RuleId.NO_ONPUSH_STRATEGY,
    *_ZONELESS,
    RuleId.DEFER_ABOVE_FOLD,
    RuleId.HYDRATION_INCREMENTAL_TRIGGER,
    RuleId.HEAVY_COMPUTATION_PIPES,
    RuleId.BUILD_NGOPTIMIZED_IMAGE,
    RuleId.FORMS_MIXED,
    RuleId.FORMS_TYPED,
    RuleId.FORMS_VALUE_CHANGES,
    RuleId.FORM_STATE_NOT_CLEARED,
    RuleId.TEMPLATE_DRIVEN_COMPLEX_FORMS,
    RuleId.TYPESCRIPT_ANY,
    RuleId.TYPESCRIPT_NON_NULL,
    RuleId.ROUTING_INPUT_BINDING,
)

DEFAULT_RULE_TABLE: Mapping[Kind, tuple[RuleId, ...]] = {
    Kind.COMPONENT: _COMPONENT_RULES,
    Kind.DIRECTIVE: _COMPONENT_RULES,
    Kind.TEMPLATE: (
        RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION,
        RuleId.HYDRATION_MISMATCH,
        RuleId.UNSAFE_INNER_HTML,
        RuleId.IMPURE_TEMPLATE_CALL,
        RuleId.MISSING_TRACKBY,
        RuleId.CONTROL_FLOW_DEPRECATED,
        RuleId.HYDRATION_INVALID_HTML,
        RuleId.HYDRATION_INCREMENTAL_TRIGGER,
        RuleId.DEFER_ERROR_BLOCKS,
        RuleId.DEFER_ABOVE_FOLD,
        RuleId.TEMPLATE_METHOD_CALL,
        *_TEMPLATE_QUALITY,
        RuleId.FORMS_MIXED,
        RuleId.TEMPLATE_DRIVEN_COMPLEX_FORMS,
        RuleId.BUILD_NGOPTIMIZED_IMAGE,
        RuleId.HEAVY_COMPUTATION_PIPES,
    ),
    Kind.SERVICE: (
        RuleId.CIRCULAR_DEPENDENCY_INJECTION,
        RuleId.SUBJECT_MISUSE,
        RuleId.SWITCHMAP_DATA_LOSS,
        RuleId.TYPESCRIPT_ANY,
        RuleId.TYPESCRIPT_NON_NULL,
        RuleId.INITIAL_BUNDLE_BUDGET_EXCEEDED,
        RuleId.NESTED_SUBSCRIPTION_HELL,
        RuleId.SIGNAL_WRITE_IN_EFFECT,
        RuleId.ROUTING_FUNCTIONAL_GUARDS,
    ),
    Kind.CONFIG: (RuleId.INITIAL_BUNDLE_BUDGET_EXCEEDED,),
    Kind.STORE: (
        RuleId.ENTITY_DUPLICATION,
        RuleId.BROAD_SELECTORS,
        RuleId.NGRX_EFFECTS_ISSUES,
        RuleId.NGRX_MISSING_MEMOIZATION,
        RuleId.NGRX_NON_NORMALIZED_STATE,
        RuleId.NGRX_OVER_SELECTING,
        RuleId.NGRX_STATE_MUTATION,
        RuleId.TYPESCRIPT_ANY,
    ),
    Kind.ROUTING: (
        RuleId.ROUTING_FUNCTIONAL_GUARDS,
        RuleId.ROUTING_GUARDS,
        RuleId.ROUTING_INPUT_BINDING,
        RuleId.ROUTING_LAZY_LOADING,
        RuleId.ROUTING_ORDER,
        RuleId.BUILD_SSR_RENDER_MODE,
        RuleId.INITIAL_BUNDLE_BUDGET_EXCEEDED,
    ),
    Kind.TEST: (
        RuleId.TESTING_ASYNC,
        RuleId.TESTING_DEFER_BEHAVIOR,
        RuleId.TESTING_FAKEASYNC_ZONELESS,
        RuleId.TESTING_FLUSH_EFFECTS,
        RuleId.TESTING_IMPLEMENTATION,
        RuleId.TESTING_SIGNAL_INPUT_MUTATION,
        RuleId.TESTING_TESTBED,
        RuleId.TESTING_ZONELESS_OBSERVABLE_SUBSCRIPTIONS,
    ),
    Kind.OTHER: (
        RuleId.TYPESCRIPT_ANY,
        RuleId.TYPESCRIPT_NON_NULL,
        RuleId.HYDRATION_MISSING_EVENT_REPLAY,
        RuleId.HEAVY_COMPUTATION_PIPES,
        *_ZONELESS,
    ),
}


class RegistryError(RuntimeError):
    """Represent an inconsistent rule table."""


class RuleRegistry:
    """Immutable mapping from artifact kind to the rules run for it."""

    def __init__(
        self,
        rules: Iterable[Rule],
        table: Mapping[Kind, Iterable[RuleId]],
    ) -> None:
        """Validate and store the rule table.

        Args:
            rules: Known rules; identifiers must be unique.
            table: Rule identifiers to run for each kind, in order.

        Raises:
            RegistryError: If a kind has no entry, a rule identifier is
                registered twice, or the table names an unknown rule.
        """
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            key = str(rule.rule_id)
            if key in self._rules:
                raise RegistryError(f"Duplicate rule identifier: {key}")
            self._rules[key] = rule
        missing_kinds = [kind.value for kind in Kind if kind not in table]
        if missing_kinds:
            raise RegistryError(f"Rule table has no entry for kinds: {missing_kinds}")
        self._table: dict[Kind, tuple[Rule, ...]] = {}
        for kind in Kind:
            resolved: list[Rule] = []
            for rule_id in table[kind]:
                rule = self._rules.get(str(rule_id))
                if rule is None:
                    raise RegistryError(
                        f"Rule table references unknown rule (kind={kind.value} rule_id={rule_id})"
                    )
                resolved.append(rule)
            self._table[kind] = tuple(resolved)

    @classmethod
    def default(cls) -> "RuleRegistry":
        return cls(ALL_RULES, DEFAULT_RULE_TABLE)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules.values())

    def rules_for(self, kind: Kind) -> tuple[Rule, ...]:
        """Return the rules run for ``kind`` in registration order."""
        return self._table[kind]

    def register(self, rule: Rule, kinds: Iterable[Kind]) -> "RuleRegistry":
        """Return a new registry with ``rule`` appended for ``kinds``.

        The receiving registry is left unchanged.
        """
        target = set(kinds)
        table = {
            kind: tuple(existing.rule_id for existing in self._table[kind])
            + ((rule.rule_id,) if kind in target else ())
            for kind in Kind
        }
        return RuleRegistry([*self._rules.values(), rule], table)


@dataclass(frozen=True)
class DispatchOutcome:
    """Findings and recovered rule failures for one artifact.

    Attributes:
        findings: Findings in rule registration order, then line order.
        failures: Rules that raised while evaluating the artifact.
    """

    findings: tuple[Finding, ...]
    failures: tuple[RuleFailure, ...]


class Dispatcher:
    """Run the registered rules for one classified artifact."""

    def __init__(
        self,
        registry: RuleRegistry,
        config: RuleConfig | None = None,
        companions: CompanionLookup | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or RuleConfig()
        self._companions = companions or NullCompanionLookup()

    def dispatch(
        self,
        classified: ClassifiedArtifact,
        facts: StructuralFacts | None = None,
        companions: CompanionLookup | None = None,
    ) -> DispatchOutcome:
        """Evaluate every rule registered for the artifact's kind.

        A rule that raises contributes no findings; the error is logged and
        recorded as a failure, and the remaining rules still run.

        Args:
            classified: Artifact with its kind.
            facts: Structural facts when the artifact is a template.
            companions: Lookup replacing the dispatcher's own for this call.

        Returns:
            Findings and failures for the artifact.
        """
        context = RuleContext(
            artifact=classified,
            facts=facts,
            companions=companions or self._companions,
            config=self._config,
        )
        findings: list[Finding] = []
        failures: list[RuleFailure] = []
        for rule in self._registry.rules_for(classified.kind):
            try:
                rule_findings = [
                    _to_finding(rule, classified.path, match)
                    for match in _collapse_by_line(rule.evaluate(context))
                ]
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    f"Rule evaluation failed (rule_id={rule.rule_id} file_path={classified.path} error={exc})"
                )
                failures.append(
                    RuleFailure(path=classified.path, rule_id=str(rule.rule_id), message=str(exc))
                )
                continue
            findings.extend(rule_findings)
        return DispatchOutcome(findings=tuple(findings), failures=tuple(failures))


def _collapse_by_line(matches: Iterable[RuleMatch]) -> list[RuleMatch]:
    """Keep the most severe match per line, the first one on ties, ordered by line."""
    by_line: dict[int, RuleMatch] = {}
    for match in matches:
        current = by_line.get(match.line)
        if current is None or match.severity > current.severity:
            by_line[match.line] = match
    return [by_line[line] for line in sorted(by_line)]


def _to_finding(rule: Rule, path: str, match: RuleMatch) -> Finding:
    rule_id = str(rule.rule_id)
    line = max(1, match.line)
    return Finding(
        id=finding_id(rule_id, path, line),
        rule_id=rule_id,
        severity=match.severity,
        location=Location(path=path, line=line, column=max(0, match.column)),
        message=match.message,
        remediation=match.remediation,
        category=rule.category,
    )
