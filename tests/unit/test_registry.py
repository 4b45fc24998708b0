import logging

import pytest

from ngsmells.classifier import classify_artifact
from ngsmells.model import Category, Kind, Severity, SourceArtifact
from ngsmells.registry import DEFAULT_RULE_TABLE, Dispatcher, RegistryError, RuleRegistry
from ngsmells.rules import ALL_RULES, Rule, RuleFamily, RuleId, RuleMatch


def _rule(rule_id: RuleId, check) -> Rule:
    return Rule(
        rule_id=rule_id,
        category=Category.TYPESCRIPT,
        family=RuleFamily.TYPESCRIPT,
        check=check,
    )


def _table(*rule_ids: RuleId) -> dict[Kind, tuple[RuleId, ...]]:
    return {kind: rule_ids if kind is Kind.OTHER else () for kind in Kind}


def _other_artifact(content: str = "export const x = 1;"):
    return classify_artifact(SourceArtifact.from_text("src/app/util.ts", content))


def test_ph5_reg_001_default_registry_covers_every_rule_and_kind() -> None:
    registry = RuleRegistry.default()

    assert len(ALL_RULES) == 75
    assert {rule.rule_id for rule in registry.rules} == set(RuleId)
    assert set(DEFAULT_RULE_TABLE) == set(Kind)
    registered = {rule.rule_id for kind in Kind for rule in registry.rules_for(kind)}
    assert registered == set(RuleId)


def test_ph5_reg_002_rules_for_keeps_registration_order() -> None:
    registry = RuleRegistry.default()

    service_rules = [rule.rule_id for rule in registry.rules_for(Kind.SERVICE)]

    assert service_rules[0] is RuleId.CIRCULAR_DEPENDENCY_INJECTION
    assert [rule.rule_id for rule in registry.rules_for(Kind.CONFIG)] == [
        RuleId.INITIAL_BUNDLE_BUDGET_EXCEEDED
    ]


def test_ph5_reg_003_invalid_tables_are_rejected() -> None:
    rule = _rule(RuleId.TYPESCRIPT_ANY, lambda ctx: [])

    with pytest.raises(RegistryError, match="Duplicate"):
        RuleRegistry([rule, rule], _table())
    with pytest.raises(RegistryError, match="no entry"):
        RuleRegistry([rule], {Kind.OTHER: (RuleId.TYPESCRIPT_ANY,)})
    with pytest.raises(RegistryError, match="unknown rule"):
        RuleRegistry([rule], _table(RuleId.TYPESCRIPT_NON_NULL))


def test_ph5_reg_004_register_returns_new_registry() -> None:
    base = RuleRegistry([_rule(RuleId.TYPESCRIPT_ANY, lambda ctx: [])], _table(RuleId.TYPESCRIPT_ANY))
    extra = _rule(RuleId.TYPESCRIPT_NON_NULL, lambda ctx: [])

    extended = base.register(extra, [Kind.OTHER, Kind.SERVICE])

    assert [rule.rule_id for rule in base.rules_for(Kind.OTHER)] == [RuleId.TYPESCRIPT_ANY]
    assert [rule.rule_id for rule in extended.rules_for(Kind.OTHER)] == [
        RuleId.TYPESCRIPT_ANY,
        RuleId.TYPESCRIPT_NON_NULL,
    ]
    assert [rule.rule_id for rule in extended.rules_for(Kind.SERVICE)] == [RuleId.TYPESCRIPT_NON_NULL]


def test_ph5_dsp_001_failing_rule_is_recorded_and_others_still_run(
    caplog: pytest.LogCaptureFixture,
) -> None:
    def boom(ctx):
        raise RuntimeError("regex exploded")

    def ok(ctx):
        return [RuleMatch(Severity.LOW, 1, "found", "fix it")]

    registry = RuleRegistry(
        [_rule(RuleId.TYPESCRIPT_ANY, boom), _rule(RuleId.TYPESCRIPT_NON_NULL, ok)],
        _table(RuleId.TYPESCRIPT_ANY, RuleId.TYPESCRIPT_NON_NULL),
    )

    with caplog.at_level(logging.WARNING):
        outcome = Dispatcher(registry).dispatch(_other_artifact())

    assert [finding.rule_id for finding in outcome.findings] == ["TYPESCRIPT_NON_NULL"]
    assert len(outcome.failures) == 1
    assert outcome.failures[0].rule_id == "TYPESCRIPT_ANY"
    assert outcome.failures[0].message == "regex exploded"
    assert "regex exploded" in caplog.text


def test_ph5_dsp_002_one_finding_per_rule_and_line_keeping_most_severe() -> None:
    def noisy(ctx):
        return [
            RuleMatch(Severity.LOW, 3, "low", "fix"),
            RuleMatch(Severity.HIGH, 3, "high", "fix"),
            RuleMatch(Severity.HIGH, 3, "second high", "fix"),
            RuleMatch(Severity.MEDIUM, 1, "first line", "fix"),
        ]

    registry = RuleRegistry([_rule(RuleId.TYPESCRIPT_ANY, noisy)], _table(RuleId.TYPESCRIPT_ANY))

    outcome = Dispatcher(registry).dispatch(_other_artifact())

    assert [(finding.location.line, finding.message) for finding in outcome.findings] == [
        (1, "first line"),
        (3, "high"),
    ]


def test_ph5_dsp_003_findings_carry_identity_and_category() -> None:
    registry = RuleRegistry(
        [_rule(RuleId.TYPESCRIPT_ANY, lambda ctx: [RuleMatch(Severity.MEDIUM, 0, "m", "r", column=4)])],
        _table(RuleId.TYPESCRIPT_ANY),
    )

    finding = Dispatcher(registry).dispatch(_other_artifact()).findings[0]

    assert finding.id == "TYPESCRIPT_ANY:src/app/util.ts:1"
    assert finding.location.line == 1
    assert finding.location.column == 4
    assert finding.category is Category.TYPESCRIPT
    assert finding.identity == ("src/app/util.ts", "TYPESCRIPT_ANY", 1)


def test_ph5_dsp_004_kind_without_rules_yields_nothing() -> None:
    registry = RuleRegistry([_rule(RuleId.TYPESCRIPT_ANY, lambda ctx: [])], _table(RuleId.TYPESCRIPT_ANY))
    artifact = classify_artifact(SourceArtifact.from_text("angular.json", "{}"))

    outcome = Dispatcher(registry).dispatch(artifact)

    assert outcome.findings == ()
    assert outcome.failures == ()


PROFILE_COMPONENT = "\n".join(
    [
        "@Component({ selector: 'app-profile', template: '<p>{{ name }}</p>' })",
        "export class ProfileComponent {",
        "  data: any;",
        "  ngOnInit() {",
        "    this.form.valueChanges.subscribe((v) => this.preview(v));",
        "    const name = this.user!.name;",
        "  }",
        "}",
    ]
)


def _profile_component():
    return classify_artifact(
        SourceArtifact.from_text("src/app/profile.component.ts", PROFILE_COMPONENT)
    )


def test_ph5_dsp_005_dispatch_is_deterministic() -> None:
    dispatcher = Dispatcher(RuleRegistry.default())
    artifact = _profile_component()

    first = dispatcher.dispatch(artifact)
    second = dispatcher.dispatch(artifact)

    assert first.findings == second.findings
    rule_ids = {finding.rule_id for finding in first.findings}
    assert {"TYPESCRIPT_ANY", "TYPESCRIPT_NON_NULL", "FORMS_VALUE_CHANGES"} <= rule_ids


def test_ph5_dsp_006_finding_set_does_not_depend_on_rule_order() -> None:
    reversed_table = {kind: tuple(reversed(rule_ids)) for kind, rule_ids in DEFAULT_RULE_TABLE.items()}
    forward = Dispatcher(RuleRegistry.default()).dispatch(_profile_component())
    backward = Dispatcher(RuleRegistry(ALL_RULES, reversed_table)).dispatch(_profile_component())

    def by_identity(findings):
        return sorted(findings, key=lambda finding: finding.identity)

    assert forward.findings
    assert by_identity(forward.findings) == by_identity(backward.findings)


def test_ph5_dsp_007_invalid_match_is_recorded_as_failure() -> None:
    def blank(ctx):
        return [RuleMatch(Severity.LOW, 1, " ", "fix it")]

    def ok(ctx):
        return [RuleMatch(Severity.LOW, 2, "found", "fix it")]

    registry = RuleRegistry(
        [_rule(RuleId.TYPESCRIPT_ANY, blank), _rule(RuleId.TYPESCRIPT_NON_NULL, ok)],
        _table(RuleId.TYPESCRIPT_ANY, RuleId.TYPESCRIPT_NON_NULL),
    )

    outcome = Dispatcher(registry).dispatch(_other_artifact())

    assert [finding.rule_id for finding in outcome.findings] == ["TYPESCRIPT_NON_NULL"]
    assert [failure.rule_id for failure in outcome.failures] == ["TYPESCRIPT_ANY"]
    assert outcome.failures[0].message == "finding message cannot be empty"
