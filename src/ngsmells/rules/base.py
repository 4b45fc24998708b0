# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Rule contracts, identifiers and text helpers shared by rule families."""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from functools import cached_property

from ngsmells.companion import CompanionLookup, companion_path_for
from ngsmells.config import RuleConfig
from ngsmells.model import Category, ClassifiedArtifact, Kind, Severity, StructuralFacts


class RuleFamily(Enum):
    """Rule families; each family lives in its own module."""

    TEMPLATE = "template"
    ARCHITECTURE = "architecture"
    REACTIVITY = "reactivity"
    STATE = "state"
    PERFORMANCE = "performance"
    FORMS = "forms"
    TYPESCRIPT = "typescript"
    ROUTING = "routing"
    TESTING = "testing"


class RuleId(str, Enum):
    """Closed set of rule identifiers."""

    # Template & Rendering
    IMPURE_TEMPLATE_CALL = "IMPURE_TEMPLATE_CALL"
    TEMPLATE_METHOD_CALL = "TEMPLATE_METHOD_CALL"
    MISSING_TRACKBY = "MISSING_TRACKBY"
    LARGE_LIST_WITHOUT_VIRTUALIZATION = "LARGE_LIST_WITHOUT_VIRTUALIZATION"
    HYDRATION_MISMATCH = "HYDRATION_MISMATCH"
    UNSAFE_INNER_HTML = "UNSAFE_INNER_HTML"
    CONTROL_FLOW_DEPRECATED = "CONTROL_FLOW_DEPRECATED"
    HYDRATION_INVALID_HTML = "HYDRATION_INVALID_HTML"
    HYDRATION_MISSING_EVENT_REPLAY = "HYDRATION_MISSING_EVENT_REPLAY"
    DEFER_ERROR_BLOCKS = "DEFER_ERROR_BLOCKS"
    ASYNC_PIPE_MULTIPLE_SUBSCRIPTIONS = "ASYNC_PIPE_MULTIPLE_SUBSCRIPTIONS"
    COMPLEX_TEMPLATE_LOGIC = "COMPLEX_TEMPLATE_LOGIC"
    NESTED_NGIF = "NESTED_NGIF"
    NGIF_NGFOR_SAME_ELEMENT = "NGIF_NGFOR_SAME_ELEMENT"
    MISSING_ACCESSIBILITY_ATTRIBUTES = "MISSING_ACCESSIBILITY_ATTRIBUTES"
    NO_I18N_INTEGRATION = "NO_I18N_INTEGRATION"
    TRUSTING_EXTERNAL_URLS = "TRUSTING_EXTERNAL_URLS"
    TWO_WAY_BINDING_HEAVY_USE = "TWO_WAY_BINDING_HEAVY_USE"
    TWO_WAY_OBJECT_BINDING = "TWO_WAY_OBJECT_BINDING"
    TEMPLATE_NULL_SAFETY = "TEMPLATE_NULL_SAFETY"
    NO_COMPONENT_ENCAPSULATION = "NO_COMPONENT_ENCAPSULATION"
    # Architecture & Dependency Injection
    GOD_COMPONENT = "GOD_COMPONENT"
    PROVIDER_POLLUTION = "PROVIDER_POLLUTION"
    CIRCULAR_DEPENDENCY_INJECTION = "CIRCULAR_DEPENDENCY_INJECTION"
    SMART_DUMB_VIOLATION = "SMART_DUMB_VIOLATION"
    DEFER_NON_STANDALONE = "DEFER_NON_STANDALONE"
    # Reactivity & Signals
    SIGNAL_WRITE_IN_EFFECT = "SIGNAL_WRITE_IN_EFFECT"
    UNTRACKED_SIGNAL_READ = "UNTRACKED_SIGNAL_READ"
    NESTED_SUBSCRIPTION_HELL = "NESTED_SUBSCRIPTION_HELL"
    MEMORY_LEAK_SUBSCRIPTION = "MEMORY_LEAK_SUBSCRIPTION"
    MISSING_ASYNC_PIPE = "MISSING_ASYNC_PIPE"
    SUBJECT_MISUSE = "SUBJECT_MISUSE"
    SWITCHMAP_DATA_LOSS = "SWITCHMAP_DATA_LOSS"
    SIGNALS_EFFECT_DERIVATION = "SIGNALS_EFFECT_DERIVATION"
    SIGNALS_LINKEDSIGNAL_OVERUSE = "SIGNALS_LINKEDSIGNAL_OVERUSE"
    SIGNALS_RESOURCE_RACE = "SIGNALS_RESOURCE_RACE"
    # State Management
    ENTITY_DUPLICATION = "ENTITY_DUPLICATION"
    BROAD_SELECTORS = "BROAD_SELECTORS"
    NGRX_EFFECTS_ISSUES = "NGRX_EFFECTS_ISSUES"
    NGRX_MISSING_MEMOIZATION = "NGRX_MISSING_MEMOIZATION"
    NGRX_NON_NORMALIZED_STATE = "NGRX_NON_NORMALIZED_STATE"
    NGRX_OVER_SELECTING = "NGRX_OVER_SELECTING"
    NGRX_STATE_MUTATION = "NGRX_STATE_MUTATION"
    # Performance & Bundle Metrics
    ZONE_POLLUTION = "ZONE_POLLUTION"
    INITIAL_BUNDLE_BUDGET_EXCEEDED = "INITIAL_BUNDLE_BUDGET_EXCEEDED"
    ONPUSH_MISUSE = "ONPUSH_MISUSE"
    NO_ONPUSH_STRATEGY = "NO_ONPUSH_STRATEGY"
    ZONELESS_NGZONE_STABLE = "ZONELESS_NGZONE_STABLE"
    ZONELESS_OBSERVABLE_SUBSCRIPTIONS = "ZONELESS_OBSERVABLE_SUBSCRIPTIONS"
    ZONELESS_TIMER_UPDATES = "ZONELESS_TIMER_UPDATES"
    DEFER_ABOVE_FOLD = "DEFER_ABOVE_FOLD"
    HYDRATION_INCREMENTAL_TRIGGER = "HYDRATION_INCREMENTAL_TRIGGER"
    HEAVY_COMPUTATION_PIPES = "HEAVY_COMPUTATION_PIPES"
    BUILD_NGOPTIMIZED_IMAGE = "BUILD_NGOPTIMIZED_IMAGE"
    # Forms & Validation
    FORMS_MIXED = "FORMS_MIXED"
    FORMS_TYPED = "FORMS_TYPED"
    FORMS_VALUE_CHANGES = "FORMS_VALUE_CHANGES"
    FORM_STATE_NOT_CLEARED = "FORM_STATE_NOT_CLEARED"
    TEMPLATE_DRIVEN_COMPLEX_FORMS = "TEMPLATE_DRIVEN_COMPLEX_FORMS"
    # TypeScript
    TYPESCRIPT_ANY = "TYPESCRIPT_ANY"
    TYPESCRIPT_NON_NULL = "TYPESCRIPT_NON_NULL"
    # Routing & Navigation
    ROUTING_FUNCTIONAL_GUARDS = "ROUTING_FUNCTIONAL_GUARDS"
    ROUTING_GUARDS = "ROUTING_GUARDS"
    ROUTING_INPUT_BINDING = "ROUTING_INPUT_BINDING"
    ROUTING_LAZY_LOADING = "ROUTING_LAZY_LOADING"
    ROUTING_ORDER = "ROUTING_ORDER"
    BUILD_SSR_RENDER_MODE = "BUILD_SSR_RENDER_MODE"
    # Testing
    TESTING_ASYNC = "TESTING_ASYNC"
    TESTING_DEFER_BEHAVIOR = "TESTING_DEFER_BEHAVIOR"
    TESTING_FAKEASYNC_ZONELESS = "TESTING_FAKEASYNC_ZONELESS"
    TESTING_FLUSH_EFFECTS = "TESTING_FLUSH_EFFECTS"
    TESTING_IMPLEMENTATION = "TESTING_IMPLEMENTATION"
    TESTING_SIGNAL_INPUT_MUTATION = "TESTING_SIGNAL_INPUT_MUTATION"
    TESTING_TESTBED = "TESTING_TESTBED"
    TESTING_ZONELESS_OBSERVABLE_SUBSCRIPTIONS = "TESTING_ZONELESS_OBSERVABLE_SUBSCRIPTIONS"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RuleMatch:
    """One raw detection produced by a rule before it becomes a finding.

    Attributes:
        severity: Risk level of this occurrence.
        line: Line number (1-based).
        message: Description of the occurrence.
        remediation: Suggested fix.
        column: Column number (1-based).
    """

    severity: Severity
    line: int
    message: str
    remediation: str
    column: int = 1


@dataclass(frozen=True)
class RuleContext:
    """Inputs available to a rule for one artifact.

    Attributes:
        artifact: Classified artifact under analysis.
        facts: Structural facts for templates, otherwise ``None``.
        companions: Lookup for conventionally related files.
        config: Rule thresholds.
    """

    artifact: ClassifiedArtifact
    facts: StructuralFacts | None
    companions: CompanionLookup
    config: RuleConfig

    @property
    def path(self) -> str:
        return self.artifact.path

    @property
    def content(self) -> str:
        return self.artifact.content

    @property
    def kind(self) -> Kind:
        return self.artifact.kind

    @cached_property
    def lines(self) -> list[str]:
        return self.artifact.content.split("\n")

    def threshold(self, name: str) -> int:
        return self.config.get(name)

    def companion_source(self) -> str | None:
        """Return the component source paired with a template, if any."""
        companion_path = companion_path_for(self.path)
        if companion_path is None:
            return None
        return self.companions.try_read(companion_path)


RuleCheck = Callable[[RuleContext], Iterable[RuleMatch]]


@dataclass(frozen=True)
class Rule:
    """A pure detection function with its identity and category.

    Attributes:
        rule_id: Unique identifier.
        category: Category assigned to every finding of this rule.
        family: Family the rule belongs to.
        check: Detection function.
    """

    rule_id: RuleId
    category: Category
    family: RuleFamily
    check: RuleCheck

    def evaluate(self, context: RuleContext) -> list[RuleMatch]:
        return list(self.check(context))


def iter_lines(content: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` pairs, 1-based."""
    return enumerate(content.split("\n"), start=1)


def line_for_offset(content: str, offset: int) -> int:
    """Return the 1-based line number for a character offset."""
    return content.count("\n", 0, offset) + 1


def column_for_offset(content: str, offset: int) -> int:
    """Return the 1-based column number for a character offset."""
    return offset - content.rfind("\n", 0, offset)


def column_of(line: str, needle: str) -> int:
    """Return the 1-based column of ``needle`` in ``line`` (1 when absent)."""
    return line.find(needle) + 1 if needle in line else 1


def find_balanced_end(
    content: str, open_index: int, opening: str = "(", closing: str = ")"
) -> int:
    """Find the delimiter closing the one at ``open_index``.

    Quoted strings (single, double and backtick, honoring backslash escapes)
    and ``//`` or ``/* */`` comments are skipped, so delimiters inside them do
    not count.

    Args:
        content: Source text.
        open_index: Index of the opening delimiter.
        opening: Opening delimiter character.
        closing: Closing delimiter character.

    Returns:
        Index of the matching closing delimiter, or ``-1`` when unbalanced.
    """
    if open_index < 0 or open_index >= len(content) or content[open_index] != opening:
        return -1
    depth = 0
    quote: str | None = None
    index = open_index
    length = len(content)
    while index < length:
        char = content[index]
        if quote is not None:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "'\"`":
            quote = char
        elif content.startswith("//", index):
            newline = content.find("\n", index)
            index = length if newline == -1 else newline
            continue
        elif content.startswith("/*", index):
            end = content.find("*/", index + 2)
            index = length if end == -1 else end + 2
            continue
        elif char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


IMPORT_STATEMENT = re.compile(
    r"""^\s*import\s+(?:type\s+)?[\w*{}\s,$]+?\s+from\s+['"][^'"]+['"]""",
    re.MULTILINE,
)


def count_imports(content: str) -> int:
    """Count ``import ... from '...'`` statements."""
    return len(IMPORT_STATEMENT.findall(content))


def has_inline_template(content: str) -> bool:
    return "template:" in content or "templateUrl:" in content
