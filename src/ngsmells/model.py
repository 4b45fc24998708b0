# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Domain models for source artifacts, template facts and findings."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Literal

ParseMode = Literal["strict", "fallback"]


class Kind(Enum):
    """Authoritative artifact kind assigned by the classifier."""

    COMPONENT = "component"
    TEMPLATE = "template"
    SERVICE = "service"
    DIRECTIVE = "directive"
    CONFIG = "config"
    STORE = "store"
    ROUTING = "routing"
    TEST = "test"
    OTHER = "other"


class Severity(IntEnum):
    """Ordered risk level of a finding."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        """Parse a severity name case-insensitively.

        Args:
            value: Severity name such as ``"high"``.

        Returns:
            Matching severity.

        Raises:
            ValueError: If the name is unknown.
        """
        normalized = value.strip().upper()
        try:
            return cls[normalized]
        except KeyError as exc:
            valid = ", ".join(member.name for member in cls)
            raise ValueError(
                f"Invalid severity: {value}. Must be one of: {valid}"
            ) from exc


class Category(Enum):
    """Finding category; values are the labels shown in reports."""

    TEMPLATE_RENDERING = "Template & Rendering"
    ARCHITECTURE_DEPENDENCY_INJECTION = "Architecture & Dependency Injection"
    REACTIVITY_SIGNALS = "Reactivity & Signals"
    STATE_MANAGEMENT = "State Management"
    PERFORMANCE_BUNDLE_METRICS = "Performance & Bundle Metrics"
    FORMS_VALIDATION = "Forms & Validation"
    TYPESCRIPT = "TypeScript"
    ROUTING_NAVIGATION = "Routing & Navigation"
    TESTING = "Testing"


@dataclass(frozen=True)
class Location:
    """Position of a finding inside an artifact.

    Attributes:
        path: Artifact path as provided by the scanner.
        line: Line number (1-based).
        column: Column number (1-based, ``0`` when unknown).
    """

    path: str
    line: int
    column: int = 0

    def __post_init__(self) -> None:
        if self.line < 1:
            raise ValueError("line must be >= 1")
        if self.column < 0:
            raise ValueError("column must be >= 0")

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceArtifact:
    """Represent one source file handed to the engine.

    Attributes:
        path: Project-relative (or absolute) file path.
        content: Raw file text.
        size: File size in bytes.
        kind_hint: Optional coarse kind supplied by the producer.
    """

    path: str
    content: str
    size: int
    kind_hint: Kind | None = None

    def __post_init__(self) -> None:
        if not self.path.strip():
            raise ValueError("artifact path cannot be empty")
        if self.size < 0:
            raise ValueError("artifact size cannot be negative")

    @classmethod
    def from_text(
        cls, path: str, content: str, kind_hint: Kind | None = None
    ) -> "SourceArtifact":
        """Build an artifact from text, deriving the UTF-8 size."""
        return cls(
            path=path,
            content=content,
            size=len(content.encode("utf-8")),
            kind_hint=kind_hint,
        )


@dataclass(frozen=True)
class ClassifiedArtifact:
    """Artifact paired with its authoritative kind."""

    artifact: SourceArtifact
    kind: Kind

    @property
    def path(self) -> str:
        return self.artifact.path

    @property
    def content(self) -> str:
        return self.artifact.content


@dataclass(frozen=True)
class StructuralDirective:
    """Structural directive attribute found on a template element.

    Attributes:
        name: Attribute name including the ``*`` sigil.
        raw_value: Unparsed attribute value.
    """

    name: str
    raw_value: str


@dataclass(frozen=True)
class FunctionCallSite:
    """Template expression containing a function call.

    Attributes:
        expression: Expression text as written in the template.
        line: Line number (1-based), ``0`` when not derivable.
        column: Column number (1-based), ``0`` when not derivable.
    """

    expression: str
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class StructuralFacts:
    """Normalized summary of a template's shape.

    Attributes:
        has_track_by: Whether a track function marker appears.
        structural_directive_count: Number of ``*ngFor`` occurrences.
        structural_directives: Structural directive attributes, in document order.
        function_call_sites: Expressions that call non allow-listed functions.
        unsafe_inner_html: Whether an ``[innerHTML]`` binding appears.
        nested_anchor_tags: Whether an anchor is opened inside another anchor.
        dynamic_content_detected: Whether random or clock values are used.
        parse_mode: ``strict`` when the full parse succeeded, else ``fallback``.
        parse_error: Strict parser message when the fallback ran.
    """

    has_track_by: bool = False
    structural_directive_count: int = 0
    structural_directives: tuple[StructuralDirective, ...] = field(
        default_factory=tuple
    )
    function_call_sites: tuple[FunctionCallSite, ...] = field(default_factory=tuple)
    unsafe_inner_html: bool = False
    nested_anchor_tags: bool = False
    dynamic_content_detected: bool = False
    parse_mode: ParseMode = "strict"
    parse_error: str | None = None


@dataclass(frozen=True)
class Finding:
    """Represent one reported anti-pattern occurrence.

    Attributes:
        id: Stable identity string ``rule_id:path:line``.
        rule_id: Identifier of the rule that produced the finding.
        severity: Risk level.
        location: Artifact position.
        message: Human-readable description.
        remediation: Suggested fix.
        category: Finding category.
    """

    id: str
    rule_id: str
    severity: Severity
    location: Location
    message: str
    remediation: str
    category: Category

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("finding id cannot be empty")
        if not self.rule_id.strip():
            raise ValueError("finding rule_id cannot be empty")
        if not self.message.strip():
            raise ValueError("finding message cannot be empty")
        if not self.remediation.strip():
            raise ValueError("finding remediation cannot be empty")

    @property
    def identity(self) -> tuple[str, str, int]:
        """Return the de-duplication key ``(path, rule_id, line)``."""
        return (self.location.path, self.rule_id, self.location.line)


@dataclass(frozen=True)
class RuleFailure:
    """Non-fatal warning recorded when one rule raised on one artifact."""

    path: str
    rule_id: str
    message: str


def finding_id(rule_id: str, path: str, line: int) -> str:
    """Build the identity string used for ``Finding.id``."""
    return f"{rule_id}:{path}:{line}"
