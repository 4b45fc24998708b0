# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Rule thresholds and scan settings, including environment loading."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ngsmells.model import Severity

logger = logging.getLogger(__name__)

ENV_PREFIX = "ANGULAR_SMELLS_"

DEFAULT_RULE_OPTIONS: dict[str, int] = {
    "godComponent.maxImports": 20,
    "godComponent.maxImportsCritical": 30,
    "godComponent.maxLines": 400,
    "godComponent.maxLinesCritical": 500,
    "subscriptionHell.maxDepth": 1,
    "subscriptionHell.highDepth": 3,
    "subscriptionHell.criticalDepth": 4,
    "bundleBudget.minBytes": 512000,
    "bundleBudget.maxHeavyImports": 3,
    "largeList.minItems": 50,
    "largeList.highItems": 500,
    "largeList.criticalItems": 1000,
    "largeList.dataSourceEstimate": 100,
    "largeList.streamEstimate": 200,
    "innerHtml.sanitizerWindowLines": 10,
    "templateCall.loopWindowChars": 200,
    "selectors.maxInputs": 3,
    "selectors.maxReturnedProperties": 3,
    "ngrx.maxSelectCalls": 5,
    "ngrx.effectErrorWindowLines": 10,
    "barrel.maxReExports": 5,
    "signals.maxLinkedSignals": 3,
    "defer.errorBlockWindowLines": 20,
    "templateLogic.maxExpressionLength": 80,
    "templateLogic.maxNestedIfDepth": 2,
    "twoWayBinding.maxBindings": 3,
    "asyncPipe.maxSubscriptionsPerStream": 1,
    "forms.maxTemplateDrivenControls": 5,
    "i18n.minTextNodes": 3,
}

DEFAULT_INCLUDE_PATTERNS: tuple[str, ...] = ("**/*.ts", "**/*.html", "**/angular.json")
DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "node_modules/",
    "dist/",
    ".git/",
    "coverage/",
    "*.d.ts",
)
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

_ENV_RULE_OPTIONS: dict[str, str] = {
    "MAX_IMPORTS": "godComponent.maxImports",
    "MAX_LINES": "godComponent.maxLines",
    "MAX_SUBSCRIPTION_DEPTH": "subscriptionHell.maxDepth",
    "MIN_BUNDLE_SIZE": "bundleBudget.minBytes",
}


class ConfigurationError(ValueError):
    """Represent an invalid configuration value or unknown option."""


class RuleConfig:
    """Flat named-option object holding every rule threshold."""

    def __init__(self, overrides: Mapping[str, int] | None = None) -> None:
        """Initialize thresholds from defaults and overrides.

        Args:
            overrides: Option values replacing the defaults.

        Raises:
            ConfigurationError: If an override names an unknown option or is
                not a non-negative integer.
        """
        options = dict(DEFAULT_RULE_OPTIONS)
        for name, value in (overrides or {}).items():
            if name not in DEFAULT_RULE_OPTIONS:
                raise ConfigurationError(f"Unknown rule option: {name}")
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(
                    f"Rule option {name} must be an integer (value={value!r})"
                )
            if value < 0:
                raise ConfigurationError(f"Rule option {name} must be >= 0")
            options[name] = value
        self._options = options

    def get(self, name: str) -> int:
        """Return one threshold.

        Raises:
            ConfigurationError: If the option is unknown.
        """
        try:
            return self._options[name]
        except KeyError as exc:
            raise ConfigurationError(f"Unknown rule option: {name}") from exc

    def as_dict(self) -> dict[str, int]:
        return dict(self._options)

    def with_overrides(self, overrides: Mapping[str, int]) -> "RuleConfig":
        merged = self.as_dict()
        merged.update(overrides)
        return RuleConfig(merged)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleConfig):
            return NotImplemented
        return self._options == other._options

    def __repr__(self) -> str:
        changed = {
            name: value
            for name, value in self._options.items()
            if DEFAULT_RULE_OPTIONS[name] != value
        }
        return f"RuleConfig(overrides={changed})"


@dataclass(frozen=True)
class ScanConfig:
    """Settings for one scan run outside of rule thresholds.

    Attributes:
        min_severity: Lowest severity kept in the reported result.
        max_file_size: Files larger than this many bytes are skipped.
        include_patterns: Gitignore-style patterns selecting files.
        exclude_patterns: Gitignore-style patterns removing files.
        max_workers: Worker threads used by the engine.
        exit_on_critical: Whether critical findings fail the run.
        log_level: Logging level name.
    """

    min_severity: Severity = Severity.LOW
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    include_patterns: tuple[str, ...] = DEFAULT_INCLUDE_PATTERNS
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    max_workers: int = 4
    exit_on_critical: bool = True
    log_level: str = "INFO"


def parse_option_assignment(assignment: str) -> tuple[str, int]:
    """Parse a ``key=value`` rule option assignment.

    Raises:
        ConfigurationError: If the text is malformed or the value is not an
            integer.
    """
    name, separator, raw_value = assignment.partition("=")
    name = name.strip()
    if not separator or not name:
        raise ConfigurationError(f"Expected key=value, got: {assignment}")
    return name, _parse_int(name, raw_value)


def load_config_from_env(
    environ: Mapping[str, str],
) -> tuple[ScanConfig, RuleConfig]:
    """Build scan and rule configuration from ``ANGULAR_SMELLS_*`` variables.

    Args:
        environ: Environment mapping, usually ``os.environ``.

    Returns:
        Scan configuration and rule thresholds.

    Raises:
        ConfigurationError: If a variable holds an invalid value.
    """

    def env(name: str) -> str | None:
        value = environ.get(f"{ENV_PREFIX}{name}")
        if value is None or not value.strip():
            return None
        return value.strip()

    scan_values: dict[str, object] = {}
    if (raw := env("MIN_SEVERITY")) is not None:
        try:
            scan_values["min_severity"] = Severity.from_string(raw)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    if (raw := env("MAX_FILE_SIZE")) is not None:
        scan_values["max_file_size"] = _parse_int("MAX_FILE_SIZE", raw, minimum=1)
    if (raw := env("PARALLEL")) is not None:
        scan_values["max_workers"] = _parse_int("PARALLEL", raw, minimum=1)
    if (raw := env("EXIT_ON_CRITICAL")) is not None:
        scan_values["exit_on_critical"] = _parse_bool("EXIT_ON_CRITICAL", raw)
    if (raw := env("LOG_LEVEL")) is not None:
        level = raw.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ConfigurationError(f"Invalid log level: {raw}")
        scan_values["log_level"] = level
    if (raw := env("INCLUDE_PATTERNS")) is not None:
        scan_values["include_patterns"] = _split_patterns(raw)
    if (raw := env("EXCLUDE_PATTERNS")) is not None:
        scan_values["exclude_patterns"] = _split_patterns(raw)

    overrides = {
        option: _parse_int(variable, raw)
        for variable, option in _ENV_RULE_OPTIONS.items()
        if (raw := env(variable)) is not None
    }
    logger.debug(
        f"Loaded configuration from environment (scan_keys={sorted(scan_values)} rule_keys={sorted(overrides)})"
    )
    return ScanConfig(**scan_values), RuleConfig(overrides)  # type: ignore[arg-type]


def _parse_int(name: str, raw: str, minimum: int = 0) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer (value={raw!r})") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"{name} must be a boolean (value={raw!r})")


def _split_patterns(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())
