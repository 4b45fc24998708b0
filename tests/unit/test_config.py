import pytest

from ngsmells.config import (
    DEFAULT_RULE_OPTIONS,
    ConfigurationError,
    RuleConfig,
    ScanConfig,
    load_config_from_env,
    parse_option_assignment,
)
from ngsmells.model import Severity


def test_ph0_cfg_001_rule_config_defaults_and_overrides() -> None:
    config = RuleConfig({"godComponent.maxImports": 25})

    assert config.get("godComponent.maxImports") == 25
    assert config.get("godComponent.maxLines") == DEFAULT_RULE_OPTIONS["godComponent.maxLines"]
    assert RuleConfig() == RuleConfig(dict(DEFAULT_RULE_OPTIONS))
    assert "godComponent.maxImports" in repr(config)


def test_ph0_cfg_002_rule_config_rejects_unknown_and_invalid_values() -> None:
    with pytest.raises(ConfigurationError):
        RuleConfig({"godComponent.maxWidgets": 1})
    with pytest.raises(ConfigurationError):
        RuleConfig({"godComponent.maxImports": -1})
    with pytest.raises(ConfigurationError):
        RuleConfig({"godComponent.maxImports": True})
    with pytest.raises(ConfigurationError):
        RuleConfig().get("unknown.option")


def test_ph0_cfg_003_with_overrides_returns_new_config() -> None:
    base = RuleConfig()
    changed = base.with_overrides({"largeList.minItems": 10})

    assert changed.get("largeList.minItems") == 10
    assert base.get("largeList.minItems") == 50


def test_ph0_cfg_004_parse_option_assignment() -> None:
    assert parse_option_assignment("ngrx.maxSelectCalls=7") == ("ngrx.maxSelectCalls", 7)
    assert parse_option_assignment(" selectors.maxInputs = 2 ") == ("selectors.maxInputs", 2)
    with pytest.raises(ConfigurationError):
        parse_option_assignment("selectors.maxInputs")
    with pytest.raises(ConfigurationError):
        parse_option_assignment("selectors.maxInputs=many")


def test_ph0_cfg_005_load_config_from_env_reads_prefixed_variables() -> None:
    scan_config, rule_config = load_config_from_env(
        {
            "ANGULAR_SMELLS_MIN_SEVERITY": "high",
            "ANGULAR_SMELLS_MAX_IMPORTS": "12",
            "ANGULAR_SMELLS_PARALLEL": "2",
            "ANGULAR_SMELLS_EXIT_ON_CRITICAL": "false",
            "ANGULAR_SMELLS_LOG_LEVEL": "debug",
            "ANGULAR_SMELLS_EXCLUDE_PATTERNS": "dist/, legacy/ ,",
            "UNRELATED": "x",
        }
    )

    assert scan_config.min_severity is Severity.HIGH
    assert scan_config.max_workers == 2
    assert scan_config.exit_on_critical is False
    assert scan_config.log_level == "DEBUG"
    assert scan_config.exclude_patterns == ("dist/", "legacy/")
    assert rule_config.get("godComponent.maxImports") == 12


def test_ph0_cfg_006_empty_environment_gives_defaults() -> None:
    scan_config, rule_config = load_config_from_env({})

    assert scan_config == ScanConfig()
    assert rule_config == RuleConfig()


@pytest.mark.parametrize(
    "environ",
    [
        {"ANGULAR_SMELLS_MIN_SEVERITY": "urgent"},
        {"ANGULAR_SMELLS_PARALLEL": "0"},
        {"ANGULAR_SMELLS_MAX_LINES": "abc"},
        {"ANGULAR_SMELLS_EXIT_ON_CRITICAL": "maybe"},
        {"ANGULAR_SMELLS_LOG_LEVEL": "verbose"},
    ],
)
def test_ph0_cfg_007_invalid_environment_values_raise(environ: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError):
        load_config_from_env(environ)
