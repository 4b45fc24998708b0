import sys
from pathlib import Path

import pytest


def _add_src_to_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_add_src_to_path()


@pytest.fixture
def run_rule():
    """Return a callable evaluating one rule against in-memory content."""
    from ngsmells.classifier import classify_artifact
    from ngsmells.companion import MappingCompanionLookup
    from ngsmells.config import RuleConfig
    from ngsmells.model import Kind, SourceArtifact
    from ngsmells.rules import ALL_RULES, RuleContext
    from ngsmells.template_parser import TemplateAnalyzer

    def _run(rule_id, path, content, companions=None, overrides=None):
        classified = classify_artifact(SourceArtifact.from_text(path, content))
        facts = (
            TemplateAnalyzer().analyze(content, source=path)
            if classified.kind is Kind.TEMPLATE
            else None
        )
        rule = next(rule for rule in ALL_RULES if rule.rule_id is rule_id)
        context = RuleContext(
            artifact=classified,
            facts=facts,
            companions=MappingCompanionLookup(companions or {}),
            config=RuleConfig(overrides),
        )
        return rule.evaluate(context)

    return _run
