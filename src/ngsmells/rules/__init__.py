# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Rule families for the Angular anti-pattern scanner."""

from ngsmells.rules import (
    architecture,
    forms,
    performance,
    reactivity,
    routing,
    state,
    template,
    template_quality,
    testing,
    typescript,
)
from ngsmells.rules.base import Rule, RuleContext, RuleFamily, RuleId, RuleMatch

ALL_RULES: tuple[Rule, ...] = (
    *template.RULES,
    *template_quality.RULES,
    *architecture.RULES,
    *reactivity.RULES,
    *state.RULES,
    *performance.RULES,
    *forms.RULES,
    *typescript.RULES,
    *routing.RULES,
    *testing.RULES,
)

__all__ = ["ALL_RULES", "Rule", "RuleContext", "RuleFamily", "RuleId", "RuleMatch"]
