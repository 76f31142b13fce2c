"""
Policy checking for parsed recipes. Findings are advisory: the checker never
raises on a violation, it reports it.
"""
import logging
from typing import List, Optional

from ..MODELS.findings import PolicyViolation
from ..MODELS.recipe_ast import Recipe
from ..MODELS.validator_config import ValidatorConfig
from .rules import RULES, Rule

logger = logging.getLogger(__name__)


class PolicyChecker:
    """
    Applies the built-in rule set to a recipe.
    """
    def __init__(self, config: Optional[ValidatorConfig] = None):
        """
        Initializes the checker.

        :param config: Rule selection and severity overrides.
        """
        self.config = config or ValidatorConfig()

    def active_rules(self) -> List[Rule]:
        """
        Returns the enabled rules in id order.
        """
        return [
            r for _, r in sorted(RULES.items())
            if not self.config.is_disabled(r.id, r.name)
        ]

    def check(self, recipe: Recipe) -> List[PolicyViolation]:
        """
        Runs every enabled rule against the recipe.

        :param recipe: The parsed recipe.
        :return: Findings sorted by line, then rule id.
        """
        if not recipe.stages:
            return []

        findings = []
        for r in self.active_rules():
            severity = self.config.severity_for(r.id, r.name, r.severity)
            for stage, line, message in r.check(recipe, self.config):
                findings.append(PolicyViolation(
                    severity=severity,
                    stage=stage.identifier,
                    rule=r.id,
                    message=message,
                    line=line,
                ))

        findings.sort(key=lambda f: (f.line or 0, f.rule, f.message))
        logger.debug("%d finding(s) for %s", len(findings), recipe.path or "<string>")
        return findings
