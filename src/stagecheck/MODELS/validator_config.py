"""
Models for the validator configuration.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, field_validator

from .findings import Severity


DEFAULT_RECIPE_GLOBS = [
    "Dockerfile",
    "Dockerfile.*",
    "*.Dockerfile",
    "*.dockerfile",
    "Containerfile",
    "Containerfile.*",
]


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


class ValidatorConfig(BaseModel):
    """
    Settings for a validation run, usually loaded from `.stagecheck.yml`.
    Rules may be referred to by id (SC001) or by name (non-root-user).
    """
    model_config = ConfigDict(extra="forbid")

    disabled_rules: List[str] = []
    severity_overrides: Dict[str, Severity] = {}
    fail_on: Severity = Severity.ERROR
    secret_patterns: List[str] = []
    recipe_globs: List[str] = DEFAULT_RECIPE_GLOBS

    @field_validator('fail_on', mode='before')
    @classmethod
    def _fail_on_any_case(cls, value):
        return _lower(value)

    @field_validator('severity_overrides', mode='before')
    @classmethod
    def _overrides_any_case(cls, value):
        if isinstance(value, dict):
            return {k: _lower(v) for k, v in value.items()}
        return value

    def is_disabled(self, rule_id: str, rule_name: str) -> bool:
        disabled = {r.lower() for r in self.disabled_rules}
        return rule_id.lower() in disabled or rule_name.lower() in disabled

    def severity_for(self, rule_id: str, rule_name: str, default: Severity) -> Severity:
        overrides = {k.lower(): v for k, v in self.severity_overrides.items()}
        override: Optional[Severity] = overrides.get(rule_id.lower(), overrides.get(rule_name.lower()))
        return override if override is not None else default
