"""
Models for policy findings and per-recipe validation reports.
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from .recipe_ast import StageReference


class Severity(str, Enum):
    """
    Severity of a finding, ordered info < warning < error.
    """
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class PolicyViolation(BaseModel):
    """
    A single finding reported by the policy checker.
    """
    model_config = ConfigDict(frozen=True)

    severity: Severity
    stage: str
    rule: str
    message: str
    line: Optional[int] = None


class FatalError(BaseModel):
    """
    An error that stopped validation of one recipe.
    `kind` is one of "io", "parse" or "reference".
    """
    kind: str
    message: str
    line: Optional[int] = None


class ValidationReport(BaseModel):
    """
    The outcome of validating one recipe.
    """
    path: str
    stages: List[str] = []
    references: List[StageReference] = []
    findings: List[PolicyViolation] = []
    error: Optional[FatalError] = None

    @property
    def failed(self) -> bool:
        """True when the recipe could not be parsed or resolved."""
        return self.error is not None

    def blocking(self, fail_on: Severity = Severity.ERROR) -> List[PolicyViolation]:
        """Findings at or above the `fail_on` severity."""
        return [f for f in self.findings if f.severity.rank >= fail_on.rank]

    def is_blocking(self, fail_on: Severity = Severity.ERROR) -> bool:
        return self.failed or bool(self.blocking(fail_on))
