"""
Exceptions raised while parsing and validating build recipes.
"""
from typing import Optional


class StagecheckError(Exception):
    """
    Base class for all stagecheck errors.
    """


class ParseError(StagecheckError):
    """
    Raised when a recipe line cannot be parsed. Fatal for that recipe.
    """
    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        super().__init__(f"line {line}: {message}" if line else message)


class UnknownStageReference(StagecheckError):
    """
    Raised when a stage refers to a stage that was not declared before it.
    Fatal for that recipe.
    """
    def __init__(self, reference: str, stage: str, line: Optional[int] = None):
        self.reference = reference
        self.stage = stage
        self.line = line
        message = f"stage '{stage}' references unknown stage '{reference}'"
        super().__init__(f"line {line}: {message}" if line else message)


class ConfigError(StagecheckError):
    """
    Raised when the validator configuration cannot be loaded.
    """
