# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Runs the parse -> resolve -> check pipeline over one or many recipes.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

from ..errors import ParseError, UnknownStageReference
from ..MODELS.findings import FatalError, ValidationReport
from ..MODELS.validator_config import ValidatorConfig
from ..PARSERS.recipe_parser import RecipeParser
from ..POLICIES.policy_checker import PolicyChecker
from .reference_resolver import ReferenceResolver

logger = logging.getLogger(__name__)


class RecipeValidator:
    """
    Validates build recipes. Each recipe is handled independently: a parse or
    reference error ends validation of that recipe only.
    """

    def __init__(self, config: Optional[ValidatorConfig] = None):
        """
        Initializes the validator.

        :param config: Validator configuration. Defaults are used if omitted.
        """
        self.config = config or ValidatorConfig()
        self.parser = RecipeParser()
        self.resolver = ReferenceResolver()
        self.checker = PolicyChecker(self.config)

    def validate(self, path: str) -> ValidationReport:
        """
        Validates the recipe at `path`.

        :param path: Path to the recipe file.
        :return: The report; unreadable files yield a fatal "io" error.
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Cannot read %s: %s", path, e)
            return ValidationReport(path=str(path), error=FatalError(kind="io", message=str(e)))
        return self.validate_string(content, path=str(path))

    def validate_string(self, content: str, path: str = "<string>") -> ValidationReport:
        """
        Validates recipe text.

        :param content: The recipe.
        :param path: Label used in the report.
        :return: The validation report.
        """
        try:
            recipe = self.parser.parse_from_string(content, path=path)
            references = self.resolver.resolve(recipe.stages)
        except ParseError as e:
            logger.error("%s: parse error: %s", path, e)
            return ValidationReport(
                path=path, error=FatalError(kind="parse", message=e.message, line=e.line),
            )
        except UnknownStageReference as e:
            logger.error("%s: %s", path, e)
            return ValidationReport(
                path=path,
                error=FatalError(
                    kind="reference",
                    message=f"stage '{e.stage}' references unknown stage '{e.reference}'",
                    line=e.line,
                ),
            )

        findings = self.checker.check(recipe)
        logger.info("%s: %d stage(s), %d finding(s)", path, len(recipe.stages), len(findings))
        return ValidationReport(
            path=path,
            stages=[s.identifier for s in recipe.stages],
            references=references,
            findings=findings,
        )

    def validate_many(self, paths: Iterable[str], jobs: int = 1) -> List[ValidationReport]:
        """
        Validates several recipes, optionally in parallel.

        :param paths: Recipe paths.
        :param jobs: Number of worker threads.
        :return: One report per path, in input order.
        """
        paths = list(paths)
        if jobs <= 1 or len(paths) <= 1:
            return [self.validate(p) for p in paths]
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            return list(pool.map(self.validate, paths))
