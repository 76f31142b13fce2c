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
Parser for the validator configuration file (.stagecheck.yml).
"""
import logging
import os
from typing import Dict, Optional

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from ..errors import ConfigError
from ..MODELS.findings import Severity
from ..MODELS.validator_config import ValidatorConfig
from ..POLICIES.rules import unknown_rules
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".stagecheck.yml"
ENV_FAIL_ON = "STAGECHECK_FAIL_ON"
ENV_DISABLE = "STAGECHECK_DISABLE"


class ConfigParser:
    """
    Loads a ValidatorConfig from YAML, interpolating variables in its values and
    applying STAGECHECK_* environment overrides.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None, base_dir: str = "."):
        """
        Initializes the parser.

        :param context: Variables for interpolation and overrides. Defaults to
            the process environment layered over `<base_dir>/.env`.
        :param base_dir: Directory searched for the default config and .env file.
        """
        self.base_dir = base_dir
        if context is None:
            context = {
                k: v for k, v in dotenv_values(os.path.join(base_dir, ".env")).items()
                if v is not None
            }
            context.update(os.environ)
        self.context = context

    def load(self, config_path: Optional[str] = None) -> ValidatorConfig:
        """
        Loads the configuration from `config_path`, or from .stagecheck.yml in
        the base directory when present, or the defaults otherwise.

        :param config_path: Explicit configuration file. Must exist.
        :return: The configuration with environment overrides applied.
        :raises ConfigError: If the file is missing, unreadable or invalid.
        """
        if config_path is None:
            default = os.path.join(self.base_dir, DEFAULT_CONFIG_FILE)
            config_path = default if os.path.exists(default) else None

        if config_path is None:
            config = ValidatorConfig()
        else:
            config = self.parse(config_path)
        return self.apply_environment(config)

    def parse(self, config_path: str) -> ValidatorConfig:
        """
        Parses a configuration file from a path.

        :param config_path: Path to the YAML file.
        :return: Parsed configuration.
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(f"cannot read config {config_path}: {e}") from e
        logger.debug("Loading configuration from %s", config_path)
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> ValidatorConfig:
        """
        Parses a configuration from a YAML string. Variables are expanded in
        the parsed string values only, so comments and keys are left alone.

        :param content: YAML content.
        :return: Parsed configuration.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in config: {e}") from e
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("config must be a mapping")

        # Accept kebab-case keys (fail-on) as well as snake_case
        data = {str(k).replace('-', '_'): self._interpolate(v) for k, v in data.items()}
        try:
            config = ValidatorConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"invalid config: {e}") from e
        self._check_rules(config.disabled_rules, "disabled_rules")
        self._check_rules(config.severity_overrides, "severity_overrides")
        return config

    def _interpolate(self, value):
        if isinstance(value, str):
            try:
                return EnvironmentInterpolator.interpolate(value, self.context)
            except KeyError as e:
                raise ConfigError(f"config interpolation failed: {e}") from e
        if isinstance(value, list):
            return [self._interpolate(v) for v in value]
        if isinstance(value, dict):
            return {k: self._interpolate(v) for k, v in value.items()}
        return value

    @staticmethod
    def _check_rules(references, source: str):
        unknown = unknown_rules(references)
        if unknown:
            raise ConfigError(f"{source}: unknown rule(s) {', '.join(unknown)}")

    def apply_environment(self, config: ValidatorConfig) -> ValidatorConfig:
        """
        Applies STAGECHECK_FAIL_ON and STAGECHECK_DISABLE overrides.
        """
        updates = {}
        fail_on = self.context.get(ENV_FAIL_ON)
        if fail_on:
            try:
                updates['fail_on'] = Severity(fail_on.strip().lower())
            except ValueError:
                raise ConfigError(f"{ENV_FAIL_ON} must be one of info, warning, error") from None
        disable = self.context.get(ENV_DISABLE)
        if disable:
            extra = [r.strip() for r in disable.split(',') if r.strip()]
            self._check_rules(extra, ENV_DISABLE)
            updates['disabled_rules'] = list(config.disabled_rules) + extra
        if updates:
            config = config.model_copy(update=updates)
        return config
