"""
Utilities for variable interpolation in configuration values and recipe
arguments.
"""
import re
from typing import Dict

# Group 1: braced name, Group 2: '-' or '+', Group 3: default/alt value,
# Group 4: bare $NAME
_PATTERN = re.compile(
    r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::(-|\+)([^}]*))?\}'
    r'|\$([A-Za-z_][A-Za-z0-9_]*)'
)


class EnvironmentInterpolator:
    """
    Utility for interpolating variables in strings.
    Supports $VAR, ${VAR}, ${VAR:-default} and ${VAR:+value}.
    """
    @staticmethod
    def interpolate(template: str, context: Dict[str, str]) -> str:
        """
        Interpolates variables in the template string using the provided context.

        :param template: The string containing $VAR / ${VAR} placeholders.
        :param context: The variables available for substitution.
        :return: The interpolated string.
        :raises KeyError: If a variable is unset and has no default.
        """
        def replace(match):
            var_name = match.group(1) or match.group(4)
            modifier = match.group(2)
            alt_value = match.group(3)

            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if value is None:
                raise KeyError(f"Variable {var_name} not found in context")
            return value

        return _PATTERN.sub(replace, template)

    @staticmethod
    def has_variables(template: str) -> bool:
        return _PATTERN.search(template) is not None
