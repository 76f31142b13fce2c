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
Built-in production policy rules.

Each rule is a generator taking the parsed recipe and the active configuration
and yielding (stage, line, message) hits. The checker turns hits into
PolicyViolation findings with the rule's (possibly overridden) severity.
"""
import fnmatch
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..MODELS.findings import Severity
from ..MODELS.recipe_ast import DirectiveKind, Recipe, Stage
from ..MODELS.validator_config import ValidatorConfig
from ..REGISTRY.image_reference import ImageReference
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)

Hit = Tuple[Stage, Optional[int], str]
CheckFunction = Callable[[Recipe, ValidatorConfig], Iterator[Hit]]


@dataclass(frozen=True)
class Rule:
    """A named policy rule."""
    id: str
    name: str
    severity: Severity
    description: str
    check: CheckFunction


RULES: Dict[str, Rule] = {}


def rule(rule_id: str, name: str, severity: Severity, description: str):
    """Registers a check function as a rule."""
    def register(func: CheckFunction) -> CheckFunction:
        RULES[rule_id] = Rule(rule_id, name, severity, description, func)
        return func
    return register


def unknown_rules(references) -> List[str]:
    """Returns the rule references (ids or names) that match no registered rule."""
    known = {r.id.lower() for r in RULES.values()} | {r.name.lower() for r in RULES.values()}
    return [ref for ref in references if ref.lower() not in known]


ROOT_USERS = {"root", "0"}

DEFAULT_SECRET_PATTERNS = (
    ".env", ".env.*", "*.pem", "*.key", "*.p12", "*.pfx", "*.jks", "*.keystore",
    "id_rsa*", "id_dsa*", "id_ecdsa*", "id_ed25519*",
    ".npmrc", ".pypirc", ".netrc", ".git-credentials", ".htpasswd",
    "credentials", "credentials.json", "*secret*", ".aws", ".ssh", ".gnupg",
)
# Templates checked into repos alongside real secrets
SAFE_SUFFIXES = (".example", ".sample", ".template", ".dist")

SECRET_KEY = re.compile(
    r'(?i)(password|passwd|secret|token|api[_-]?key|private[_-]?key|access[_-]?key|credentials?)'
)
RECOMMENDED_LABELS = ("org.opencontainers.image.source", "org.opencontainers.image.version")
COMMAND_SEPARATOR = re.compile(r"&&|\|\||[;\n]")


def _is_root(user: str) -> bool:
    name = user.strip().split(":", 1)[0]
    return name.lower() in ROOT_USERS


@rule("SC001", "non-root-user", Severity.ERROR,
      "The final stage must switch to a non-root USER.")
def check_non_root_user(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    final = recipe.final_stage
    user = recipe.inherited(final, DirectiveKind.USER)
    if user is None:
        yield final, final.line, "final stage runs as root: no USER directive"
    elif _is_root(user.arguments[0]):
        yield final, user.line, f"final stage runs as root (USER {user.arguments[0]})"


@rule("SC002", "healthcheck", Severity.WARNING,
      "The final stage should define a HEALTHCHECK.")
def check_healthcheck(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    final = recipe.final_stage
    healthcheck = recipe.inherited(final, DirectiveKind.HEALTHCHECK)
    if healthcheck is None:
        yield final, final.line, "missing HEALTHCHECK in final stage"
    elif healthcheck.arguments[0].upper() == "NONE":
        yield final, healthcheck.line, "HEALTHCHECK is disabled (HEALTHCHECK NONE)"


def _matches_secret(source: str, patterns) -> Optional[str]:
    path = source.rstrip("/")
    if not path or path == ".":
        return None
    for part in path.split("/"):
        part = part.lower()
        if not part or part.endswith(SAFE_SUFFIXES):
            continue
        for pattern in patterns:
            if fnmatch.fnmatchcase(part, pattern.lower()):
                return pattern
    return None


@rule("SC003", "no-secrets-copied", Severity.ERROR,
      "COPY/ADD must not bring credential files into the image.")
def check_secrets_copied(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    patterns = DEFAULT_SECRET_PATTERNS + tuple(config.secret_patterns)
    for stage in recipe.stages:
        for directive in stage.directives_of(DirectiveKind.COPY, DirectiveKind.ADD):
            for source in directive.sources:
                pattern = _matches_secret(source, patterns)
                if pattern:
                    yield (stage, directive.line,
                           f"{directive.kind.value} of credential-like file '{source}' (matches '{pattern}')")


@rule("SC004", "pinned-base-image", Severity.WARNING,
      "Base images should be pinned to a version tag or digest, not 'latest'.")
def check_pinned_base_image(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    args = recipe.global_arg_defaults()
    for stage in recipe.stages:
        if recipe.stage_named(stage.base_image, before=stage.index) is not None:
            continue
        image = stage.base_image
        if EnvironmentInterpolator.has_variables(image):
            try:
                image = EnvironmentInterpolator.interpolate(image, args)
            except KeyError:
                logger.debug("Line %d: cannot expand base image %s", stage.line, image)
                continue
        if image.lower() == "scratch":
            continue
        try:
            reference = ImageReference.parse(image)
        except ValueError as e:
            yield stage, stage.line, f"invalid base image '{image}': {e}"
            continue
        if not reference.is_pinned:
            yield (stage, stage.line,
                   f"base image '{image}' is not pinned (resolves to tag '{reference.effective_tag}')")


@rule("SC005", "exec-form-cmd", Severity.INFO,
      "CMD and ENTRYPOINT should use the exec (JSON array) form so signals reach the process.")
def check_exec_form(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    final = recipe.final_stage
    for directive in final.directives_of(DirectiveKind.CMD, DirectiveKind.ENTRYPOINT):
        if not directive.exec_form:
            yield final, directive.line, f"{directive.kind.value} uses shell form"


@rule("SC006", "secret-in-env", Severity.ERROR,
      "ENV and ARG must not hard-code secret values.")
def check_secret_in_env(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    for stage in recipe.stages:
        directives = stage.directives_of(DirectiveKind.ENV, DirectiveKind.ARG)
        if stage.index == 0:
            directives = recipe.global_args + directives
        for directive in directives:
            for key, value in directive.assignments():
                if not value or EnvironmentInterpolator.has_variables(value):
                    continue
                if SECRET_KEY.search(key):
                    yield stage, directive.line, f"{directive.kind.value} {key} hard-codes a secret value"


def _stage_env(recipe: Recipe, stage: Stage) -> Dict[str, str]:
    env = {}
    for ancestor in reversed(recipe.lineage(stage)):
        for directive in ancestor.directives_of(DirectiveKind.ENV):
            env.update((k, v or "") for k, v in directive.assignments())
    return env


@rule("SC007", "package-cache", Severity.INFO,
      "Package installs should not leave their download cache in the layer.")
def check_package_cache(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    for stage in recipe.stages:
        env = _stage_env(recipe, stage)
        for directive in stage.directives_of(DirectiveKind.RUN):
            command = " ".join(directive.arguments + directive.heredocs)
            messages = []
            for segment in COMMAND_SEPARATOR.split(command):
                if re.search(r'\bapk\s+add\b', segment) and "--no-cache" not in segment:
                    messages.append("apk add without --no-cache")
                if (re.search(r'\bpip3?\s+install\b', segment) and "--no-cache-dir" not in segment
                        and not env.get("PIP_NO_CACHE_DIR")):
                    messages.append("pip install without --no-cache-dir")
            # List cleanup may sit in any command of the RUN
            if (re.search(r'\bapt-get\s+install\b', command)
                    and "/var/lib/apt/lists" not in command):
                messages.append("apt-get install without removing /var/lib/apt/lists")
            for message in dict.fromkeys(messages):
                yield stage, directive.line, message


@rule("SC008", "oci-labels", Severity.INFO,
      "The final image should carry OCI source and version labels.")
def check_oci_labels(recipe: Recipe, config: ValidatorConfig) -> Iterator[Hit]:
    final = recipe.final_stage
    labels = set()
    for ancestor in recipe.lineage(final):
        for directive in ancestor.directives_of(DirectiveKind.LABEL):
            labels.update(k for k, _ in directive.assignments())
    missing = [label for label in RECOMMENDED_LABELS if label not in labels]
    if missing:
        yield final, final.line, f"missing OCI label(s): {', '.join(missing)}"
