"""
Resolution of references between build stages (COPY --from, FROM <stage>,
RUN --mount=from=<stage>).
"""
import logging
from typing import Dict, List, Optional

from ..errors import UnknownStageReference
from ..MODELS.recipe_ast import Directive, DirectiveKind, ReferenceKind, Stage, StageReference
from ..REGISTRY.image_reference import ImageReference

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """
    Checks that every stage reference points at a stage declared earlier
    in the recipe.
    """
    def resolve(self, stages: List[Stage]) -> List[StageReference]:
        """
        Resolves all stage references in declaration order.

        :param stages: The parsed stages, in recipe order.
        :return: The resolved references, in source order.
        :raises UnknownStageReference: If a reference names a stage that is
            not declared before the referencing stage (this includes self
            and forward references).
        """
        seen: Dict[str, Stage] = {}
        references = []

        for stage in stages:
            # FROM accepts stage names only, never indices
            base = seen.get(stage.base_image.lower())
            if base is not None and base.name == stage.base_image.lower():
                references.append(StageReference(
                    source=stage.identifier, target=base.identifier,
                    kind=ReferenceKind.BASE, line=stage.line,
                ))

            for directive in stage.directives:
                for kind, value in self._targets(directive):
                    target = self._lookup(value, stage, seen, directive.line)
                    if target is None:
                        continue
                    references.append(StageReference(
                        source=stage.identifier, target=target.identifier,
                        kind=kind, line=directive.line,
                    ))

            seen[str(stage.index)] = stage
            if stage.name:
                seen[stage.name] = stage

        logger.debug("Resolved %d stage reference(s)", len(references))
        return references

    def _targets(self, directive: Directive):
        """
        Yields (kind, value) for each stage a directive reads from.
        """
        if directive.kind in (DirectiveKind.COPY, DirectiveKind.ADD):
            value = directive.flag("from")
            if value:
                yield ReferenceKind.COPY, value
        elif directive.kind == DirectiveKind.RUN:
            for mount in directive.flags.get("mount", []):
                options = dict(
                    part.split("=", 1) for part in mount.split(",") if "=" in part
                )
                if options.get("from"):
                    yield ReferenceKind.MOUNT, options["from"]

    def _lookup(self, value: str, stage: Stage,
                seen: Dict[str, Stage], line: int) -> Optional[Stage]:
        """
        Finds the stage `value` refers to among the stages already seen.
        Returns None for external images.
        """
        if ImageReference.looks_like_image(value):
            logger.debug("Line %d: '%s' is an external image, not a stage", line, value)
            return None

        target = seen.get(value.lower())
        if target is None or target.index >= stage.index:
            raise UnknownStageReference(value, stage.identifier, line)
        return target
