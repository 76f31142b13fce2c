"""
Models for the build recipe Abstract Syntax Tree: directives, stages and the
references between stages.
"""
from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict


class DirectiveKind(str, Enum):
    """
    Build instructions accepted inside a stage. FROM is not a directive,
    it opens a new stage.
    """
    COPY = "COPY"
    RUN = "RUN"
    ENV = "ENV"
    USER = "USER"
    HEALTHCHECK = "HEALTHCHECK"
    CMD = "CMD"
    EXPOSE = "EXPOSE"
    LABEL = "LABEL"
    ADD = "ADD"
    ARG = "ARG"
    WORKDIR = "WORKDIR"
    ENTRYPOINT = "ENTRYPOINT"
    VOLUME = "VOLUME"
    SHELL = "SHELL"
    STOPSIGNAL = "STOPSIGNAL"
    ONBUILD = "ONBUILD"
    MAINTAINER = "MAINTAINER"


class ReferenceKind(str, Enum):
    """
    How one stage points at another.
    """
    COPY = "copy"    # COPY/ADD --from=<stage>
    BASE = "base"    # FROM <stage>
    MOUNT = "mount"  # RUN --mount=...,from=<stage>


class Directive(BaseModel):
    """
    Represents a single instruction inside a stage.
    """
    model_config = ConfigDict(frozen=True)

    kind: DirectiveKind
    arguments: List[str]
    flags: Dict[str, List[str]] = {}
    exec_form: bool = False
    heredocs: List[str] = []
    raw: str
    line: int

    def flag(self, name: str) -> Optional[str]:
        """
        Returns the last value given for a `--name` flag, or None.
        """
        values = self.flags.get(name)
        return values[-1] if values else None

    def assignments(self) -> List[Tuple[str, Optional[str]]]:
        """
        Splits ENV, ARG and LABEL arguments into (key, value) pairs.
        ARG without a default yields a None value.
        """
        pairs = []
        for arg in self.arguments:
            if '=' in arg:
                key, value = arg.split('=', 1)
                pairs.append((key, value))
            else:
                pairs.append((arg, None))
        return pairs

    @property
    def sources(self) -> List[str]:
        """Source paths of a COPY or ADD. Inline heredoc sources are left out."""
        return [a for a in self.arguments[:-1] if not a.startswith("<<")]

    @property
    def destination(self) -> Optional[str]:
        """Destination path of a COPY or ADD."""
        return self.arguments[-1] if self.arguments else None


class Stage(BaseModel):
    """
    One `FROM ... [AS name]` block of a recipe.
    """
    model_config = ConfigDict(frozen=True)

    index: int
    name: Optional[str] = None
    base_image: str
    platform: Optional[str] = None
    line: int
    directives: List[Directive] = []

    @property
    def identifier(self) -> str:
        """Stage name when declared, otherwise its index."""
        return self.name if self.name else str(self.index)

    def directives_of(self, *kinds: DirectiveKind) -> List[Directive]:
        return [d for d in self.directives if d.kind in kinds]

    def last(self, kind: DirectiveKind) -> Optional[Directive]:
        found = self.directives_of(kind)
        return found[-1] if found else None


class StageReference(BaseModel):
    """
    A (source, target) pair: `source` is the stage containing the reference,
    `target` is the earlier stage it points at.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: ReferenceKind
    line: int


class Recipe(BaseModel):
    """
    A parsed build recipe.
    """
    model_config = ConfigDict(frozen=True)

    path: Optional[str] = None
    global_args: List[Directive] = []
    stages: List[Stage] = []

    @property
    def final_stage(self) -> Optional[Stage]:
        return self.stages[-1] if self.stages else None

    def stage_named(self, name: str, before: Optional[int] = None) -> Optional[Stage]:
        """
        Finds a stage by name, optionally only among stages declared before
        index `before`.
        """
        name = name.lower()
        for stage in self.stages:
            if before is not None and stage.index >= before:
                break
            if stage.name == name:
                return stage
        return None

    def lineage(self, stage: Stage) -> List[Stage]:
        """
        Returns the stage followed by the earlier stages it is built FROM,
        nearest first. USER, HEALTHCHECK and LABEL are inherited along it.
        """
        chain = [stage]
        parent = self.stage_named(stage.base_image, before=stage.index)
        while parent is not None:
            chain.append(parent)
            parent = self.stage_named(parent.base_image, before=parent.index)
        return chain

    def inherited(self, stage: Stage, kind: DirectiveKind) -> Optional[Directive]:
        """
        Returns the effective (last) directive of `kind` for a stage,
        looking through the stages it is built from.
        """
        for ancestor in self.lineage(stage):
            directive = ancestor.last(kind)
            if directive is not None:
                return directive
        return None

    def global_arg_defaults(self) -> Dict[str, str]:
        """Default values of the ARGs declared before the first FROM."""
        defaults = {}
        for directive in self.global_args:
            for key, value in directive.assignments():
                if value is not None:
                    defaults[key] = value
        return defaults
