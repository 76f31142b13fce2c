"""
Parser for build recipes (Dockerfile / Containerfile grammar), producing an
ordered list of stages with their directives.
"""
import json
import logging
import re
import shlex
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import ParseError
from ..MODELS.recipe_ast import Directive, DirectiveKind, Recipe, Stage

logger = logging.getLogger(__name__)

# Parser directives may only appear before any other line: `# escape=``
PARSER_DIRECTIVE = re.compile(r'^#\s*([A-Za-z][A-Za-z0-9]*)\s*=\s*(\S+)\s*$')
INSTRUCTION = re.compile(r'^([A-Za-z]+)(?:\s+(.*))?$')
FLAG = re.compile(r'^--([A-Za-z][A-Za-z0-9-]*)(?:=(\S*))?(?:\s+|$)')
STAGE_NAME = re.compile(r'^[A-Za-z][A-Za-z0-9_.-]*$')
# `<<EOF`, `<<-EOF` or `<<"EOF"` on RUN, COPY and ADD; not the `<<<` here-string
HEREDOC = re.compile(r'(?<![<\w])<<(-?)(["\']?)([A-Za-z_][A-Za-z0-9_]*)\2')
HEREDOC_KEYWORDS = {"RUN", "COPY", "ADD"}

# Instructions whose arguments may start with --flag options
FLAG_KINDS = {DirectiveKind.COPY, DirectiveKind.ADD, DirectiveKind.RUN, DirectiveKind.HEALTHCHECK}
# Instructions that accept the JSON exec form
EXEC_KINDS = {
    DirectiveKind.RUN, DirectiveKind.CMD, DirectiveKind.ENTRYPOINT, DirectiveKind.SHELL,
    DirectiveKind.COPY, DirectiveKind.ADD, DirectiveKind.VOLUME,
}
# Instructions whose shell form is split into words
TOKENIZED_KINDS = {
    DirectiveKind.COPY, DirectiveKind.ADD, DirectiveKind.EXPOSE, DirectiveKind.LABEL,
    DirectiveKind.ARG, DirectiveKind.VOLUME,
}


class RecipeParser:
    """
    Parser for multi-stage build recipes.
    """
    def parse(self, recipe_path: str) -> Recipe:
        """
        Parses a recipe from a file path.

        Args:
            recipe_path (str): Path to the Dockerfile or Containerfile.

        Returns:
            Recipe: The parsed recipe.
        """
        with open(recipe_path, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.parse_from_string(content, path=recipe_path)

    def parse_from_string(self, content: str, path: Optional[str] = None) -> Recipe:
        """
        Parses a recipe from a string.

        Args:
            content (str): Content of the recipe.
            path (str): Where the content came from, kept on the Recipe.

        Returns:
            Recipe: The parsed recipe.

        Raises:
            ParseError: If a line is malformed; the error names the line.
        """
        global_args: List[Directive] = []
        stages: List[Stage] = []
        current: Optional[Dict] = None
        names = set()

        for line_no, text, heredocs in self._logical_lines(content):
            match = INSTRUCTION.match(text)
            if not match:
                raise ParseError(f"malformed instruction: {text!r}", line_no)
            keyword = match.group(1).upper()
            args_str = (match.group(2) or '').strip()
            if not args_str:
                raise ParseError(f"{keyword} requires at least one argument", line_no)

            if keyword == "FROM":
                if current is not None:
                    stages.append(Stage(**current))
                current = self._parse_from(args_str, len(stages), line_no)
                if current['name']:
                    if current['name'] in names:
                        raise ParseError(f"duplicate stage name '{current['name']}'", line_no)
                    names.add(current['name'])
                continue

            try:
                kind = DirectiveKind(keyword)
            except ValueError:
                raise ParseError(f"unknown instruction '{keyword}'", line_no) from None

            directive = self._parse_directive(kind, args_str, text, line_no, heredocs)
            if current is None:
                if kind != DirectiveKind.ARG:
                    raise ParseError(f"{keyword} before the first FROM", line_no)
                global_args.append(directive)
            else:
                current['directives'].append(directive)

        if current is None:
            raise ParseError("recipe declares no stages (missing FROM)")
        stages.append(Stage(**current))

        logger.debug("Parsed %d stage(s) from %s", len(stages), path or "<string>")
        return Recipe(path=path, global_args=global_args, stages=stages)

    def _logical_lines(self, content: str) -> Iterator[Tuple[int, str, List[str]]]:
        """
        Joins continuation lines and drops comments, yielding
        (first line number, instruction text, heredoc bodies).
        """
        lines = content.splitlines()
        escape = '\\'

        start = 0
        while start < len(lines):
            match = PARSER_DIRECTIVE.match(lines[start].strip())
            if not match:
                break
            if match.group(1).lower() == 'escape':
                if match.group(2) not in ('\\', '`'):
                    raise ParseError(f"invalid escape character {match.group(2)!r}", start + 1)
                escape = match.group(2)
            start += 1

        parts: List[str] = []
        first: Optional[int] = None
        index = start
        while index < len(lines):
            line_no = index + 1
            stripped = lines[index].strip()
            index += 1
            # Comments and blank lines are dropped, even inside a continuation
            if not stripped or stripped.startswith('#'):
                continue
            if first is None:
                first = line_no
            if stripped.endswith(escape):
                parts.append(stripped[:-1].strip())
                continue
            parts.append(stripped)
            text = ' '.join(p for p in parts if p)
            bodies: List[str] = []
            if text.split(None, 1)[0].upper() in HEREDOC_KEYWORDS:
                for heredoc in HEREDOC.finditer(text):
                    body, index = self._read_heredoc(lines, index, heredoc.group(3),
                                                     bool(heredoc.group(1)), first)
                    bodies.append(body)
            yield first, text, bodies
            parts, first = [], None

        if parts:
            text = ' '.join(p for p in parts if p)
            if text:
                yield first, text, []

    def _read_heredoc(self, lines: List[str], index: int, delimiter: str,
                      strip_tabs: bool, line_no: int) -> Tuple[str, int]:
        """
        Collects heredoc body lines verbatim up to the delimiter line.
        Returns the body and the index of the line after the delimiter.
        """
        body = []
        while index < len(lines):
            line = lines[index]
            index += 1
            if strip_tabs:
                line = line.lstrip('\t')
            if line.rstrip() == delimiter:
                return '\n'.join(body), index
            body.append(line)
        raise ParseError(f"unterminated heredoc '{delimiter}'", line_no)

    def _parse_from(self, args_str: str, index: int, line_no: int) -> Dict:
        flags, rest = self._split_flags(args_str)
        tokens = rest.split()
        name = None
        if len(tokens) == 3 and tokens[1].upper() == "AS":
            name = tokens[2]
            if not STAGE_NAME.match(name):
                raise ParseError(f"invalid stage name '{name}'", line_no)
            name = name.lower()
        elif len(tokens) != 1:
            raise ParseError(f"malformed FROM: expected 'FROM <image> [AS <name>]', got {args_str!r}", line_no)

        platform = flags.get('platform')
        return {
            'index': index,
            'name': name,
            'base_image': tokens[0],
            'platform': platform[-1] if platform else None,
            'line': line_no,
            'directives': [],
        }

    def _parse_directive(self, kind: DirectiveKind, args_str: str, raw: str, line_no: int,
                         heredocs: Optional[List[str]] = None) -> Directive:
        flags: Dict[str, List[str]] = {}
        if kind in FLAG_KINDS:
            flags, args_str = self._split_flags(args_str)
            if not args_str:
                raise ParseError(f"{kind.value} has options but no arguments", line_no)

        exec_form = False
        if kind == DirectiveKind.HEALTHCHECK:
            args, exec_form = self._parse_healthcheck(args_str, line_no)
        else:
            args = self._parse_exec(args_str) if kind in EXEC_KINDS else None
            if args is not None:
                exec_form = True
            elif kind == DirectiveKind.ENV:
                args = self._parse_env(args_str, line_no)
            elif kind in TOKENIZED_KINDS:
                args = self._tokenize(args_str, line_no)
            else:
                args = [args_str]

        if kind in (DirectiveKind.COPY, DirectiveKind.ADD) and len(args) < 2:
            raise ParseError(f"{kind.value} requires at least one source and a destination", line_no)
        if kind == DirectiveKind.LABEL and any('=' not in a for a in args):
            raise ParseError("LABEL expects key=value pairs", line_no)

        return Directive(kind=kind, arguments=args, flags=flags, exec_form=exec_form,
                         heredocs=heredocs or [], raw=raw, line=line_no)

    def _split_flags(self, args_str: str) -> Tuple[Dict[str, List[str]], str]:
        """
        Splits leading `--name[=value]` options off an argument string.
        Repeated options (RUN --mount) keep every value.
        """
        flags: Dict[str, List[str]] = {}
        rest = args_str
        while True:
            match = FLAG.match(rest)
            if not match:
                break
            value = match.group(2) if match.group(2) is not None else "true"
            flags.setdefault(match.group(1).lower(), []).append(value)
            rest = rest[match.end():]
        return flags, rest.strip()

    def _parse_exec(self, args_str: str) -> Optional[List[str]]:
        """
        Decodes the JSON exec form. Returns None when the string is not a
        JSON array of strings, in which case it is shell form.
        """
        if not (args_str.startswith('[') and args_str.endswith(']')):
            return None
        try:
            args = json.loads(args_str)
        except json.JSONDecodeError:
            return None
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            return None
        return args

    def _parse_env(self, args_str: str, line_no: int) -> List[str]:
        tokens = self._tokenize(args_str, line_no)
        if '=' in tokens[0]:
            if any('=' not in t for t in tokens):
                raise ParseError("ENV mixes KEY=VALUE and KEY VALUE forms", line_no)
            return tokens
        # Legacy `ENV KEY value with spaces`
        parts = args_str.split(None, 1)
        if len(parts) != 2:
            raise ParseError(f"ENV {parts[0]} is missing a value", line_no)
        return [f"{parts[0]}={parts[1]}"]

    def _parse_healthcheck(self, args_str: str, line_no: int) -> Tuple[List[str], bool]:
        head, _, rest = args_str.partition(' ')
        head = head.upper()
        if head == "NONE":
            return ["NONE"], False
        if head != "CMD" or not rest.strip():
            raise ParseError("HEALTHCHECK expects 'CMD <command>' or 'NONE'", line_no)
        command = self._parse_exec(rest.strip())
        if command is not None:
            return ["CMD"] + command, True
        return ["CMD", rest.strip()], False

    def _tokenize(self, args_str: str, line_no: int) -> List[str]:
        try:
            tokens = shlex.split(args_str)
        except ValueError as e:
            raise ParseError(f"cannot split arguments: {e}", line_no) from None
        if not tokens:
            raise ParseError("missing arguments", line_no)
        return tokens
