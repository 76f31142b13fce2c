import os
import pytest
from stagecheck.errors import ParseError
from stagecheck.MODELS.recipe_ast import DirectiveKind
from stagecheck.PARSERS.recipe_parser import RecipeParser

FIXTURES = os.path.join(os.path.dirname(__file__), "..", "fixtures")


def test_parse_from_string():
    content = """
    FROM python:3.9-slim AS builder
    WORKDIR /app
    COPY . .
    RUN pip install -r requirements.txt \\
        && echo "done"
    ENV PORT=8080
    CMD ["python", "app.py"]
    """
    recipe = RecipeParser().parse_from_string(content)

    assert len(recipe.stages) == 1
    stage = recipe.stages[0]
    assert stage.name == "builder"
    assert stage.base_image == "python:3.9-slim"
    assert stage.line == 2

    kinds = [d.kind for d in stage.directives]
    assert kinds == [DirectiveKind.WORKDIR, DirectiveKind.COPY, DirectiveKind.RUN,
                     DirectiveKind.ENV, DirectiveKind.CMD]

    cmd = stage.last(DirectiveKind.CMD)
    assert cmd.arguments == ["python", "app.py"]
    assert cmd.exec_form

    run = stage.last(DirectiveKind.RUN)
    assert '&& echo "done"' in run.arguments[0]
    assert run.line == 5
    assert stage.last(DirectiveKind.ENV).arguments == ["PORT=8080"]


def test_parse_annotated_python_recipe():
    recipe = RecipeParser().parse(os.path.join(FIXTURES, "python.Dockerfile"))

    assert [s.identifier for s in recipe.stages] == ["builder", "1"]
    builder, final = recipe.stages
    assert builder.line == 4
    assert len(builder.directives) == 4
    assert final.base_image == "alpine:3.19.1"
    assert final.line == 40
    assert len(final.directives) == 18
    assert recipe.final_stage is final

    healthcheck = final.last(DirectiveKind.HEALTHCHECK)
    assert healthcheck.line == 100
    assert healthcheck.flag("interval") == "30s"
    assert healthcheck.flag("retries") == "3"
    assert healthcheck.arguments[0] == "CMD"
    assert "curl --fail" in healthcheck.arguments[1]

    copies = final.directives_of(DirectiveKind.COPY)
    assert [c.flag("from") for c in copies] == ["builder", "builder", "builder"]
    assert copies[0].sources == ["/wheels"]
    assert copies[0].destination == "/wheels"

    title = [d for d in final.directives_of(DirectiveKind.LABEL)
             if d.assignments()[0][0] == "org.opencontainers.image.title"][0]
    assert title.assignments() == [("org.opencontainers.image.title", "My Python Application")]


def test_keywords_are_case_insensitive():
    recipe = RecipeParser().parse_from_string("from alpine:3.19 as Base\nuser nobody\n")
    stage = recipe.stages[0]
    assert stage.name == "base"
    assert stage.directives[0].kind == DirectiveKind.USER
    assert stage.directives[0].arguments == ["nobody"]


def test_global_args_before_first_from():
    recipe = RecipeParser().parse_from_string(
        "ARG VERSION=3.19\nARG EXTRA\nFROM alpine:${VERSION}\n"
    )
    assert len(recipe.global_args) == 2
    assert recipe.global_arg_defaults() == {"VERSION": "3.19"}
    assert recipe.stages[0].base_image == "alpine:${VERSION}"


def test_flags_are_split():
    recipe = RecipeParser().parse_from_string(
        "FROM --platform=linux/amd64 alpine:3.19 AS a\n"
        "RUN --mount=type=cache,target=/root/.cache --mount=type=bind,from=a,target=/x make\n"
        "COPY --chown=1000:1000 --from=a /src /dst\n"
    )
    stage = recipe.stages[0]
    assert stage.platform == "linux/amd64"
    run, copy = stage.directives
    assert run.flags["mount"] == ["type=cache,target=/root/.cache", "type=bind,from=a,target=/x"]
    assert run.arguments == ["make"]
    assert copy.flag("chown") == "1000:1000"
    assert copy.flag("from") == "a"
    assert copy.arguments == ["/src", "/dst"]


def test_legacy_env_form():
    recipe = RecipeParser().parse_from_string("FROM alpine:3.19\nENV GREETING hello world\n")
    env = recipe.stages[0].directives[0]
    assert env.arguments == ["GREETING=hello world"]
    assert env.assignments() == [("GREETING", "hello world")]


def test_healthcheck_none():
    recipe = RecipeParser().parse_from_string("FROM alpine:3.19\nHEALTHCHECK NONE\n")
    assert recipe.stages[0].directives[0].arguments == ["NONE"]


def test_escape_directive():
    content = "# escape=`\nFROM mcr.microsoft.com/windows/servercore:ltsc2022\nRUN echo a `\n    && echo b\n"
    recipe = RecipeParser().parse_from_string(content)
    run = recipe.stages[0].directives[0]
    assert run.arguments == ["echo a && echo b"]
    assert run.line == 3


def test_comments_inside_continuation_are_dropped():
    content = "FROM alpine:3.19\nRUN apk add \\\n# curl is for the healthcheck\n    curl\n"
    run = RecipeParser().parse_from_string(content).stages[0].directives[0]
    assert run.arguments == ["apk add curl"]


def test_invalid_json_falls_back_to_shell_form():
    recipe = RecipeParser().parse_from_string('FROM alpine:3.19\nCMD [not json]\n')
    cmd = recipe.stages[0].directives[0]
    assert cmd.arguments == ["[not json]"]
    assert not cmd.exec_form


@pytest.mark.parametrize("content, line", [
    ("RUN echo hi\nFROM alpine", 1),
    ("FROM alpine\nFROBNICATE now", 2),
    ("FROM alpine\n\nRUN", 3),
    ("FROM alpine AS", 1),
    ("FROM alpine AS 1st", 1),
    ("FROM a AS x\nFROM b AS X", 2),
    ("FROM alpine\nCOPY onlyone", 2),
    ("FROM alpine\nLABEL novalue", 2),
    ("FROM alpine\nHEALTHCHECK curl localhost", 2),
    ("FROM alpine\nCOPY 'unterminated /dst", 2),
    ("# escape=x\nFROM alpine", 1),
    ("FROM alpine\nRUN <<EOF\napk add curl\n", 2),
])
def test_parse_errors_name_the_line(content, line):
    with pytest.raises(ParseError) as excinfo:
        RecipeParser().parse_from_string(content)
    assert excinfo.value.line == line
    assert f"line {line}" in str(excinfo.value)


def test_recipe_without_from():
    with pytest.raises(ParseError):
        RecipeParser().parse_from_string("# only a comment\n")


def test_parse_missing_file():
    with pytest.raises(FileNotFoundError):
        RecipeParser().parse("non_existent_recipe_12345")


def test_run_heredoc_body_is_kept():
    content = (
        "FROM debian:12.5\n"
        "RUN <<EOF\n"
        "apt-get update\n"
        "# not a recipe comment\n"
        "apt-get install -y curl\n"
        "EOF\n"
        "USER app\n"
    )
    stage = RecipeParser().parse_from_string(content).stages[0]
    assert [d.kind for d in stage.directives] == [DirectiveKind.RUN, DirectiveKind.USER]
    run = stage.directives[0]
    assert run.arguments == ["<<EOF"]
    assert run.heredocs == ["apt-get update\n# not a recipe comment\napt-get install -y curl"]
    assert run.line == 2
    assert stage.directives[1].line == 7


def test_copy_heredoc_and_tab_stripping():
    content = (
        "FROM alpine:3.19\n"
        "COPY <<-\"CONF\" /etc/app.conf\n"
        "\tport=8080\n"
        "\tCONF\n"
        "RUN cat <<<hello\n"
    )
    stage = RecipeParser().parse_from_string(content).stages[0]
    copy, run = stage.directives
    assert copy.heredocs == ["port=8080"]
    assert copy.sources == []
    assert copy.destination == "/etc/app.conf"
    assert run.heredocs == []
