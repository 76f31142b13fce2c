import random
import string
from stagecheck.errors import ParseError, UnknownStageReference
from stagecheck.PARSERS.recipe_parser import RecipeParser
from stagecheck.RUNNERS.recipe_validator import RecipeValidator

KEYWORDS = ["FROM", "RUN", "COPY", "ENV", "USER", "HEALTHCHECK", "CMD", "LABEL", "ARG", "AS", "--from="]


def random_string(length):
    return ''.join(random.choice(string.printable) for _ in range(length))


def random_recipe(lines):
    out = []
    for _ in range(lines):
        words = [random.choice(KEYWORDS)] + [random_string(random.randint(0, 8)) for _ in range(3)]
        out.append(' '.join(words))
    return '\n'.join(out)


def test_fuzz_recipe_parser():
    parser = RecipeParser()
    for _ in range(200):
        content = random_string(random.randint(0, 1000))
        try:
            parser.parse_from_string(content)
        except ParseError:
            pass


def test_fuzz_validator_never_raises():
    validator = RecipeValidator()
    for _ in range(200):
        report = validator.validate_string(random_recipe(random.randint(0, 20)))
        assert report.failed or report.stages


def test_fuzz_resolver_only_points_backwards():
    parser = RecipeParser()
    validator = RecipeValidator()
    for _ in range(100):
        count = random.randint(1, 6)
        lines = []
        for i in range(count):
            lines.append(f"FROM alpine:3.19 AS s{i}")
            lines.append(f"COPY --from=s{random.randint(0, count - 1)} /a /a")
        content = '\n'.join(lines)
        try:
            references = validator.resolver.resolve(parser.parse_from_string(content).stages)
        except UnknownStageReference:
            continue
        for ref in references:
            assert int(ref.target[1:]) < int(ref.source[1:])


def test_edge_cases_parsers():
    parser = RecipeParser()
    parser.parse_from_string("FROM alpine")
    parser.parse_from_string("FROM alpine\n   \n\t  ")
    parser.parse_from_string("FROM alpine\nRUN " + "a" * 10000)
    parser.parse_from_string("FROM alpine\n" + "RUN echo \\\n" * 100 + "hello")
