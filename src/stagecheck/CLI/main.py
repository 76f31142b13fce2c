"""
Command Line Interface for stagecheck.
"""
import logging
import click

from ..errors import ConfigError, ParseError, UnknownStageReference
from ..CONVERTERS.to_report import ReportConverter
from ..MODELS.findings import Severity
from ..PARSERS.config_parser import ConfigParser
from ..PARSERS.recipe_parser import RecipeParser
from ..POLICIES.rules import RULES, unknown_rules
from ..RUNNERS.recipe_validator import RecipeValidator
from ..RUNNERS.reference_resolver import ReferenceResolver
from ..UTILS.recipe_finder import find_recipes

EXIT_BLOCKING = 1
EXIT_FATAL = 2

SEVERITIES = [s.value for s in Severity]


def configure_logging(verbose: bool):
    """
    Installs a single stderr handler on the package logger.
    """
    logger = logging.getLogger("stagecheck")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    # One handler per invocation
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, verbose):
    """
    stagecheck - validate multi-stage container build recipes.

    Parses Dockerfiles and Containerfiles, checks references between
    stages and reports production policy findings.
    """
    ctx.ensure_object(dict)
    configure_logging(verbose)


@cli.command()
@click.argument('paths', nargs=-1, type=click.Path())
@click.option('--format', '-F', 'output_format', type=click.Choice(['text', 'json']), default='text',
              help='Output format')
@click.option('--config', '-c', 'config_path', default=None, help='Config file (default: .stagecheck.yml)')
@click.option('--fail-on', type=click.Choice(SEVERITIES), default=None,
              help='Lowest severity that makes the run fail')
@click.option('--disable', '-d', multiple=True, help='Disable a rule by id or name (repeatable)')
@click.option('--jobs', '-j', type=click.IntRange(min=1), default=1, help='Recipes validated in parallel')
@click.pass_context
def check(ctx, paths, output_format, config_path, fail_on, disable, jobs):
    """Validate recipes and report findings."""
    try:
        config = ConfigParser().load(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_FATAL)

    unknown = unknown_rules(disable)
    if unknown:
        click.echo(f"Error: unknown rule(s) {', '.join(unknown)}", err=True)
        ctx.exit(EXIT_FATAL)

    updates = {}
    if fail_on:
        updates['fail_on'] = Severity(fail_on)
    if disable:
        updates['disabled_rules'] = list(config.disabled_rules) + list(disable)
    if updates:
        config = config.model_copy(update=updates)

    recipes = find_recipes(paths or ('.',), config.recipe_globs)
    if not recipes:
        click.echo("Error: no recipes found.", err=True)
        ctx.exit(EXIT_FATAL)

    reports = RecipeValidator(config).validate_many(recipes, jobs=jobs)
    converter = ReportConverter(reports, fail_on=config.fail_on)
    if output_format == 'json':
        click.echo(converter.to_json())
    else:
        click.echo(converter.to_text(), nl=False)

    if any(r.failed for r in reports):
        ctx.exit(EXIT_FATAL)
    if any(r.is_blocking(config.fail_on) for r in reports):
        ctx.exit(EXIT_BLOCKING)


@cli.command()
@click.argument('path', type=click.Path())
@click.pass_context
def stages(ctx, path):
    """Show the stages of a recipe and the references between them."""
    try:
        recipe = RecipeParser().parse(path)
        references = ReferenceResolver().resolve(recipe.stages)
    except (OSError, UnicodeDecodeError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_FATAL)
    except (ParseError, UnknownStageReference) as e:
        click.echo(f"Error: {path}: {e}", err=True)
        ctx.exit(EXIT_FATAL)

    click.echo(f"{'#':3} {'STAGE':15} {'LINE':5} {'DIRECTIVES':10} BASE")
    click.echo("-" * 50)
    for stage in recipe.stages:
        click.echo(f"{stage.index:<3} {stage.identifier:15} {stage.line:<5} "
                   f"{len(stage.directives):<10} {stage.base_image}")

    if references:
        click.echo("")
        for ref in references:
            click.echo(f"{ref.source} <- {ref.target} ({ref.kind.value}, line {ref.line})")


@cli.command()
def rules():
    """List the built-in policy rules"""
    click.echo(f"{'ID':6} {'NAME':18} {'SEVERITY':8} DESCRIPTION")
    click.echo("-" * 60)
    for rule_id, r in sorted(RULES.items()):
        click.echo(f"{rule_id:6} {r.name:18} {r.severity.value:8} {r.description}")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
