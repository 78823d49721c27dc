"""
Root Typer application for the awsm-env CLI.

    awsm-env [SPEC] [-f env|shell|json] [-o FILE] [-v KEY=value]... [-p name=value]...

Reads the spec file, resolves every declaration and writes the result to
stdout (or ``--output``).  Any failure prints ``Error <phase>: <message>``
to stderr and exits 1 without writing the output file.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from awsm_env.cli.utils import fail, parse_pairs
from awsm_env.core.aws import build_providers
from awsm_env.core.errors import ParseError, ResolutionError
from awsm_env.core.formatters import OutputFormat, get_formatter
from awsm_env.core.logging import LogContext, configure_logging, get_logger
from awsm_env.core.parser import parse
from awsm_env.core.resolver import Resolver
from awsm_env.core.settings import load_settings

logger = get_logger(__name__)

app = typer.Typer(
    name="awsm-env",
    help="Resolve an annotated .env spec file using AWS Secrets Manager and SSM Parameter Store.",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("awsm-env")
        except PackageNotFoundError:
            from awsm_env import __version__ as v
        typer.echo(f"awsm-env {v}")
        raise typer.Exit()


@app.command()
def main(
    spec: Path = typer.Argument(
        Path(".env.example"),
        help="Path to the spec file.",
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.ENV,
        "--format",
        "-f",
        help="Output format.",
        case_sensitive=False,
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the output to this file instead of stdout.",
    ),
    variables: list[str] | None = typer.Option(
        None,
        "--var",
        "-v",
        help="KEY=value to add or override in the output. Repeatable.",
    ),
    placeholders: list[str] | None = typer.Option(
        None,
        "--placeholder",
        "-p",
        help="name=value used for $name placeholders in secret ids. Repeatable.",
    ),
    region: str | None = typer.Option(None, "--region", help="AWS region [env: AWSM_ENV_REGION]."),
    profile: str | None = typer.Option(None, "--profile", help="AWS profile [env: AWSM_ENV_PROFILE]."),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="DEBUG, INFO, WARNING or ERROR [env: AWSM_ENV_LOG_LEVEL].",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        help="Query Secrets Manager and Parameter Store one after the other.",
    ),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Resolve SPEC and print the resulting environment."""
    overrides = parse_pairs(variables)
    placeholder_values = parse_pairs(placeholders)

    try:
        settings = load_settings(
            region=region,
            profile=profile,
            log_level=log_level,
            concurrent=False if sequential else None,
        )
    except ValidationError as e:
        fail("loading settings", e)

    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        force=True,
    )

    with LogContext(source=str(spec)):
        try:
            text = spec.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            fail("reading file", e)

        try:
            entries = parse(text, source=str(spec))
        except ParseError as e:
            fail("parsing file", e)

        logger.debug("spec_parsed", entries=len(entries))

        resolver = Resolver(build_providers(settings), concurrent=settings.concurrent)
        try:
            env = resolver.resolve(entries, overrides, placeholder_values)
        except ResolutionError as e:
            logger.debug("resolution_failed", **e.to_dict())
            fail("fetching secrets", e)

    rendered = get_formatter(output_format).format(env)

    if output is None:
        typer.echo(rendered, nl=False)
        return

    try:
        output.write_text(rendered, encoding="utf-8")
    except OSError as e:
        fail("writing output", e)
