import sys
from typing import List, Tuple

import click
import yaml

from accessfrost import SpecLoadingError
from accessfrost.config import Settings
from accessfrost.error import RepositoryError
from accessfrost.feedback import AccessProviderFeedback, ListFeedbackHandler
from accessfrost.models import AccessProvider
from accessfrost.run_context import RunContext
from accessfrost.snowflake_connector import SnowflakeConnector
from accessfrost.snowflake_repository import SnowflakeRepository
from accessfrost.spec_file_loader import load_spec
from accessfrost.sync_from_target import AccessFromTargetSyncer
from accessfrost.sync_to_target import AccessToTargetSyncer

from .cli import cli


def print_feedback(feedback: AccessProviderFeedback):
    """Prints the outcome for one access provider with a colored prefix"""
    name = feedback.actual_name or feedback.external_id or ""
    label = f"{feedback.access_provider} ({name})" if name else feedback.access_provider

    if feedback.errors:
        for error in feedback.errors:
            click.secho(f"[ERROR] {label}: {error}", fg="red")
    else:
        click.secho(f"[SUCCESS] {label}", fg="green")

    for warning in feedback.warnings:
        click.secho(f"[WARNING] {label}: {warning}", fg="yellow")


def load_specs(spec) -> Tuple[Settings, List[AccessProvider]]:
    """
    Load the access provider file and exit on validation errors.
    """
    try:
        click.secho("Confirming spec loads successfully")
        spec_data = load_spec(spec)
        click.secho("Access provider file successfully loaded", fg="green")
    except SpecLoadingError as exc:
        for line in str(exc).splitlines():
            click.secho(line, fg="red")
        sys.exit(1)

    settings = Settings.from_dict(spec_data.get("settings"))
    access_providers = [
        AccessProvider.from_dict(access_provider)
        for access_provider in spec_data.get("access_providers") or []
    ]

    return settings, access_providers


@cli.command()  # type: ignore
@click.argument("spec")
@click.option("--dry", help="Do not actually run, just print the SQL.", is_flag=True)
@click.option(
    "--feedback",
    "feedback_file",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the feedback for every access provider to this YAML file.",
)
def export(spec, dry, feedback_file):
    """
    Apply the access providers in the provided file to Snowflake
    """
    settings, access_providers = load_specs(spec)

    repository = SnowflakeRepository(SnowflakeConnector(), dry_run=dry)
    context = RunContext(repository, settings)
    feedback_handler = ListFeedbackHandler()

    try:
        AccessToTargetSyncer(context, feedback_handler).sync(access_providers)
    except RepositoryError as exc:
        click.secho(f"[ERROR] {exc}", fg="red")
        sys.exit(1)

    if dry:
        click.secho()
        click.secho("SQL Commands generated for given access providers:")
        click.secho()
        for statement in repository.executed:
            click.secho(f"[PENDING] {statement};", fg="cyan")
        click.secho()

    for feedback in feedback_handler.feedback:
        print_feedback(feedback)

    if feedback_file:
        with open(feedback_file, "w") as stream:
            yaml.safe_dump(
                {"feedback": feedback_handler.to_list()}, stream, sort_keys=False
            )

    if any(feedback.errors for feedback in feedback_handler.feedback):
        sys.exit(1)


@cli.command(name="import")  # type: ignore
@click.argument("spec")
@click.option(
    "--output",
    required=True,
    type=click.Path(dir_okay=False, writable=True),
    help="YAML file the imported access providers are written to.",
)
def import_(spec, output):
    """
    Read roles, shares and policies from Snowflake as access providers
    """
    settings, _ = load_specs(spec)

    context = RunContext(SnowflakeRepository(SnowflakeConnector()), settings)

    try:
        access_providers = AccessFromTargetSyncer(context).sync()
    except RepositoryError as exc:
        click.secho(f"[ERROR] {exc}", fg="red")
        sys.exit(1)

    with open(output, "w") as stream:
        yaml.safe_dump(
            {
                "access_providers": [
                    access_provider.to_dict() for access_provider in access_providers
                ]
            },
            stream,
            sort_keys=False,
        )

    click.secho(
        f"Imported {len(access_providers)} access providers into {output}", fg="green"
    )


@cli.command(name="spec-test")  # type: ignore
@click.argument("spec")
def spec_test(spec):
    """
    Validate the access provider file without connecting to Snowflake
    """
    load_specs(spec)
