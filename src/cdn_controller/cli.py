"""CloudFront distribution controller CLI (cdnctl).

Usage:
    cdnctl validate spec.yaml        # Check a spec without calling AWS
    cdnctl plan spec.yaml --id ID    # Preview changes against a distribution
    cdnctl apply spec.yaml           # Create or update
    cdnctl read ID                   # Show observed state
    cdnctl import ID                 # Adopt an existing distribution
    cdnctl delete ID                 # Disable, wait, delete
    cdnctl list                      # List distributions in the account
    cdnctl run                       # Operator loop (reads SPEC_PATH)
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from .config import Config, ConfigurationError
from .errors import DistributionError
from .models import DistributionSpec
from .reconciler import DistributionReconciler, stable_caller_reference
from .spec_loader import SpecLoadError, load_spec
from .state_store import StateStoreError
from .translator import validate_spec

T = TypeVar("T")

SPEC_PATH_TYPE = click.Path(exists=True, dir_okay=False, path_type=Path)


def get_reconciler(ctx: click.Context) -> DistributionReconciler:
    """Return the reconciler for this invocation.

    Built from the environment unless one was injected via ``obj``.
    """
    obj = ctx.ensure_object(dict)
    reconciler = obj.get("reconciler")
    if reconciler is None:
        try:
            reconciler = DistributionReconciler.from_config(Config.from_env())
        except (ConfigurationError, StateStoreError) as e:
            raise click.ClickException(str(e)) from e
        obj["reconciler"] = reconciler
    return reconciler


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning controller errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except DistributionError as e:
        raise click.ClickException(str(e)) from e


def load_or_fail(spec_file: Path) -> DistributionSpec:
    try:
        return load_spec(spec_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="cdnctl")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """CloudFront distribution controller (cdnctl).

    Reconciles declarative distribution specs against CloudFront.
    """
    ctx.ensure_object(dict)


# =============================================================================
# Spec Commands
# =============================================================================


@cli.command()
@click.argument("spec_file", type=SPEC_PATH_TYPE)
def validate(spec_file: Path) -> None:
    """Validate a spec file. Makes no AWS calls."""
    spec = load_or_fail(spec_file)
    try:
        validate_spec(spec)
    except DistributionError as e:
        raise click.ClickException(str(e)) from e
    click.secho(f"✓ {spec_file} is valid", fg="green")


@cli.command()
@click.argument("spec_file", type=SPEC_PATH_TYPE)
@click.option("--id", "distribution_id", help="Distribution to compare against")
@click.pass_context
def plan(ctx: click.Context, spec_file: Path, distribution_id: str | None) -> None:
    """Show the changes apply would make."""
    spec = load_or_fail(spec_file)
    if distribution_id is None:
        try:
            validate_spec(spec)
        except DistributionError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"+ distribution will be created with {len(spec.origins)} origin(s)")
        return

    change_set = run_async(get_reconciler(ctx).plan(distribution_id, spec))
    if change_set.is_empty:
        click.echo("No changes.")
        return
    for line in change_set.summary():
        click.echo(line)


@cli.command()
@click.argument("spec_file", type=SPEC_PATH_TYPE)
@click.option("--id", "distribution_id", help="Distribution to update (default: create)")
@click.pass_context
def apply(ctx: click.Context, spec_file: Path, distribution_id: str | None) -> None:
    """Create or update a distribution to match a spec.

    Without --id the distribution is found by caller reference, derived from
    the spec file path when the spec does not set one.
    """
    spec = load_or_fail(spec_file)
    if distribution_id is None and spec.caller_reference is None:
        spec = spec.model_copy(update={"caller_reference": stable_caller_reference(spec_file)})
    result = asyncio.run(get_reconciler(ctx).apply(spec, distribution_id))
    if result.error is not None:
        raise click.ClickException(str(result.error))

    click.secho(
        f"✓ {result.action.value if result.action else 'done'}: {result.distribution_id}",
        fg="green",
    )
    if result.state is not None:
        click.echo(f"  Domain: {result.state.domain_name}")
        click.echo(f"  Status: {result.state.status.value}")


# =============================================================================
# Distribution Commands
# =============================================================================


@cli.command()
@click.argument("distribution_id")
@click.pass_context
def read(ctx: click.Context, distribution_id: str) -> None:
    """Print the observed state of a distribution as JSON."""
    state = run_async(get_reconciler(ctx).read(distribution_id))
    if state is None:
        raise click.ClickException(f"Distribution {distribution_id} not found")
    click.echo(state.model_dump_json(indent=2))


@cli.command(name="import")
@click.argument("distribution_id")
@click.pass_context
def import_(ctx: click.Context, distribution_id: str) -> None:
    """Adopt an existing distribution into local state."""
    state = run_async(get_reconciler(ctx).import_distribution(distribution_id))
    click.secho(f"✓ imported {state.id} ({state.domain_name})", fg="green")


@cli.command()
@click.argument("distribution_id")
@click.option(
    "--retain/--no-retain",
    default=None,
    help="Keep the remote distribution (default: value recorded in local state)",
)
@click.pass_context
def delete(ctx: click.Context, distribution_id: str, retain: bool | None) -> None:
    """Disable, wait for propagation, then delete a distribution."""
    result = run_async(get_reconciler(ctx).delete(distribution_id, retain_on_delete=retain))
    if result.retained:
        click.secho(f"✓ {distribution_id} retained, removed from local state", fg="yellow")
    else:
        click.secho(f"✓ {distribution_id} deleted", fg="green")


@cli.command(name="list")
@click.pass_context
def list_(ctx: click.Context) -> None:
    """List distributions in the account."""
    summaries = run_async(get_reconciler(ctx).api.list_distributions())
    if not summaries:
        click.echo("No distributions.")
        return
    for s in summaries:
        state = "enabled" if s.enabled else "disabled"
        click.echo(f"{s.id}\t{s.domain_name}\t{s.status}\t{state}\t{s.comment}")


# =============================================================================
# Operator
# =============================================================================


@cli.command()
def run() -> None:
    """Run the operator loop. Configured from the environment."""
    from .main import main as operator_main

    sys.exit(asyncio.run(operator_main()))


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
