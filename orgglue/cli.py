"""orgglue CLI — reconcile Keycloak groups into GitLab memberships."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import NoReturn, Sequence

import click
from click.shell_completion import get_completion_class
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from orgglue import __version__
from orgglue.backends.factory import SOURCE, TARGET, open_clients
from orgglue.config import Settings
from orgglue.engine.checks import Check
from orgglue.engine.context import ReconContext
from orgglue.engine.report import print_report, render_json, render_text
from orgglue.engine.runner import ReconciliationRunner
from orgglue.errors import BackendError, ConfigError
from orgglue.models import Report
from orgglue.policy import Policy, load_policy

console = Console()


def setup_logging(verbose: int = 0) -> None:
    """INFO for orgglue by default, ``-v`` adds DEBUG, ``-vv`` DEBUG everywhere."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose >= 2 else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    logging.getLogger("orgglue").setLevel(logging.DEBUG if verbose else logging.INFO)


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", count=True, help="More logging (-vv for HTTP details)")
@click.option(
    "--policy",
    "policy_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Policy file (default: $ORGGLUE_POLICY or ./orgglue.yaml)",
)
@click.pass_context
def main(ctx: click.Context, verbose: int, policy_path: str | None):
    """orgglue — keep GitLab memberships in line with Keycloak.

    Keycloak is the source of truth. Every check named in the policy
    compares the desired memberships with what GitLab reports and either
    prints the plan or applies it.
    """
    setup_logging(verbose)
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        _fail(ctx, e)
    if policy_path:
        settings = dataclasses.replace(settings, policy_path=policy_path)
    ctx.obj = settings


def _fail(ctx: click.Context, error: Exception) -> NoReturn:
    console.print(f"[red]Error:[/] {error}")
    ctx.exit(2)


def _load(settings: Settings, names: Sequence[str]) -> tuple[Policy, list[Check]]:
    policy = load_policy(settings.policy_path)
    checks = policy.build_checks(names or None)
    if not checks:
        raise ConfigError(f"policy {settings.policy_path} defines no enabled checks")
    if not settings.fixture_path:
        settings.require_backends()
        for check in checks:
            for backend in check.backends:
                if backend not in (SOURCE, TARGET):
                    raise ConfigError(f"check '{check.name}' needs unknown backend '{backend}'")
    return policy, checks


async def _execute(
    settings: Settings, policy: Policy, checks: list[Check], dry_run: bool
) -> Report:
    async with open_clients(settings) as clients:
        context = ReconContext(
            clients=clients,
            dry_run=dry_run,
            fetch_timeout=settings.fetch_timeout,
            bots=settings.bot_users | frozenset(policy.bots),
        )
        runner = ReconciliationRunner(checks, concurrency=settings.concurrency)
        return await runner.run(context)


def _reconcile(
    ctx: click.Context,
    names: Sequence[str],
    dry_run: bool,
    output_json: str | None,
    output_format: str,
    **overrides,
) -> None:
    settings: Settings = ctx.obj
    overrides = {key: value for key, value in overrides.items() if value is not None}
    try:
        settings = dataclasses.replace(settings, **overrides)
        if settings.concurrency < 1:
            raise ConfigError("--concurrency must be at least 1")
        if settings.fetch_timeout <= 0:
            raise ConfigError("--timeout must be positive")
        policy, checks = _load(settings, names)
    except ConfigError as e:
        _fail(ctx, e)

    mode = "plan" if dry_run else "apply"
    console.print(
        f"\n[bold blue]orgglue[/] — {mode}: {len(checks)} check(s) from {settings.policy_path}\n"
    )
    try:
        report = asyncio.run(_execute(settings, policy, checks, dry_run))
    except (ConfigError, BackendError) as e:
        _fail(ctx, e)

    if output_format == "text" or (output_format == "auto" and not console.is_terminal):
        click.echo(render_text(report), nl=False)
    else:
        print_report(console, report)
    if output_json:
        try:
            with open(output_json, "w") as f:
                f.write(render_json(report))
        except OSError as e:
            _fail(ctx, ConfigError(f"Cannot write JSON report {output_json}: {e}"))
        console.print(f"[dim]JSON report written to {output_json}[/]")
    ctx.exit(report.exit_code)


format_option = click.option(
    "--format",
    "output_format",
    type=click.Choice(["auto", "rich", "text"]),
    default="auto",
    show_default=True,
    help="Report style; auto uses plain text when stdout is not a terminal",
)


# ── Run ──────────────────────────────────────────────────────────────


@main.command()
@click.argument("names", metavar="[CHECK]...", nargs=-1)
@click.option("--dry-run", is_flag=True, help="Report differences without applying them")
@click.option("--output-json", default=None, type=click.Path(dir_okay=False), help="Also write the report as JSON")
@click.option("--concurrency", default=None, type=int, help="Checks running at once")
@click.option("--timeout", "fetch_timeout", default=None, type=float, help="Fetch timeout per check, in seconds")
@click.option("--fixture", "fixture_path", default=None, type=click.Path(exists=True, dir_okay=False), help="Use in-memory backends from a YAML fixture")
@format_option
@click.pass_context
def run(
    ctx: click.Context,
    names: tuple[str, ...],
    dry_run: bool,
    output_json: str | None,
    concurrency: int | None,
    fetch_timeout: float | None,
    fixture_path: str | None,
    output_format: str,
):
    """Run the policy's checks and apply the corrections.

    Without CHECK arguments every enabled check runs. Exit status is 0
    when all checks are clean, 1 when something diverged and 2 when a
    check failed.
    """
    _reconcile(
        ctx,
        names,
        dry_run,
        output_json,
        output_format,
        concurrency=concurrency,
        fetch_timeout=fetch_timeout,
        fixture_path=fixture_path,
    )


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("names", metavar="[CHECK]...", nargs=-1)
@click.option("--output-json", default=None, type=click.Path(dir_okay=False), help="Also write the report as JSON")
@click.option("--fixture", "fixture_path", default=None, type=click.Path(exists=True, dir_okay=False), help="Use in-memory backends from a YAML fixture")
@format_option
@click.pass_context
def plan(
    ctx: click.Context,
    names: tuple[str, ...],
    output_json: str | None,
    fixture_path: str | None,
    output_format: str,
):
    """Show what `run` would change, without changing anything."""
    _reconcile(ctx, names, True, output_json, output_format, fixture_path=fixture_path)


# ── Checks ───────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def checks(ctx: click.Context):
    """List the checks defined in the policy."""
    settings: Settings = ctx.obj
    try:
        policy = load_policy(settings.policy_path)
        built = {check.name: check for check in policy.build_checks()}
    except ConfigError as e:
        _fail(ctx, e)

    table = Table(title=f"Checks in {policy.name} ({len(policy.checks)})")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Mode")
    table.add_column("Target")

    for spec in sorted(policy.checks, key=lambda s: s.name):
        check = built.get(spec.name)
        if check is None:
            table.add_row(spec.name, spec.type, "[dim]disabled[/]", "")
            continue
        mode = "apply" if check.mutates else "[yellow]report only[/]"
        table.add_row(check.name, check.type_name(), mode, check.describe())

    console.print(table)
    if policy.bots:
        console.print(f"[dim]Bots left alone:[/] {', '.join(sorted(policy.bots))}")


# ── Completions ──────────────────────────────────────────────────────


@main.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
def completions(shell: str):
    """Print a shell completion script for SHELL."""
    completion_cls = get_completion_class(shell)
    completion = completion_cls(main, {}, "orgglue", "_ORGGLUE_COMPLETE")
    click.echo(completion.source())


if __name__ == "__main__":
    main()
