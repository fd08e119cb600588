"""Main CLI entry point."""

import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from reco_autopilot.config.models import AutopilotConfig
from reco_autopilot.config.parser import Config, ConfigValidationError
from reco_autopilot.models import ApplyOutcome, ApplyRequest, ApplyState, BuildEvent, ReconcileOutcome
from reco_autopilot.utils.errors import AutopilotError
from reco_autopilot.utils.logging import setup_logging, get_logger
from reco_autopilot.wiring import create_coordinators

console = Console()
logger = get_logger(__name__)


@click.group()
@click.option('--config', 'config_path', default=None, help='Path to configuration file (default: autopilot.yaml)')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.pass_context
def cli(ctx, config_path, log_level):
    """Recommendation autopilot."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['log_level'] = log_level

    setup_logging(log_level)


def load_config(config_path: Optional[str] = None) -> AutopilotConfig:
    """Load and validate configuration file."""
    try:
        return Config(config_path).load()
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)


@cli.command()
@click.option('--host', default=None, help='Bind address (default: server.host)')
@click.option('--port', default=None, type=int, help='Bind port (default: server.port)')
@click.pass_context
def serve(ctx, host, port):
    """Serve the apply and build notification endpoints."""
    import uvicorn
    from reco_autopilot.server import create_app

    cfg = load_config(ctx.obj['config_path'])
    apply_coordinator, reconciler = create_coordinators(cfg)
    app = create_app(cfg, apply_coordinator, reconciler)

    uvicorn.run(
        app,
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        log_level=ctx.obj['log_level'],
    )


@cli.command()
@click.argument('category')
@click.option('--repo', required=True, help='Repository name under the configured account')
@click.option('--project', 'projects', multiple=True, required=True, help='Project to list recommendations for')
@click.pass_context
def apply(ctx, category, repo, projects):
    """Apply pending recommendations of CATEGORY to a repository."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        apply_coordinator, _ = create_coordinators(cfg)

        request = ApplyRequest(repository_name=repo, project_ids=list(projects), category=category)
        with console.status(f"[cyan]Applying {category.upper()} recommendations to {repo}...[/cyan]"):
            outcome = apply_coordinator.apply(request)

        _print_apply_outcome(outcome)

    except AutopilotError as e:
        console.print(f"[red]Apply failed:[/red]\n{e.to_user_message()}")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error during apply")
        console.print(f"[red]Unexpected error:[/red] {e}")
        sys.exit(1)


@cli.command()
@click.option('--repo', required=True, help='Repository the build ran against')
@click.option('--commit', 'commit_id', required=True, help='Commit the build ran against')
@click.option('--status', default='SUCCESS', help='Build status to reconcile as')
@click.pass_context
def reconcile(ctx, repo, commit_id, status):
    """Reconcile a finished build by hand."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        _, reconciler = create_coordinators(cfg)

        event = BuildEvent(status=status.upper(), commit_id=commit_id, repository_name=repo)
        with console.status(f"[cyan]Reconciling {repo}@{commit_id}...[/cyan]"):
            outcome = reconciler.reconcile(event)

        _print_reconcile_outcome(outcome)

    except AutopilotError as e:
        console.print(f"[red]Reconcile failed:[/red]\n{e.to_user_message()}")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error during reconcile")
        console.print(f"[red]Unexpected error:[/red] {e}")
        sys.exit(1)


@cli.command('resume-claim')
@click.option('--repo', required=True, help='Repository of the commit record')
@click.option('--commit', 'commit_id', required=True, help='Commit of the commit record')
@click.pass_context
def resume_claim(ctx, repo, commit_id):
    """Claim the recommendations of an already persisted commit."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        apply_coordinator, _ = create_coordinators(cfg)

        outcome = apply_coordinator.resume_claim(repo, commit_id)
        console.print(
            f"[green]✓[/green] Claimed {len(outcome.claimed_ids)} of "
            f"{len(outcome.listed_ids)} recommendation(s) recorded for {repo}@{commit_id}"
        )

    except AutopilotError as e:
        console.print(f"[red]Resume failed:[/red]\n{e.to_user_message()}")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error during resume-claim")
        console.print(f"[red]Unexpected error:[/red] {e}")
        sys.exit(1)


def _print_apply_outcome(outcome: ApplyOutcome) -> None:
    if outcome.state == ApplyState.EMPTY_DONE:
        console.print(f"[yellow]No pending recommendations for {outcome.repository_name}[/yellow]")
        return
    if outcome.state == ApplyState.NOOP_DONE:
        console.print(
            f"[yellow]{len(outcome.listed_ids)} recommendation(s) listed, "
            f"none changed {outcome.repository_name}[/yellow]"
        )
        return

    console.print(Panel.fit(
        f"[green]✓ Recommendations applied[/green]\n\n"
        f"Repository: {outcome.repository_name}\n"
        f"Commit: {outcome.commit_id}\n"
        f"Branch: {outcome.branch}\n"
        f"Claimed: {len(outcome.claimed_ids)}/{len(outcome.listed_ids)}",
        title=outcome.commit_message,
        border_style="green"
    ))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Recommendation", style="cyan")
    table.add_column("Claimed", style="green")
    for recommendation_id in outcome.listed_ids:
        table.add_row(recommendation_id, "yes" if recommendation_id in outcome.claimed_ids else "no")
    console.print(table)


def _print_reconcile_outcome(outcome: ReconcileOutcome) -> None:
    console.print(Panel.fit(
        f"State: {outcome.state.value}\n"
        f"Commits covered: {len(outcome.ancestor_commits)}\n"
        f"Recommendations recorded: {len(outcome.recommendation_ids)}\n"
        f"Marked: {len(outcome.marked_ids)}",
        title=f"{outcome.repository_name}@{outcome.commit_id}",
        border_style="green" if outcome.marked_ids else "yellow"
    ))
    for recommendation_id in outcome.marked_ids:
        console.print(f"  [green]✓[/green] {recommendation_id}")


if __name__ == '__main__':
    cli()
