"""
ordersaga CLI Application - Built with Click.

Commands:
- demo         Run the end-to-end order saga scenarios in memory
- config       Show the effective configuration
- transitions  Show the order state machine
"""

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ordersaga.cli.demo import run_scenarios
from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.env import EnvManager
from ordersaga.core.state_machine import OrderStateMachine
from ordersaga.core.types import OrderStatus
from ordersaga.monitoring.logging import setup_saga_logging

console = Console()


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(package_name="ordersaga", prog_name="ordersaga")
def cli():
    """
    ordersaga - Order fulfillment sagas with compensation.

    \b
    Commands:
        demo             Run the end-to-end scenarios in memory
        config           Show the effective configuration
        transitions      Show the order state machine
    """


# ============================================================================
# ordersaga demo
# ============================================================================


@cli.command()
@click.option("--workers", default=4, show_default=True, type=click.IntRange(min=1),
              help="Worker pool size")
@click.option("--log-level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Show saga logs at this level")
@click.option("--json-logs", is_flag=True, help="Emit saga logs as JSON")
def demo(workers: int, log_level: str | None, json_logs: bool):
    """
    Run the five end-to-end order scenarios.

    \b
    Uses in-memory storage, an in-memory ledger (10 units of one product)
    and the mock payment gateway.
    """
    if log_level:
        setup_saga_logging(log_level, json_format=json_logs)

    results = asyncio.run(run_scenarios(max_workers=workers))

    table = Table(title="Order saga scenarios")
    table.add_column("#", justify="right")
    table.add_column("Scenario")
    table.add_column("Result")
    table.add_column("Detail")
    for result in results:
        status = "[green]PASS[/green]" if result.passed else "[red]FAIL[/red]"
        table.add_row(str(result.number), result.title, status, result.detail)
    console.print(table)

    failed = [r for r in results if not r.passed]
    if failed:
        console.print(f"[red]{len(failed)} of {len(results)} scenarios failed[/red]")
        sys.exit(1)
    console.print(f"[green]All {len(results)} scenarios passed[/green]")


# ============================================================================
# ordersaga config
# ============================================================================


@cli.command("config")
@click.option("--file", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="YAML config file (defaults to ORDERSAGA_* environment variables)")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def config_cmd(config_file: str | None, as_json: bool):
    """Show the effective configuration."""
    env = EnvManager()
    try:
        config = (
            OrderSagaConfig.from_yaml(config_file, env)
            if config_file
            else OrderSagaConfig.from_env(env)
        )
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    values = config.to_dict()
    if as_json:
        click.echo(json.dumps(values, indent=2))
        return

    table = Table(title="ordersaga configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)
    if config_file:
        console.print(f"Source: {config_file}")
    elif env.loaded:
        console.print(f"Source: environment + {env.project_root / '.env'}")


# ============================================================================
# ordersaga transitions
# ============================================================================


@cli.command()
def transitions():
    """Show which status changes the order state machine allows."""
    machine = OrderStateMachine()

    table = Table(title="Order status transitions")
    table.add_column("From", style="cyan")
    table.add_column("Allowed")
    for status in OrderStatus:
        allowed = sorted(s.value for s in machine.allowed_transitions(status))
        table.add_row(status.value, ", ".join(allowed) if allowed else "[dim]terminal[/dim]")
    console.print(table)
    console.print(
        Panel.fit(
            "Cancelling a PAID order refunds it first, then releases stock.\n"
            "Cancelling a PENDING order only releases stock.",
            border_style="blue",
        )
    )


if __name__ == "__main__":  # pragma: no cover
    cli()
