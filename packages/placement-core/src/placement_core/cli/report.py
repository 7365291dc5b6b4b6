"""Session inspection CLI commands.

This module provides CLI commands for looking at a cluster snapshot through
a policy:
- rows: Nodes in preference order with their attributes and replica counts
- violations: Current violations in clause priority order
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from placement_core.cli.loader import (
    JSON_OPTION,
    POLICY_OPTION,
    SNAPSHOT_OPTION,
    load_inputs,
    print_json,
)
from placement_core.session import Session


def _session(policy_path: Path, snapshot_path: Path) -> Session:
    config, provider = load_inputs(policy_path, snapshot_path)
    return config.policy.create_session(provider, provider)


def show_rows(
    policy_path: Path = POLICY_OPTION,
    snapshot_path: Path = SNAPSHOT_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Show nodes sorted best-first by the policy preferences."""
    session = _session(policy_path, snapshot_path)

    if as_json:
        print_json([row.to_dict() for row in session.rows])
        return

    params = [name for name in session.policy.params if name != "node"]
    table = Table(title=f"Sorted nodes (session v{session.version})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Node", style="cyan")
    for name in params:
        table.add_column(name, justify="right")
    table.add_column("Replicas", justify="right")

    for position, row in enumerate(session.rows, start=1):
        values = [str(row.get(name)) if row.get(name) is not None else "-" for name in params]
        table.add_row(str(position), row.node, *values, str(row.replica_count()))

    Console().print(table)


def show_violations(
    policy_path: Path = POLICY_OPTION,
    snapshot_path: Path = SNAPSHOT_OPTION,
    strict_only: bool = typer.Option(False, "--strict", help="Only strict clauses"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Show current policy violations."""
    session = _session(policy_path, snapshot_path)
    violations = session.get_violations(strict_only=strict_only)

    if as_json:
        print_json([violation.to_dict() for violation in violations])
        return

    console = Console()
    if not violations:
        console.print("[green]No violations[/green]")
        return

    table = Table(title="Violations")
    table.add_column("Clause", style="cyan")
    table.add_column("Collection")
    table.add_column("Shard")
    table.add_column("Partition")
    table.add_column("Actual", justify="right")
    table.add_column("Expected", justify="right")
    table.add_column("Delta", justify="right", style="red")

    for violation in violations:
        clause = escape(str(violation.clause))
        if not violation.clause.strict:
            clause += " [dim](advisory)[/dim]"
        table.add_row(
            clause,
            violation.collection or "-",
            violation.shard or "-",
            str(violation.partition),
            str(violation.actual),
            violation.expected,
            str(violation.delta) if violation.delta is not None else "-",
        )

    console.print(table)
