"""Placement planning CLI commands.

This module provides CLI commands that compute operations:
- suggest: Corrective operations for current violations, or one operation
  for explicit hints
- place: Nodes for every replica of a new collection

Operations are printed, never executed.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from placement_core.cli.loader import (
    JSON_OPTION,
    POLICY_OPTION,
    SNAPSHOT_OPTION,
    fail,
    load_inputs,
    print_json,
)
from placement_core.exceptions import PlacementError
from placement_core.helper import SessionCache, get_replica_locations, get_suggestions
from placement_core.suggester import CollectionAction, Hint


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def suggest(
    policy_path: Path = POLICY_OPTION,
    snapshot_path: Path = SNAPSHOT_OPTION,
    action: CollectionAction = typer.Option(
        CollectionAction.MOVEREPLICA, "--action", "-a", help="Operation to suggest"
    ),
    collection: str = typer.Option(None, "--collection", "-c", help="Collection hint"),
    shard: str = typer.Option(None, "--shard", help="Shard hint (requires --collection)"),
    source: str = typer.Option(None, "--source", help="Source node hint(s), comma separated"),
    target: str = typer.Option(None, "--target", help="Target node hint(s), comma separated"),
    replica_type: str = typer.Option(None, "--type", "-t", help="Replica type (NRT, TLOG, PULL)"),
    as_json: bool = JSON_OPTION,
) -> None:
    """
    Suggest placement operations.

    Without hints, suggests moves fixing every current violation. With
    hints, suggests the single next operation for them.
    """
    config, provider = load_inputs(policy_path, snapshot_path)
    console = Console()

    hinted = any((collection, shard, source, target, replica_type)) or action is CollectionAction.ADDREPLICA
    if not hinted:
        infos = get_suggestions(config, provider, provider)
        if as_json:
            print_json([info.to_dict() for info in infos])
            return
        if not infos:
            console.print("[green]No suggestions: the policy is satisfied or no legal move exists[/green]")
            return
        table = Table(title="Suggestions")
        table.add_column("Violation", style="cyan")
        table.add_column("Operation")
        for info in infos:
            violation = info.violation
            label = (
                f"{violation.collection or '*'}/{violation.shard or '*'} "
                f"{violation.actual} vs {violation.expected}"
                if violation
                else "-"
            )
            table.add_row(label, str(info.suggestion))
        console.print(table)
        return

    if shard and not collection:
        fail("--shard requires --collection")

    session = config.policy.create_session(provider, provider)
    suggester = session.get_suggester(action)
    if collection and shard:
        suggester.hint(Hint.COLL_SHARD, (collection, shard))
    elif collection:
        suggester.hint(Hint.COLL, collection)
    if source:
        suggester.hint(Hint.SRC_NODE, _split(source))
    if target:
        suggester.hint(Hint.TARGET_NODE, _split(target))
    try:
        if replica_type:
            suggester.hint(Hint.REPLICATYPE, replica_type)
        suggestion = suggester.get_suggestion()
    except ValueError as e:
        fail(str(e))

    if as_json:
        print_json(suggestion.to_operation().to_dict() if suggestion else None)
        return
    if suggestion is None:
        console.print("[yellow]No suggestion[/yellow]")
        return
    console.print(f"[green]{suggestion}[/green]")
    print_json(suggestion.to_operation().to_dict())


def place(
    policy_path: Path = POLICY_OPTION,
    snapshot_path: Path = SNAPSHOT_OPTION,
    collection: str = typer.Option(..., "--collection", "-c", help="Collection to place"),
    shards: str = typer.Option(..., "--shards", help="Shard names, comma separated"),
    nrt: int = typer.Option(1, "--nrt", min=0, help="NRT replicas per shard"),
    tlog: int = typer.Option(0, "--tlog", min=0, help="TLOG replicas per shard"),
    pull: int = typer.Option(0, "--pull", min=0, help="PULL replicas per shard"),
    nodes: str = typer.Option(None, "--nodes", help="Restrict placement to these nodes, comma separated"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Choose nodes for every replica of a new collection."""
    config, provider = load_inputs(policy_path, snapshot_path)

    try:
        positions = get_replica_locations(
            collection,
            config,
            provider,
            provider,
            None,
            _split(shards),
            nrt,
            tlog,
            pull,
            node_list=_split(nodes) or None,
            cache=SessionCache(),
        )
    except PlacementError as e:
        fail(str(e))

    if as_json:
        print_json([position.to_dict() for position in positions])
        return

    table = Table(title=f"Placement of {collection}")
    table.add_column("Shard", style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Node", style="green")
    for position in positions:
        table.add_row(position.shard, str(position.index), position.type.value, position.node)
    Console().print(table)
