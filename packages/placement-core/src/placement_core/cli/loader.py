"""
Input loading shared by the CLI commands.

Turns the --policy and --snapshot paths into a PlacementConfig and a
snapshot provider, reporting bad input as a CLI error instead of a
traceback.
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import pydantic
import typer
from rich.console import Console
from rich.markup import escape

from placement_core.config import PlacementConfig, load_config
from placement_core.exceptions import ValidationError

if TYPE_CHECKING:
    from placement_snapshot import SnapshotProvider

console = Console(stderr=True)

POLICY_OPTION = typer.Option(
    ...,
    "--policy",
    "-p",
    envvar="PLACEMENT_POLICY",
    help="Policy document (JSON with cluster-policy, cluster-preferences, policies)",
)
SNAPSHOT_OPTION = typer.Option(
    ...,
    "--snapshot",
    "-s",
    envvar="PLACEMENT_SNAPSHOT",
    help="Cluster snapshot (JSON with liveNodes, nodeValues, replicaInfo)",
)
JSON_OPTION = typer.Option(False, "--json", help="Print JSON instead of tables")


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


def load_inputs(policy_path: Path, snapshot_path: Path) -> tuple[PlacementConfig, "SnapshotProvider"]:
    """Load and validate the policy and snapshot files."""
    # Lazy import keeps the snapshot package optional for library users
    from placement_snapshot import load_snapshot

    try:
        config = load_config(policy_path)
        config.policy  # validate clauses up front
        provider = load_snapshot(snapshot_path)
    except FileNotFoundError as e:
        fail(f"File not found: {e.filename}")
    except json.JSONDecodeError as e:
        fail(f"Invalid JSON: {e}")
    except (ValidationError, pydantic.ValidationError, ValueError) as e:
        fail(str(e))
    return config, provider


def print_json(data: object) -> None:
    """Print data as indented JSON on stdout."""
    typer.echo(json.dumps(data, indent=2, default=str))
