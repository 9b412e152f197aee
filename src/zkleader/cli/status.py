"""CLI command for inspecting an election without joining it.

Usage:
    zkleader status
    zkleader status --pretty
    zkleader status --table
"""

from __future__ import annotations

from typing import Any

import orjson
import typer

from zkleader.config import settings
from zkleader.coordination.session import CoordinationSession
from zkleader.election.state import ElectionPaths
from zkleader.errors import ConnectionTimeoutError, CoordinationError, NoNodeError

app = typer.Typer(help="Print the peers and the current leader")


def read_status(session: CoordinationSession, paths: ElectionPaths) -> dict[str, Any]:
    """Read the peer list and leader record without registering or watching."""
    try:
        peers = session.get_children(paths.peers)
    except NoNodeError:
        peers = []

    descriptions: dict[str, str | None] = {}
    for peer_id in peers:
        try:
            data, _ = session.get_data(f"{paths.peers}/{peer_id}")
            descriptions[peer_id] = data.decode("utf-8", errors="replace")
        except NoNodeError:
            # Left between listing and reading
            descriptions[peer_id] = None

    leader: str | None = None
    try:
        data, _ = session.get_data(paths.leader)
        leader = data.decode("utf-8")
    except NoNodeError:
        pass

    return {"leader": leader, "peers": peers, "descriptions": descriptions}


def _print_table(result: dict[str, Any]) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title="Election peers")
    table.add_column("Peer", style="cyan")
    table.add_column("Description", style="green")
    table.add_column("Role", style="yellow")

    for peer_id in result["peers"]:
        role = "LEADER" if peer_id == result["leader"] else "-"
        table.add_row(peer_id, result["descriptions"].get(peer_id) or "-", role)

    console.print(table)
    if result["leader"] is None:
        console.print("[yellow]No current leader[/yellow]")


@app.callback(invoke_without_command=True)
def status(
    pretty: bool = typer.Option(False, "--pretty", help="Indent the JSON output"),
    as_table: bool = typer.Option(False, "--table", help="Render a table instead of JSON"),
) -> None:
    """Connect once, print the election state and disconnect."""
    if not settings.zk_connect_string:
        typer.echo("Error: Missing required configuration: ZK_CONNECT_STRING", err=True)
        raise typer.Exit(1)

    session = CoordinationSession(
        settings.zk_connect_string,
        generation=0,
        sink=lambda event: None,
        session_timeout=settings.session_timeout / 1000,
    )
    try:
        session.connect(settings.connection_timeout / 1000)
        result = read_status(session, ElectionPaths.for_namespace(settings.zk_namespace))
    except (ConnectionTimeoutError, CoordinationError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        session.close()

    if as_table:
        _print_table(result)
        return

    option = orjson.OPT_INDENT_2 if pretty else 0
    typer.echo(orjson.dumps(result, option=option).decode())
