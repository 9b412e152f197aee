"""CLI command for running an election participant with its HTTP server.

Usage:
    zkleader serve
    zkleader serve --port 8080 --host 0.0.0.0
    zkleader serve --log-level debug
"""

from __future__ import annotations

import typer

from zkleader.config import settings
from zkleader.errors import ConfigurationError

app = typer.Typer(help="Join the election and run the HTTP control surface")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(
        settings.host,
        "--host",
        "-h",
        help="Host to bind to",
    ),
    port: int = typer.Option(
        settings.port,
        "--port",
        "-p",
        help="Port to listen on",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    access_log: bool = typer.Option(
        True,
        "--access-log/--no-access-log",
        help="Enable/disable access logging",
    ),
) -> None:
    """Run one election participant.

    Validates configuration, then starts uvicorn with the FastAPI
    application. A single worker is always used: each process is one peer.
    """
    import uvicorn

    try:
        settings.validate_required()
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Starting zkleader...")
    typer.echo(f"  ZooKeeper: {settings.zk_connect_string}")
    typer.echo(f"  Description: {settings.my_description}")
    typer.echo(f"  Wants to lead: {settings.wants_to_lead}")
    typer.echo(f"  Expiry policy: {settings.expiry_policy.value}")
    typer.echo(f"  Listening on: http://{host}:{port}")
    typer.echo()

    uvicorn.run(
        app="zkleader.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        workers=1,
        log_level=log_level.lower(),
        access_log=access_log,
    )
