"""CLI commands for zkleader.

Provides command-line interface using Typer:
- zkleader serve: Join the election and run the HTTP control surface
- zkleader status: Print the peers and the current leader, then exit

Usage:
    zkleader --help
    zkleader serve --port 8080
    zkleader status
"""

import typer

from zkleader.cli.serve import app as serve_app
from zkleader.cli.status import app as status_app

# Main CLI application
app = typer.Typer(
    name="zkleader",
    help="zkleader: ZooKeeper leader election with an HTTP control surface",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(status_app, name="status")


@app.callback()
def callback() -> None:
    """zkleader: ZooKeeper leader election with an HTTP control surface."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
