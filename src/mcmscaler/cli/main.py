# src/mcmscaler/cli/main.py
"""
This module is the main entry point for the mcm-scaler CLI.

It aggregates all commands from the submodules.
"""

import logging

import typer

from ..core.config import config
from . import node_groups

# --- Setup Logger ---
logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="mcmscaler",
    help="Inspect and resize machine-controller-manager node groups the way the cluster autoscaler does.",
    add_completion=False,
)


def version_callback(value: bool):
    """
    Prints the version of mcm-scaler.
    """
    if value:
        from .. import __version__

        typer.echo(f"mcm-scaler version: {__version__}")
        raise typer.Exit()


@app.command()
def version():
    """
    Show the version of mcm-scaler.
    """
    from .. import __version__

    typer.echo(f"mcm-scaler version: {__version__}")


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    """
    mcm-scaler CLI main entry point.
    """
    pass


# Register command sub-apps
app.add_typer(node_groups.app, name="node-groups")


if __name__ == "__main__":
    app()
