"""Init command - prepare a workspace directory."""

import click
from ...utils.logging import get_logger
from ..utils import fail, open_workspace

logger = get_logger("cli.init")


@click.command()
@click.pass_context
def init(ctx):
    """Create .tierform/ with a project config and the resource schema catalogue."""
    try:
        workspace = open_workspace(ctx)
        written = workspace.init()
    except Exception as e:
        fail(e)

    for path in written:
        click.echo(f"Wrote {path}")
    if not workspace.declaration_path.exists():
        click.echo(f"No declarations yet: create {workspace.declaration_path.name} to describe your deployment.")
    click.echo("Workspace initialized.")
