"""State commands - inspect and edit recorded state."""

import click
from ...utils.logging import get_logger
from ..utils import fail, open_workspace

logger = get_logger("cli.state")


@click.group()
def state():
    """Inspect or edit the recorded state."""
    pass


@state.command(name="list")
@click.pass_context
def list_resources(ctx):
    """List recorded resource addresses."""
    try:
        states = open_workspace(ctx).state_list()
    except Exception as e:
        fail(e)

    from ...presentation.human_formatter import format_state_list
    if states:
        click.echo(format_state_list(states))


@state.command()
@click.argument('address')
@click.pass_context
def show(ctx, address):
    """Show the recorded attributes of ADDRESS."""
    try:
        workspace = open_workspace(ctx)
        resource = workspace.state_show(address)
    except Exception as e:
        fail(e)

    from ...presentation.human_formatter import format_resource_state
    click.echo(format_resource_state(resource, workspace.registry))


@state.command()
@click.argument('address')
@click.pass_context
def rm(ctx, address):
    """Forget ADDRESS without deleting the real resource."""
    try:
        open_workspace(ctx).state_rm(address)
    except Exception as e:
        fail(e)
    click.echo(f"Removed {address} from state. The real resource was not deleted.")
