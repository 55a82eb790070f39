"""Force-unlock command - release a lock left behind by a crashed run."""

import click
from ..utils import fail, open_workspace


@click.command(name="force-unlock")
@click.argument('lock_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def force_unlock(ctx, lock_id, yes):
    """
    Remove the deployment lock with id LOCK_ID.

    Only do this when no other run is active: two concurrent runs can corrupt state.
    """
    if not yes and not click.confirm(f"Release state lock {lock_id}?", default=False):
        click.echo("Lock left in place.")
        return
    try:
        open_workspace(ctx).force_unlock(lock_id)
    except Exception as e:
        fail(e)
    click.echo(f"State lock {lock_id} released.")
