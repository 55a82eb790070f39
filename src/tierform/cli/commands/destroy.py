"""Destroy command - delete every recorded resource."""

import click
from ..utils import var_option
from ._run import run_apply


@click.command()
@click.option('--auto-approve', is_flag=True, help='Skip the interactive confirmation')
@var_option
@click.pass_context
def destroy(ctx, auto_approve, variables):
    """Destroy every resource recorded in state, dependents first."""
    run_apply(ctx, variables, destroy=True, auto_approve=auto_approve)
