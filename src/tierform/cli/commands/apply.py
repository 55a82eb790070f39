"""Apply command - converge real resources with the declarations."""

import click
from ..utils import var_option
from ._run import run_apply


@click.command()
@click.option('--auto-approve', is_flag=True, help='Skip the interactive confirmation')
@click.option('--refresh/--no-refresh', default=True, help='Read recorded resources back from the provider first')
@var_option
@click.pass_context
def apply(ctx, auto_approve, refresh, variables):
    """
    Create, update, replace and destroy resources so they match the declarations.

    Exits 0 when every resource converged (or nothing changed) and 1 when
    some resources failed or were skipped.
    """
    run_apply(ctx, variables, destroy=False, auto_approve=auto_approve, refresh=refresh)
