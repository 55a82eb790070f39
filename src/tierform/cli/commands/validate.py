"""Validate command - check declarations without touching any resource."""

import click
from ...utils.logging import get_logger
from ..utils import fail, open_workspace, var_option

logger = get_logger("cli.validate")


@click.command()
@var_option
@click.pass_context
def validate(ctx, variables):
    """
    Validate declarations: structure, schemas, references, cycles and bindings.

    Does not read state or contact the provider.
    """
    try:
        workspace = open_workspace(ctx, variables)
        declarations = workspace.validate()
    except Exception as e:
        fail(e)

    count = len(declarations.resources)
    click.echo(f"Declarations are valid: {count} resource{'s' if count != 1 else ''}.")
