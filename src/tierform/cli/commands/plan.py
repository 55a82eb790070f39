"""Plan command - show what apply would change."""

import json as jsonlib
import sys
import click
from ...utils.logging import get_logger
from ..utils import EXIT_CHANGES, EXIT_OK, fail, open_workspace, var_option

logger = get_logger("cli.plan")


@click.command()
@click.option('--destroy', is_flag=True, help='Plan the destruction of every recorded resource')
@click.option('--json', 'as_json', is_flag=True, help='Output structured JSON instead of human-readable')
@click.option('--refresh/--no-refresh', default=True, help='Read recorded resources back from the provider first')
@var_option
@click.pass_context
def plan(ctx, destroy, as_json, refresh, variables):
    """
    Show the changes needed to converge real resources with the declarations.

    Exits 0 when there is nothing to do and 1 when the plan has changes.
    """
    try:
        workspace = open_workspace(ctx, variables)
        result = workspace.plan(destroy=destroy, refresh_state=refresh)
    except Exception as e:
        fail(e)

    if as_json:
        from ...presentation.human_formatter import plan_as_dict
        click.echo(jsonlib.dumps(plan_as_dict(result), indent=2))
    else:
        from ...presentation.human_formatter import format_plan
        click.echo(format_plan(result))

    sys.exit(EXIT_CHANGES if result.has_changes else EXIT_OK)
