"""Output command - print root outputs recorded by the last apply."""

import json as jsonlib
import click
from ..utils import fail, open_workspace


@click.command()
@click.argument('name', required=False)
@click.option('--json', 'as_json', is_flag=True, help='Output JSON')
@click.pass_context
def output(ctx, name, as_json):
    """Show all outputs, or the value of NAME."""
    try:
        value = open_workspace(ctx).output(name)
    except Exception as e:
        fail(e)

    if as_json:
        click.echo(jsonlib.dumps(value, indent=2, sort_keys=True))
    elif name is None:
        from ...presentation.human_formatter import format_outputs
        click.echo(format_outputs(value))
    elif isinstance(value, (dict, list)):
        click.echo(jsonlib.dumps(value, indent=2, sort_keys=True))
    else:
        click.echo(value)
