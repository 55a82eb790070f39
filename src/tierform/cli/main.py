"""Main CLI entry point for tierform."""

import click
from .commands.init import init
from .commands.validate import validate
from .commands.plan import plan
from .commands.apply import apply
from .commands.destroy import destroy
from .commands.output import output
from .commands.state import state
from .commands.unlock import force_unlock
from .commands.version import version
from .. import __version__
from ..utils.logging import get_logger, level_for_verbosity, setup_logging

logger = get_logger("cli.main")


@click.group()
@click.version_option(version=__version__, prog_name="tierform", message="%(prog)s version %(version)s")
@click.option('--chdir', '-C', 'root', type=click.Path(file_okay=False), help='Workspace directory (default: current directory)')
@click.option('--config', 'config', type=click.Path(dir_okay=False), help='Extra config YAML merged over the project config')
@click.option('--verbose', '-v', count=True, help='Increase log verbosity (-v info, -vv debug)')
@click.pass_context
def cli(ctx, root, config, verbose):
    """tierform - Declarative orchestrator for multi-tier cloud deployments."""
    ctx.ensure_object(dict)
    ctx.obj.update(root=root, config=config)
    if verbose:
        setup_logging(level_for_verbosity(verbose))


cli.add_command(init)
cli.add_command(validate)
cli.add_command(plan)
cli.add_command(apply)
cli.add_command(destroy)
cli.add_command(output)
cli.add_command(state)
cli.add_command(force_unlock)
cli.add_command(version)
