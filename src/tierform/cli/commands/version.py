"""Version command - show tierform version."""

import click
from ... import __version__


@click.command()
def version():
    """Show tierform version."""
    click.echo(f"tierform version {__version__}")
