"""CLI utilities package."""

import sys
from typing import Any, Dict, Iterable, Optional
import click
import yaml
from ...utils.errors import LockHeldError, TierformError
from ...utils.logging import get_logger
from .file_resolver import resolve_workspace_root

logger = get_logger("cli.utils")

EXIT_OK = 0
EXIT_CHANGES = 1
EXIT_FATAL = 2


def format_error(message: str, suggestion: Optional[str] = None) -> str:
    """
    Format error message with optional suggestion.

    Args:
        message: Error message
        suggestion: Optional suggestion or help text

    Returns:
        Formatted error string
    """
    error = f"Error: {message}"
    if suggestion:
        error += f"\nTip: {suggestion}"
    return error


def suggestion_for(error: TierformError) -> Optional[str]:
    if isinstance(error, LockHeldError):
        if not error.stale:
            return "Wait for the other run to finish, then try again."
    return None


def fail(error: Exception) -> None:
    """Report a fatal error and exit with EXIT_FATAL."""
    if isinstance(error, click.ClickException):
        raise error
    if isinstance(error, TierformError):
        click.echo(format_error(str(error), suggestion_for(error)), err=True)
    elif isinstance(error, FileNotFoundError):
        click.echo(format_error(str(error), "Use -C to point at the directory that holds deployment.yaml."), err=True)
    else:
        logger.error(f"Unexpected error: {error}", exc_info=True)
        click.echo(format_error(f"Unexpected error: {error}"), err=True)
    sys.exit(EXIT_FATAL)


def parse_vars(values: Iterable[str]) -> Dict[str, Any]:
    """
    Parse repeated ``--var name=value`` options.

    Values are read as YAML scalars, so ``--var replicas=2`` gives an integer
    and ``--var enabled=true`` a boolean.

    Raises:
        click.BadParameter: If an entry is not of the form name=value
    """
    result = {}
    for item in values:
        name, sep, raw = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise click.BadParameter(f"expected name=value, got '{item}'", param_hint="--var")
        try:
            result[name] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            result[name] = raw
    return result


def var_option(func):
    """Attach the repeatable --var option."""
    return click.option(
        '--var', 'variables', multiple=True, metavar='NAME=VALUE',
        help='Set a root variable (repeatable)',
    )(func)


def open_workspace(ctx: click.Context, variables: Iterable[str] = ()):
    """Build the Workspace for the directory selected on the command group."""
    from ...workspace import Workspace

    options = ctx.find_root().obj or {}
    root = resolve_workspace_root(options.get("root"))
    return Workspace(
        root=str(root),
        variables=parse_vars(variables),
        config_path=options.get("config"),
    )


__all__ = [
    "EXIT_OK",
    "EXIT_CHANGES",
    "EXIT_FATAL",
    "fail",
    "format_error",
    "open_workspace",
    "parse_vars",
    "resolve_workspace_root",
    "suggestion_for",
    "var_option",
]
