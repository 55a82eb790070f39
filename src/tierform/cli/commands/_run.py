"""Shared apply/destroy flow: confirm, execute with progress, handle Ctrl-C."""

import signal
import sys
import threading
import click
from ...execution import CancellationToken
from ...utils.logging import get_logger
from ..utils import EXIT_CHANGES, EXIT_OK, fail, open_workspace

logger = get_logger("cli.run")


def run_apply(ctx: click.Context, variables, destroy: bool, auto_approve: bool, refresh: bool = True) -> None:
    """Plan, ask for confirmation, execute and exit with the apply exit code."""
    from ...presentation.human_formatter import format_plan, format_progress, format_result

    verb = "destroy" if destroy else "apply"

    def approve(plan) -> bool:
        click.echo(format_plan(plan))
        if auto_approve:
            return True
        return click.confirm(f"\nDo you want to {verb} these changes?", default=False)

    def progress(event, op, outcome) -> None:
        click.echo(format_progress(event, op, outcome), err=True)

    cancel = CancellationToken()
    previous = _install_interrupt_handler(cancel)
    try:
        workspace = open_workspace(ctx, variables)
        plan, result = workspace.apply(
            destroy=destroy, approve=approve, progress=progress, cancel=cancel, refresh_state=refresh,
        )
    except Exception as e:
        fail(e)
    finally:
        _restore_interrupt_handler(previous)

    if result is None:
        if plan.has_changes:
            click.echo(f"{verb.capitalize()} cancelled.")
        else:
            click.echo(format_plan(plan))
        sys.exit(EXIT_OK)

    click.echo(format_result(result))
    sys.exit(EXIT_OK if result.succeeded else EXIT_CHANGES)


def _install_interrupt_handler(cancel: CancellationToken):
    """First Ctrl-C stops new operations; a second one interrupts immediately."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def handler(signum, frame):
        if cancel.cancelled:
            raise KeyboardInterrupt
        click.echo("\nInterrupt received: finishing in-flight operations, starting no new ones.", err=True)
        cancel.cancel()

    return signal.signal(signal.SIGINT, handler)


def _restore_interrupt_handler(previous) -> None:
    if previous is not None:
        signal.signal(signal.SIGINT, previous)
