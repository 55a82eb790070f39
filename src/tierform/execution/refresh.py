"""Reconcile recorded state with what the provider reports."""

from typing import List
from ..providers.base import Provider
from ..state.store import StateStore
from ..utils.errors import NotFoundError
from ..utils.logging import get_logger

logger = get_logger("execution.refresh")


def refresh(store: StateStore, provider: Provider) -> List[str]:
    """
    Read every recorded resource back from the provider.

    Resources the provider no longer knows are dropped from state so the next
    plan recreates them. Outputs that drifted are rewritten; inputs are left
    as last applied.

    Returns:
        Addresses removed from state
    """
    removed = []
    for state in store.load():
        try:
            outputs = provider.read(state.type, state.identifier)
        except NotFoundError:
            logger.warning(f"{state.address} ({state.identifier}) no longer exists; removing it from state")
            store.remove(state.address)
            removed.append(state.address)
            continue

        if outputs != state.outputs:
            logger.info(f"Refreshed outputs of {state.address}")
            state.outputs = dict(outputs)
            store.upsert(state)
    return removed
