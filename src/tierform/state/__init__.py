"""Deployment state persistence."""

from .models import LockInfo, ResourceState, StateDocument
from .store import StateStore

__all__ = ["LockInfo", "ResourceState", "StateDocument", "StateStore"]
