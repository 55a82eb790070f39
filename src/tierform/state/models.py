"""Pydantic models for persisted deployment state."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

STATE_FORMAT_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceState(BaseModel):
    """Last-known real attributes of a converged resource."""
    address: str = Field(..., description="Stable resource address")
    type: str = Field(..., description="Resource type")
    identifier: str = Field(..., description="Provider-assigned identifier")
    inputs: Dict[str, Any] = Field(default_factory=dict, description="Resolved inputs actually applied")
    outputs: Dict[str, Any] = Field(default_factory=dict, description="Outputs returned by the provider")
    dependencies: List[str] = Field(default_factory=list, description="Addresses this resource depended on when applied")
    created_at: datetime = Field(default_factory=utcnow, description="First successful apply")
    updated_at: datetime = Field(default_factory=utcnow, description="Last successful converge")


class StateDocument(BaseModel):
    """One serialized document per deployment."""
    version: int = Field(STATE_FORMAT_VERSION, description="State format version")
    serial: int = Field(0, ge=0, description="Incremented on every successful write")
    lineage: str = Field(..., description="Unique id of this deployment's state history")
    resources: Dict[str, ResourceState] = Field(default_factory=dict, description="Resource states by address")
    outputs: Dict[str, Any] = Field(default_factory=dict, description="Root outputs from the last apply")


class LockInfo(BaseModel):
    """Contents of the deployment lock file."""
    id: str = Field(..., description="Lock id, used by force-unlock")
    holder: str = Field(..., description="user@host:pid of the lock holder")
    operation: str = Field(..., description="Operation that took the lock")
    created_at: datetime = Field(default_factory=utcnow, description="When the lock was taken")

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.created_at).total_seconds()
