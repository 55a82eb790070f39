"""Pydantic models for plans."""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

UNKNOWN_DISPLAY = "(known after apply)"


class ActionType(str, Enum):
    """What a plan does to one resource."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DESTROY = "destroy"
    NO_OP = "no-op"


class OperationKind(str, Enum):
    """Provider call an operation performs."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AttributeChange(BaseModel):
    """One differing input attribute."""
    name: str = Field(..., description="Attribute name")
    before: Any = Field(None, description="Stored value (None when absent)")
    after: Any = Field(None, description="Declared value, or the unknown marker")
    forces_replacement: bool = Field(False, description="Whether this change forces replacement")
    sensitive: bool = Field(False, description="Whether values are redacted in output")


class ResourceChange(BaseModel):
    """Planned action for one resource."""
    address: str = Field(..., description="Resource address")
    type: str = Field(..., description="Resource type")
    action: ActionType = Field(..., description="Planned action")
    changes: List[AttributeChange] = Field(default_factory=list, description="Attribute-level differences")
    reason: Optional[str] = Field(None, description="Why a replace or destroy was planned")

    @property
    def replace_attributes(self) -> List[str]:
        return [c.name for c in self.changes if c.forces_replacement]


class Operation(BaseModel):
    """A single provider call scheduled by the plan."""
    address: str = Field(..., description="Resource address")
    type: str = Field(..., description="Resource type")
    kind: OperationKind = Field(..., description="Provider call")
    after: List[str] = Field(default_factory=list, description="Keys of operations that must converge first")
    dependencies: List[str] = Field(default_factory=list, description="Declared dependencies recorded in state")

    @property
    def key(self) -> str:
        return operation_key(self.kind, self.address)


def operation_key(kind: OperationKind, address: str) -> str:
    return f"{OperationKind(kind).value}:{address}"


class Plan(BaseModel):
    """Ordered actions that converge declared and recorded state."""
    changes: List[ResourceChange] = Field(default_factory=list, description="One entry per resource, in plan order")
    operations: List[Operation] = Field(default_factory=list, description="Provider calls in execution order")
    destroy: bool = Field(False, description="Whether this is a full destroy plan")

    @property
    def has_changes(self) -> bool:
        return any(c.action != ActionType.NO_OP for c in self.changes)

    def change_for(self, address: str) -> Optional[ResourceChange]:
        for change in self.changes:
            if change.address == address:
                return change
        return None

    def actions(self) -> List[tuple]:
        """(address, action) pairs in plan order."""
        return [(c.address, c.action) for c in self.changes]

    def summary(self) -> Dict[str, int]:
        counts = {action.value: 0 for action in ActionType}
        for change in self.changes:
            counts[ActionType(change.action).value] += 1
        return counts

    def operation_order(self) -> List[str]:
        return [op.key for op in self.operations]
