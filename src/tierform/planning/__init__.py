"""Planning: diff declared resources against state and order the actions."""

from .models import ActionType, AttributeChange, Operation, OperationKind, Plan, ResourceChange
from .planner import Planner, plan

__all__ = [
    "ActionType",
    "AttributeChange",
    "Operation",
    "OperationKind",
    "Plan",
    "ResourceChange",
    "Planner",
    "plan",
]
