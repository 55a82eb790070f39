"""Pydantic models for execution results."""

import threading
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from ..planning.models import OperationKind


class ResourceStatus(str, Enum):
    """Lifecycle of one operation / resource during apply."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    CONVERGED = "converged"
    FAILED = "failed"
    SKIPPED = "skipped"


class OperationOutcome(BaseModel):
    """Result of one provider operation."""
    key: str = Field(..., description="Operation key, e.g. 'create:network.main'")
    address: str = Field(..., description="Resource address")
    kind: OperationKind = Field(..., description="Provider call")
    status: ResourceStatus = Field(ResourceStatus.PENDING, description="Terminal status")
    reason: Optional[str] = Field(None, description="Failure or skip reason")
    attempts: int = Field(0, ge=0, description="Provider attempts made")
    duration_seconds: float = Field(0.0, ge=0, description="Wall time of the operation")
    wave: int = Field(0, ge=0, description="Wave the operation ran in")


class ResourceOutcome(BaseModel):
    """Aggregated outcome of every operation on one resource."""
    address: str = Field(..., description="Resource address")
    status: ResourceStatus = Field(..., description="converged, failed or skipped")
    reason: Optional[str] = Field(None, description="First failure or skip reason")


class ExecutionResult(BaseModel):
    """Per-resource outcomes of an apply."""
    operations: List[OperationOutcome] = Field(default_factory=list, description="Outcomes in completion order")
    cancelled: bool = Field(False, description="Whether the run was cancelled")
    waves: int = Field(0, ge=0, description="Number of waves executed")

    def resources(self) -> Dict[str, ResourceOutcome]:
        """Outcome per resource address."""
        grouped: Dict[str, List[OperationOutcome]] = {}
        for outcome in self.operations:
            grouped.setdefault(outcome.address, []).append(outcome)

        result = {}
        for address, outcomes in grouped.items():
            failed = [o for o in outcomes if o.status == ResourceStatus.FAILED]
            skipped = [o for o in outcomes if o.status == ResourceStatus.SKIPPED]
            if failed:
                result[address] = ResourceOutcome(address=address, status=ResourceStatus.FAILED, reason=failed[0].reason)
            elif skipped:
                result[address] = ResourceOutcome(address=address, status=ResourceStatus.SKIPPED, reason=skipped[0].reason)
            else:
                result[address] = ResourceOutcome(address=address, status=ResourceStatus.CONVERGED)
        return result

    def status_of(self, address: str) -> Optional[ResourceStatus]:
        outcome = self.resources().get(address)
        return outcome.status if outcome else None

    def _with_status(self, status: ResourceStatus) -> List[str]:
        return sorted(a for a, o in self.resources().items() if o.status == status)

    @property
    def converged(self) -> List[str]:
        return self._with_status(ResourceStatus.CONVERGED)

    @property
    def failed(self) -> List[str]:
        return self._with_status(ResourceStatus.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self._with_status(ResourceStatus.SKIPPED)

    @property
    def succeeded(self) -> bool:
        return not self.failed and not self.skipped and not self.cancelled


class CancellationToken:
    """Signals an in-flight apply to stop starting new operations."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
