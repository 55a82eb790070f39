"""Plan execution: waves, retries, timeouts and per-resource commits."""

from .executor import Executor
from .models import (
    CancellationToken,
    ExecutionResult,
    OperationOutcome,
    ResourceOutcome,
    ResourceStatus,
)
from .refresh import refresh
from .retry import build_retrying

__all__ = [
    "Executor",
    "CancellationToken",
    "ExecutionResult",
    "OperationOutcome",
    "ResourceOutcome",
    "ResourceStatus",
    "refresh",
    "build_retrying",
]
