"""Custom exception classes for tierform."""

from typing import List, Optional


class TierformError(Exception):
    """Base exception for all tierform errors."""
    pass


class ConfigError(TierformError):
    """Raised when orchestrator configuration is invalid or missing."""
    pass


class DeclarationError(TierformError):
    """Raised when a declaration document cannot be loaded or is invalid."""
    pass


class UnknownTypeError(DeclarationError):
    """Raised when a resource type is not registered in the schema registry."""

    def __init__(self, resource_type: str, known_types: Optional[List[str]] = None):
        self.resource_type = resource_type
        message = f"Unknown resource type: {resource_type}"
        if known_types:
            message += f". Known types: {', '.join(sorted(known_types))}"
        super().__init__(message)


class SchemaViolationError(DeclarationError):
    """Raised when resource attributes do not match the resource schema."""

    def __init__(self, address: str, message: str):
        self.address = address
        super().__init__(f"{address}: {message}")


class GraphConstructionError(TierformError):
    """Raised when dependency graph construction fails."""
    pass


class UnresolvedReferenceError(GraphConstructionError):
    """Raised when a reference points at a resource or attribute that is not declared."""

    def __init__(self, source: str, target: str, reason: str):
        self.source = source
        self.target = target
        super().__init__(f"Unresolved reference {source} -> {target}: {reason}")


class CyclicDependencyError(GraphConstructionError):
    """Raised when resource dependencies form a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        chain = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Dependency cycle detected: {chain}")


class StateError(TierformError):
    """Raised when the state document cannot be read or written."""
    pass


class StateConflictError(StateError):
    """Raised when the state document was changed by another writer."""
    pass


class LockHeldError(StateError):
    """Raised when the deployment lock is held by another run."""

    def __init__(self, lock_id: str, holder: str, operation: str, created_at: str, stale: bool = False):
        self.lock_id = lock_id
        self.holder = holder
        self.operation = operation
        self.created_at = created_at
        self.stale = stale
        message = (
            f"State is locked by {holder} (operation: {operation}, since {created_at}, lock id: {lock_id})."
        )
        if stale:
            message += (
                " The lock is older than the staleness threshold; if no other run is active, "
                f"release it with: tierform force-unlock {lock_id}"
            )
        super().__init__(message)


class ProviderError(TierformError):
    """Base class for errors returned by a provider call."""
    pass


class TransientProviderError(ProviderError):
    """Provider error that may succeed on retry (rate limiting, network hiccups)."""
    pass


class PermanentProviderError(ProviderError):
    """Provider error that will not succeed on retry (invalid input, quota, permissions)."""
    pass


class NotFoundError(PermanentProviderError):
    """Raised by a provider when a resource does not exist."""
    pass


class DependencyViolationError(PermanentProviderError):
    """Raised by a provider that refuses to delete a resource still in use."""
    pass


class OperationTimeoutError(TierformError):
    """Raised when a resource operation exceeds its timeout."""
    pass
