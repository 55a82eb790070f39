"""Abstract base class for resource providers."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple


class Provider(ABC):
    """
    Abstract interface to the remote service that owns real resources.

    Providers raise:
    - TransientProviderError for failures worth retrying (rate limits, network)
    - PermanentProviderError for failures that will not go away on retry
    - NotFoundError when the resource does not exist
    - DependencyViolationError when a delete is refused because the resource is in use
    """

    name = "abstract"

    @abstractmethod
    def create(self, resource_type: str, inputs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """
        Create a resource.

        Args:
            resource_type: Registered resource type
            inputs: Fully resolved, validated inputs

        Returns:
            Tuple of (provider identifier, outputs)
        """
        pass

    @abstractmethod
    def read(self, resource_type: str, identifier: str) -> Dict[str, Any]:
        """Return current outputs; raises NotFoundError if the resource is gone."""
        pass

    @abstractmethod
    def update(self, resource_type: str, identifier: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """Update a resource in place and return its outputs."""
        pass

    @abstractmethod
    def delete(self, resource_type: str, identifier: str) -> None:
        """Delete a resource."""
        pass
