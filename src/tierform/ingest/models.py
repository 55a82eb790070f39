"""Pydantic models for parsed resource declarations."""

from typing import List, Optional, Dict, Any, Iterator, Tuple
from pydantic import BaseModel, Field


class Reference(BaseModel):
    """Pointer from an input attribute to another resource's output attribute."""
    target: str = Field(..., description="Address of the referenced resource")
    attribute: str = Field(..., description="Output attribute of the referenced resource")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"${{{self.target}.{self.attribute}}}"


def iter_references(value: Any, path: str = "") -> Iterator[Tuple[str, Reference]]:
    """Yield (attribute path, reference) pairs found anywhere inside ``value``."""
    if isinstance(value, Reference):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_references(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, (list, tuple)):
        for idx, item in enumerate(value):
            yield from iter_references(item, f"{path}[{idx}]")


def contains_reference(value: Any) -> bool:
    return next(iter_references(value), None) is not None


class ResourceDeclaration(BaseModel):
    """A declared resource after module expansion and expression parsing."""
    type: str = Field(..., description="Resource type")
    name: str = Field(..., description="Resource name, unique per type within its module")
    module: Optional[str] = Field(None, description="Module path if resource is declared in a module")
    inputs: Dict[str, Any] = Field(default_factory=dict, description="Attribute name to literal value or Reference")
    depends_on: List[str] = Field(default_factory=list, description="Explicit ordering hints (resource addresses)")
    index: int = Field(0, ge=0, description="Position in declaration order")

    model_config = {"frozen": True}

    @property
    def address(self) -> str:
        """Stable identifier, e.g. 'network.main' or 'module.net.network.main'."""
        local = f"{self.type}.{self.name}"
        if self.module:
            prefix = "".join(f"module.{part}." for part in self.module.split("."))
            return prefix + local
        return local

    def references(self) -> List[Tuple[str, Reference]]:
        """(attribute path, reference) pairs in this declaration's inputs."""
        return list(iter_references(self.inputs))


class DeclarationSet(BaseModel):
    """Everything declared for one deployment."""
    resources: List[ResourceDeclaration] = Field(default_factory=list, description="Declared resources in order")
    outputs: Dict[str, Any] = Field(default_factory=dict, description="Root outputs: name to literal or Reference")
    required_version: Optional[str] = Field(None, description="Version constraint of the root document")
    source: Optional[str] = Field(None, description="Path of the root document")

    def by_address(self) -> Dict[str, ResourceDeclaration]:
        return {r.address: r for r in self.resources}

    def get(self, address: str) -> Optional[ResourceDeclaration]:
        return self.by_address().get(address)

    @property
    def addresses(self) -> List[str]:
        return [r.address for r in self.resources]
