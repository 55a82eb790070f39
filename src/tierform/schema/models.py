"""Pydantic models describing resource schemas."""

from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, Field


class AttributeType(str, Enum):
    """Attribute value types understood by the registry."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    LIST = "list"
    MAP = "map"
    ANY = "any"


class AttributeSpec(BaseModel):
    """Shape of one input or output attribute."""
    name: str = Field(..., description="Attribute name")
    type: AttributeType = Field(..., description="Value type")
    required: bool = Field(False, description="Whether the attribute must be declared")
    forces_replacement: bool = Field(False, description="Changing the attribute requires destroy-then-create")
    sensitive: bool = Field(False, description="Value is redacted in human output")
    default: Any = Field(None, description="Default applied when the attribute is omitted")
    description: str = Field("", description="Human-readable description")

    class Config:
        use_enum_values = True


class Schema(BaseModel):
    """Input and output attribute shapes of a resource type."""
    resource_type: str = Field(..., description="Resource type name")
    description: str = Field("", description="What the resource is")
    inputs: List[AttributeSpec] = Field(default_factory=list, description="Input attributes")
    outputs: List[AttributeSpec] = Field(default_factory=list, description="Output attributes")

    def input(self, name: str) -> Optional[AttributeSpec]:
        """Return the input spec named ``name``, if any."""
        for spec in self.inputs:
            if spec.name == name:
                return spec
        return None

    def has_output(self, name: str) -> bool:
        return any(spec.name == name for spec in self.outputs)

    @property
    def input_names(self) -> List[str]:
        return [spec.name for spec in self.inputs]

    @property
    def output_names(self) -> List[str]:
        return [spec.name for spec in self.outputs]

    @property
    def replacement_attributes(self) -> List[str]:
        """Inputs whose change requires replacement."""
        return [spec.name for spec in self.inputs if spec.forces_replacement]

    @property
    def sensitive_attributes(self) -> List[str]:
        return [spec.name for spec in self.inputs if spec.sensitive]
