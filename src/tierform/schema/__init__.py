"""Resource schema registry and built-in resource kinds."""

from .models import AttributeSpec, AttributeType, Schema
from .kinds import BUILTIN_KINDS, ResourceKind, KindInputs, KindOutputs
from .registry import SchemaRegistry, default_registry

__all__ = [
    "AttributeSpec",
    "AttributeType",
    "Schema",
    "ResourceKind",
    "KindInputs",
    "KindOutputs",
    "BUILTIN_KINDS",
    "SchemaRegistry",
    "default_registry",
]
