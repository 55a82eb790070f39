"""Resource schema registry: per-type input/output shapes and validation."""

import typing
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticUndefined
from .kinds import BUILTIN_KINDS, ResourceKind
from .models import AttributeSpec, AttributeType, Schema
from ..utils.errors import SchemaViolationError, UnknownTypeError
from ..utils.logging import get_logger

logger = get_logger("schema.registry")


def _attribute_type(annotation: Any) -> AttributeType:
    """Map a python annotation to an AttributeType."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _attribute_type(args[0])
        return AttributeType.ANY
    if origin in (list, List):
        return AttributeType.LIST
    if origin in (dict, Dict):
        return AttributeType.MAP
    if annotation is bool:
        return AttributeType.BOOLEAN
    if annotation is int:
        return AttributeType.INTEGER
    if annotation is float:
        return AttributeType.NUMBER
    if annotation is str:
        return AttributeType.STRING
    return AttributeType.ANY


def _specs_from_model(model: typing.Type[BaseModel]) -> List[AttributeSpec]:
    """Build attribute specs from pydantic model fields."""
    specs = []
    for name, field in model.model_fields.items():
        extra = field.json_schema_extra if isinstance(field.json_schema_extra, dict) else {}
        default = None
        if not field.is_required():
            if field.default_factory is not None:
                default = field.default_factory()
            elif field.default is not PydanticUndefined:
                default = field.default
        specs.append(AttributeSpec(
            name=name,
            type=_attribute_type(field.annotation),
            required=field.is_required(),
            forces_replacement=bool(extra.get("forces_replacement", False)),
            sensitive=bool(extra.get("sensitive", False)),
            default=default,
            description=field.description or "",
        ))
    return specs


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


class SchemaRegistry:
    """Registry of resource kinds keyed by type name."""

    def __init__(self, kinds: Optional[Iterable[ResourceKind]] = None):
        self._kinds: Dict[str, ResourceKind] = {}
        self._schemas: Dict[str, Schema] = {}
        for kind in kinds if kinds is not None else BUILTIN_KINDS:
            self.register(kind)

    def register(self, kind: ResourceKind) -> None:
        """Register a resource kind (replacing any previous registration)."""
        if kind.type_name in self._kinds:
            logger.warning(f"Re-registering resource type {kind.type_name}")
        self._kinds[kind.type_name] = kind
        self._schemas[kind.type_name] = Schema(
            resource_type=kind.type_name,
            description=kind.description,
            inputs=_specs_from_model(kind.inputs_model),
            outputs=_specs_from_model(kind.outputs_model),
        )

    def types(self) -> List[str]:
        return sorted(self._kinds)

    def kind(self, resource_type: str) -> ResourceKind:
        if resource_type not in self._kinds:
            raise UnknownTypeError(resource_type, list(self._kinds))
        return self._kinds[resource_type]

    def lookup(self, resource_type: str) -> Schema:
        """Return the schema of ``resource_type``; raises UnknownTypeError."""
        if resource_type not in self._schemas:
            raise UnknownTypeError(resource_type, list(self._schemas))
        return self._schemas[resource_type]

    def check_attribute_names(self, address: str, resource_type: str, names: Iterable[str]) -> None:
        """Reject attributes the schema does not declare."""
        schema = self.lookup(resource_type)
        unknown = sorted(set(names) - set(schema.input_names))
        if unknown:
            raise SchemaViolationError(
                address,
                f"unknown attribute(s) {', '.join(unknown)} for type {resource_type}; "
                f"valid attributes: {', '.join(schema.input_names)}",
            )

    def check_literal(self, address: str, resource_type: str, name: str, value: Any) -> None:
        """Type-check a single literal input value."""
        kind = self.kind(resource_type)
        field = kind.inputs_model.model_fields.get(name)
        if field is None:
            raise SchemaViolationError(address, f"unknown attribute {name} for type {resource_type}")
        try:
            TypeAdapter(field.annotation).validate_python(value)
        except ValidationError as e:
            raise SchemaViolationError(address, f"{name}: {_format_validation_error(e)}")

    def check_required(self, address: str, resource_type: str, names: Iterable[str]) -> None:
        """Reject declarations missing a required attribute."""
        schema = self.lookup(resource_type)
        present = set(names)
        missing = [spec.name for spec in schema.inputs if spec.required and spec.name not in present]
        if missing:
            raise SchemaViolationError(address, f"missing required attribute(s): {', '.join(missing)}")

    def validate_inputs(self, address: str, resource_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate fully-resolved inputs against the kind's input model.

        Returns:
            Normalised inputs with defaults applied

        Raises:
            SchemaViolationError: If values do not satisfy the schema
        """
        kind = self.kind(resource_type)
        try:
            model = kind.inputs_model.model_validate(values)
        except ValidationError as e:
            raise SchemaViolationError(address, _format_validation_error(e))
        return model.model_dump()

    def validate_outputs(self, address: str, resource_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Validate provider outputs against the kind's output model."""
        kind = self.kind(resource_type)
        try:
            model = kind.outputs_model.model_validate(values)
        except ValidationError as e:
            raise SchemaViolationError(address, f"provider returned invalid outputs: {_format_validation_error(e)}")
        return model.model_dump()

    def with_defaults(self, resource_type: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Fill omitted optional inputs with their defaults (no validation)."""
        schema = self.lookup(resource_type)
        result = dict(values)
        for spec in schema.inputs:
            if spec.name not in result and not spec.required:
                result[spec.name] = spec.default
        return result

    def export(self) -> Dict[str, Any]:
        """JSON-serialisable catalogue of all schemas."""
        return {name: self._schemas[name].model_dump() for name in self.types()}


_default_registry: Optional[SchemaRegistry] = None


def default_registry() -> SchemaRegistry:
    """Registry holding the built-in kinds."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SchemaRegistry()
    return _default_registry
