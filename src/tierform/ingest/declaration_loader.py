"""Load declaration documents, expand modules and parse reference expressions."""

import re
from pathlib import Path
from typing import Dict, Any, List, Optional, Set
import yaml
from .models import DeclarationSet, Reference, ResourceDeclaration, contains_reference
from .declaration_validator import validate_document_structure, check_required_version
from ..schema.registry import SchemaRegistry, default_registry
from ..utils.errors import DeclarationError, CyclicDependencyError
from ..utils.logging import get_logger

logger = get_logger("ingest.declaration_loader")

_EXPRESSION = re.compile(r"^\$\{\s*([^{}]+?)\s*\}$")
_MAX_MODULE_DEPTH = 16


def read_document(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON declaration document."""
    if not path.exists():
        raise DeclarationError(
            f"Declaration file not found: {path}. "
            "Please check the file path and ensure the file exists."
        )
    if not path.is_file():
        raise DeclarationError(f"Path is not a file: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DeclarationError(f"Invalid YAML/JSON in declaration file {path}: {e}")
    except OSError as e:
        raise DeclarationError(f"Error reading declaration file {path}: {e}")

    return data if data is not None else {}


class _Scope:
    """One root document or module instance being expanded."""

    def __init__(self, document: Dict[str, Any], path: Path, module_path: Optional[str], values: Dict[str, Any], depth: int = 0):
        self.document = document
        self.path = path
        self.module_path = module_path
        self.depth = depth
        self.variables = self._bind_variables(values)
        self.module_outputs: Dict[str, Dict[str, Any]] = {}
        self.module_resources: Dict[str, List[str]] = {}
        self.expanding: List[str] = []

    @property
    def where(self) -> str:
        return f"module.{self.module_path.replace('.', '.module.')}" if self.module_path else str(self.path)

    def address_prefix(self) -> str:
        if not self.module_path:
            return ""
        return "".join(f"module.{part}." for part in self.module_path.split("."))

    def _bind_variables(self, values: Dict[str, Any]) -> Dict[str, Any]:
        declared = self.document.get("variables") or {}
        unknown = sorted(set(values) - set(declared))
        if unknown:
            raise DeclarationError(f"{self.where}: value(s) given for undeclared variable(s): {', '.join(unknown)}")

        bound = {}
        for name, spec in declared.items():
            spec = spec or {}
            if name in values:
                bound[name] = values[name]
            elif "default" in spec:
                bound[name] = spec["default"]
            else:
                raise DeclarationError(f"{self.where}: no value given for required variable '{name}'")
        return bound


class DeclarationLoader:
    """Turns a root declaration document into a flat DeclarationSet."""

    def __init__(self, registry: Optional[SchemaRegistry] = None, current_version: Optional[str] = None):
        self.registry = registry or default_registry()
        if current_version is None:
            from .. import __version__
            current_version = __version__
        self.current_version = current_version
        self._resources: List[ResourceDeclaration] = []
        self._addresses: Set[str] = set()

    def load(self, path: str, variables: Optional[Dict[str, Any]] = None) -> DeclarationSet:
        """
        Load and validate a declaration document.

        Args:
            path: Root declaration document
            variables: Values for the root document's variables

        Returns:
            DeclarationSet with module resources flattened

        Raises:
            DeclarationError: On structural, schema or expression errors
        """
        root_path = Path(path)
        data = read_document(root_path)
        validate_document_structure(data, str(root_path))

        required_version = data.get("required_version")
        if required_version is not None:
            check_required_version(str(required_version), self.current_version)

        self._resources = []
        self._addresses = set()
        scope = _Scope(data, root_path, None, dict(variables or {}))
        outputs = self._expand(scope)

        declaration_set = DeclarationSet(
            resources=self._resources,
            outputs=outputs,
            required_version=str(required_version) if required_version is not None else None,
            source=str(root_path),
        )
        logger.info(f"Loaded {len(self._resources)} resource declarations from {root_path}")
        return declaration_set

    def _expand(self, scope: _Scope) -> Dict[str, Any]:
        """Expand resources and nested modules of ``scope``; return its outputs."""
        if scope.depth > _MAX_MODULE_DEPTH:
            raise DeclarationError(f"{scope.where}: modules nested deeper than {_MAX_MODULE_DEPTH} levels")

        for name in (scope.document.get("modules") or {}):
            self._expand_module(scope, name)

        for entry in scope.document.get("resources") or []:
            self._add_resource(scope, entry)

        outputs = {}
        for name, spec in (scope.document.get("outputs") or {}).items():
            value = spec.get("value") if isinstance(spec, dict) and "value" in spec else spec
            outputs[name] = self._transform(scope, value, f"{scope.where}: output '{name}'")
        return outputs

    def _expand_module(self, scope: _Scope, name: str) -> Dict[str, Any]:
        if name in scope.module_outputs:
            return scope.module_outputs[name]
        if name in scope.expanding:
            cycle = scope.expanding[scope.expanding.index(name):]
            raise CyclicDependencyError([f"module.{m}" for m in cycle])

        calls = scope.document.get("modules") or {}
        if name not in calls:
            raise DeclarationError(f"{scope.where}: reference to undeclared module '{name}'")

        scope.expanding.append(name)
        call = calls[name]
        source = (scope.path.parent / call["source"]).resolve()
        module_doc = read_document(source)
        validate_document_structure(module_doc, str(source), is_module=True)

        values = {
            key: self._transform(scope, value, f"{scope.where}: module '{name}' input '{key}'")
            for key, value in (call.get("inputs") or {}).items()
        }
        module_path = f"{scope.module_path}.{name}" if scope.module_path else name
        child = _Scope(module_doc, source, module_path, values, scope.depth + 1)

        before = len(self._resources)
        outputs = self._expand(child)
        scope.module_resources[name] = [r.address for r in self._resources[before:]]
        scope.module_outputs[name] = outputs
        scope.expanding.remove(name)
        logger.debug(f"Expanded module {module_path} from {source}")
        return outputs

    def _add_resource(self, scope: _Scope, entry: Dict[str, Any]) -> None:
        resource_type = entry["type"]
        address = f"{scope.address_prefix()}{resource_type}.{entry['name']}"
        if address in self._addresses:
            raise DeclarationError(f"Duplicate resource declaration: {address}")

        raw_inputs = entry.get("inputs") or {}
        self.registry.check_attribute_names(address, resource_type, raw_inputs)
        inputs = {
            key: self._transform(scope, value, f"{address}.{key}")
            for key, value in raw_inputs.items()
        }
        # Omitted and null-valued attributes both count as absent.
        inputs = {key: value for key, value in inputs.items() if value is not None}
        self.registry.check_required(address, resource_type, inputs)
        for key, value in inputs.items():
            if not contains_reference(value):
                self.registry.check_literal(address, resource_type, key, value)

        depends_on: List[str] = []
        for hint in entry.get("depends_on") or []:
            depends_on.extend(self._resolve_hint(scope, hint, address))

        declaration = ResourceDeclaration(
            type=resource_type,
            name=entry["name"],
            module=scope.module_path,
            inputs=inputs,
            depends_on=depends_on,
            index=len(self._resources),
        )
        self._resources.append(declaration)
        self._addresses.add(address)

    def _resolve_hint(self, scope: _Scope, hint: str, address: str) -> List[str]:
        """Turn a depends_on entry into resource addresses."""
        parts = hint.strip().split(".")
        if parts[0] == "module" and len(parts) == 2:
            self._expand_module(scope, parts[1])
            return list(scope.module_resources[parts[1]])
        if len(parts) != 2:
            raise DeclarationError(f"{address}: invalid depends_on entry '{hint}' (use 'type.name' or 'module.name')")
        return [f"{scope.address_prefix()}{hint.strip()}"]

    def _transform(self, scope: _Scope, value: Any, where: str) -> Any:
        """Replace expression strings inside ``value`` with References or variable values."""
        if isinstance(value, dict):
            return {k: self._transform(scope, v, f"{where}.{k}") for k, v in value.items()}
        if isinstance(value, list):
            return [self._transform(scope, v, f"{where}[{i}]") for i, v in enumerate(value)]
        if not isinstance(value, str) or "${" not in value:
            return value

        match = _EXPRESSION.match(value)
        if not match:
            raise DeclarationError(
                f"{where}: expressions must be a whole value like '${{type.name.attribute}}'; "
                f"got '{value}'"
            )
        return self._evaluate(scope, match.group(1), where)

    def _evaluate(self, scope: _Scope, expression: str, where: str) -> Any:
        parts = expression.split(".")
        if parts[0] == "var":
            if len(parts) != 2:
                raise DeclarationError(f"{where}: invalid variable expression '{expression}'")
            if parts[1] not in scope.variables:
                raise DeclarationError(f"{where}: reference to undeclared variable '{parts[1]}'")
            return scope.variables[parts[1]]

        if parts[0] == "module":
            if len(parts) != 3:
                raise DeclarationError(f"{where}: invalid module output expression '{expression}'")
            outputs = self._expand_module(scope, parts[1])
            if parts[2] not in outputs:
                raise DeclarationError(f"{where}: module '{parts[1]}' has no output '{parts[2]}'")
            return outputs[parts[2]]

        if len(parts) != 3:
            raise DeclarationError(
                f"{where}: invalid reference '{expression}' (expected 'type.name.attribute')"
            )
        return Reference(target=f"{scope.address_prefix()}{parts[0]}.{parts[1]}", attribute=parts[2])


def load_declarations(
    path: str,
    variables: Optional[Dict[str, Any]] = None,
    registry: Optional[SchemaRegistry] = None,
) -> DeclarationSet:
    """Load a declaration document with the default loader."""
    return DeclarationLoader(registry).load(path, variables)
