"""Validate declaration document structure and version pin."""

import re
from typing import Dict, Any, List, Tuple
from ..utils.errors import DeclarationError
from ..utils.logging import get_logger

logger = get_logger("ingest.declaration_validator")

ROOT_KEYS = {"required_version", "variables", "modules", "resources", "outputs"}
MODULE_KEYS = {"variables", "modules", "resources", "outputs"}
RESOURCE_KEYS = {"type", "name", "inputs", "depends_on"}
MODULE_CALL_KEYS = {"source", "inputs"}
VARIABLE_KEYS = {"default", "description", "sensitive"}

_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")
_CONSTRAINT_PATTERN = re.compile(r"^\s*(>=|<=|==|!=|>|<)?\s*([0-9]+(?:\.[0-9]+)*)\s*$")


def validate_document_structure(data: Any, where: str, is_module: bool = False) -> None:
    """
    Validate top-level structure of a declaration or module document.

    Args:
        data: Parsed YAML/JSON document
        where: Path used in error messages
        is_module: Module documents may not pin a version

    Raises:
        DeclarationError: If the structure is invalid
    """
    if not isinstance(data, dict):
        raise DeclarationError(f"{where}: declaration document must be a mapping")

    allowed = MODULE_KEYS if is_module else ROOT_KEYS
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise DeclarationError(
            f"{where}: unknown top-level key(s) {', '.join(unknown)}; "
            f"allowed keys: {', '.join(sorted(allowed))}"
        )

    for key in ("variables", "modules", "outputs"):
        if key in data and data[key] is not None and not isinstance(data[key], dict):
            raise DeclarationError(f"{where}: '{key}' must be a mapping")

    resources = data.get("resources") or []
    if not isinstance(resources, list):
        raise DeclarationError(f"{where}: 'resources' must be a list")

    for idx, resource in enumerate(resources):
        _validate_resource_entry(resource, f"{where}: resources[{idx}]")

    for name, call in (data.get("modules") or {}).items():
        _validate_name(name, f"{where}: module")
        if not isinstance(call, dict):
            raise DeclarationError(f"{where}: module '{name}' must be a mapping")
        unknown_keys = sorted(set(call) - MODULE_CALL_KEYS)
        if unknown_keys:
            raise DeclarationError(f"{where}: module '{name}' has unknown key(s) {', '.join(unknown_keys)}")
        if "source" not in call:
            raise DeclarationError(f"{where}: module '{name}' is missing 'source'")
        if "inputs" in call and not isinstance(call["inputs"], dict):
            raise DeclarationError(f"{where}: module '{name}' inputs must be a mapping")

    for name, spec in (data.get("variables") or {}).items():
        _validate_name(name, f"{where}: variable")
        if spec is not None and not isinstance(spec, dict):
            raise DeclarationError(f"{where}: variable '{name}' must be a mapping or empty")
        unknown_keys = sorted(set(spec or {}) - VARIABLE_KEYS)
        if unknown_keys:
            raise DeclarationError(f"{where}: variable '{name}' has unknown key(s) {', '.join(unknown_keys)}")

    logger.debug(f"Document structure validation passed for {where}")


def _validate_resource_entry(resource: Any, where: str) -> None:
    if not isinstance(resource, dict):
        raise DeclarationError(f"{where}: resource entry must be a mapping")
    unknown = sorted(set(resource) - RESOURCE_KEYS)
    if unknown:
        raise DeclarationError(f"{where}: unknown key(s) {', '.join(unknown)}")
    for field in ("type", "name"):
        if not isinstance(resource.get(field), str) or not resource.get(field):
            raise DeclarationError(f"{where}: '{field}' must be a non-empty string")
    _validate_name(resource["name"], where)
    if "inputs" in resource and resource["inputs"] is not None and not isinstance(resource["inputs"], dict):
        raise DeclarationError(f"{where}: 'inputs' must be a mapping")
    depends_on = resource.get("depends_on") or []
    if not isinstance(depends_on, list) or not all(isinstance(d, str) for d in depends_on):
        raise DeclarationError(f"{where}: 'depends_on' must be a list of addresses")


def _validate_name(name: Any, where: str) -> None:
    if not isinstance(name, str) or not _NAME_PATTERN.match(name):
        raise DeclarationError(f"{where}: invalid name '{name}' (letters, digits, '_' and '-', starting with a letter)")


def parse_version(version: str) -> Tuple[int, ...]:
    """Parse '1.2.3' into a comparable tuple."""
    try:
        return tuple(int(part) for part in version.strip().split("."))
    except ValueError:
        raise DeclarationError(f"Invalid version '{version}'")


def _compare(left: Tuple[int, ...], right: Tuple[int, ...]) -> int:
    width = max(len(left), len(right))
    left = left + (0,) * (width - len(left))
    right = right + (0,) * (width - len(right))
    return (left > right) - (left < right)


def check_required_version(constraint: str, current_version: str) -> None:
    """
    Check the running version against a constraint such as '>= 0.1, < 2.0'.

    Raises:
        DeclarationError: If the constraint is malformed or not satisfied
    """
    current = parse_version(current_version)
    failures: List[str] = []
    for clause in str(constraint).split(","):
        match = _CONSTRAINT_PATTERN.match(clause)
        if not match:
            raise DeclarationError(f"Invalid required_version clause '{clause.strip()}'")
        operator = match.group(1) or "=="
        result = _compare(current, parse_version(match.group(2)))
        ok = {
            ">=": result >= 0,
            "<=": result <= 0,
            ">": result > 0,
            "<": result < 0,
            "==": result == 0,
            "!=": result != 0,
        }[operator]
        if not ok:
            failures.append(clause.strip())

    if failures:
        raise DeclarationError(
            f"This configuration requires tierform {constraint}, but the running version is {current_version} "
            f"(unsatisfied: {', '.join(failures)})"
        )
