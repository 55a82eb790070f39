"""Cross-resource validation rules applied once the graph is known."""

from typing import Any, Dict, Optional
from ..ingest.models import Reference, ResourceDeclaration
from ..utils.errors import SchemaViolationError
from ..utils.logging import get_logger

logger = get_logger("graph.validators")

INVOKER_BINDING_TYPE = "iam_invoker_binding"
SERVICE_TYPE = "container_service"


def _find_callee(binding: ResourceDeclaration, resources: Dict[str, ResourceDeclaration]) -> Optional[ResourceDeclaration]:
    """Resolve the service a binding grants invoke permission on."""
    service = binding.inputs.get("service")
    if isinstance(service, Reference):
        target = resources.get(service.target)
        return target if target is not None and target.type == SERVICE_TYPE else None
    for candidate in resources.values():
        if candidate.type == SERVICE_TYPE and candidate.inputs.get("name") == service:
            return candidate
    return None


def _same_identity(member: Any, identity: Any) -> bool:
    if member is None or identity is None:
        return False
    if isinstance(member, Reference) or isinstance(identity, Reference):
        return member == identity
    return str(member).removeprefix("serviceAccount:") == str(identity).removeprefix("serviceAccount:")


def validate_invoker_bindings(resources: Dict[str, ResourceDeclaration]) -> None:
    """
    Reject invoker bindings that grant a service permission to invoke itself.

    The member of an invoker binding must be the caller's identity. A binding whose
    member is the callee's own service account is reported, never accepted in place
    of the caller binding.

    Raises:
        SchemaViolationError: If a binding's member is the callee's own identity
    """
    for address, binding in resources.items():
        if binding.type != INVOKER_BINDING_TYPE:
            continue
        callee = _find_callee(binding, resources)
        if callee is None:
            logger.debug(f"{address}: callee service is not declared here; skipping self-binding check")
            continue
        member = binding.inputs.get("member")
        if _same_identity(member, callee.inputs.get("service_account")):
            raise SchemaViolationError(
                address,
                f"member {member} is the identity of the invoked service {callee.address} itself; "
                "bind the calling service's identity instead",
            )
