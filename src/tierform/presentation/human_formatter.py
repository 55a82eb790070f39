"""Human-friendly output formatter - converts plans, results and state to readable text."""

import json
import os
from typing import Any, Dict, List, Optional
from ..execution.models import ExecutionResult, OperationOutcome, ResourceStatus
from ..planning.models import ActionType, Operation, Plan, ResourceChange
from ..schema.registry import SchemaRegistry
from ..state.models import ResourceState

REDACTED = "(sensitive value)"

_SYMBOLS = {
    ActionType.CREATE: "+",
    ActionType.UPDATE: "~",
    ActionType.REPLACE: "-/+",
    ActionType.DESTROY: "-",
    ActionType.NO_OP: " ",
}

_STATUS_MARKS = {
    ResourceStatus.CONVERGED: ("[OK]", "✅"),
    ResourceStatus.FAILED: ("[FAILED]", "❌"),
    ResourceStatus.SKIPPED: ("[SKIPPED]", "⏭️ "),
}


def _use_ascii(ascii_mode: Optional[bool] = None) -> bool:
    """Resolve whether to use ASCII output (checked at format time)."""
    if ascii_mode is not None:
        return bool(ascii_mode)
    return os.environ.get("TIERFORM_ASCII", "").lower() in ("1", "true", "yes")


def _box(title: str, width: int = 65, ascii_mode: bool = False) -> List[str]:
    """Return box-drawing header lines."""
    b = {"tl": "+", "tr": "+", "h": "-", "v": "|"} if ascii_mode else {"tl": "┌", "tr": "┐", "h": "─", "v": "│"}
    h = b["h"] * (width - 2)
    return [
        b["tl"] + h + b["tr"],
        f"{b['v']} {title:<{width - 4}} {b['v']}",
        ("+" if ascii_mode else "└") + h + ("+" if ascii_mode else "┘"),
        "",
    ]


def _section(title: str, width: int = 65) -> List[str]:
    """Return section divider."""
    h = "-" * width
    return [h, title.center(width), h]


def _value(value: Any, sensitive: bool = False) -> str:
    if sensitive:
        return REDACTED
    if isinstance(value, str):
        return value if value == "(known after apply)" else json.dumps(value)
    return json.dumps(value, default=str)


def _format_change(change: ResourceChange) -> List[str]:
    action = ActionType(change.action)
    symbol = _SYMBOLS[action]
    header = f"  {symbol} {change.address}"
    if action == ActionType.REPLACE:
        header += "  (replace)"
    lines = [header]
    if change.reason:
        lines.append(f"      # {change.reason}")

    for attr in change.changes:
        note = "  # forces replacement" if attr.forces_replacement else ""
        if action == ActionType.CREATE:
            lines.append(f"      {attr.name} = {_value(attr.after, attr.sensitive)}")
        else:
            before = _value(attr.before, attr.sensitive)
            after = _value(attr.after, attr.sensitive)
            lines.append(f"      {attr.name}: {before} -> {after}{note}")
    return lines


def _summary_line(plan: Plan) -> str:
    counts = plan.summary()
    return (
        f"Plan: {counts['create']} to create, {counts['update']} to update, "
        f"{counts['replace']} to replace, {counts['destroy']} to destroy."
    )


def format_plan(plan: Plan, ascii_mode: Optional[bool] = None) -> str:
    """Render a plan as readable text; sensitive values are redacted."""
    ascii_mode = _use_ascii(ascii_mode)
    title = "DESTROY PLAN" if plan.destroy else "EXECUTION PLAN"
    lines = _box(title, ascii_mode=ascii_mode)

    if not plan.has_changes:
        lines.append("No changes. Infrastructure matches the declarations.")
        return "\n".join(lines)

    for change in plan.changes:
        if change.action == ActionType.NO_OP:
            continue
        lines.extend(_format_change(change))
        lines.append("")

    lines.extend(_section("ORDER"))
    for idx, key in enumerate(plan.operation_order(), start=1):
        lines.append(f"  {idx:>3}. {key}")
    lines.append("")
    lines.append(_summary_line(plan))
    return "\n".join(lines)


def format_result(result: ExecutionResult, ascii_mode: Optional[bool] = None) -> str:
    """Render per-resource outcomes of an apply."""
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box("APPLY RESULT", ascii_mode=ascii_mode)

    for address, outcome in sorted(result.resources().items()):
        mark = _STATUS_MARKS[ResourceStatus(outcome.status)][0 if ascii_mode else 1]
        line = f"  {mark} {address}"
        if outcome.reason:
            line += f"\n      {outcome.reason}"
        lines.append(line)

    lines.append("")
    if result.cancelled:
        lines.append("Apply was cancelled; remaining operations were not started.")
    lines.append(
        f"Apply complete: {len(result.converged)} converged, {len(result.failed)} failed, "
        f"{len(result.skipped)} skipped in {result.waves} wave{'s' if result.waves != 1 else ''}."
    )
    return "\n".join(lines)


def format_progress(event: str, op: Operation, outcome: Optional[OperationOutcome]) -> str:
    """One-line progress message for an executor event."""
    if event == "start":
        return f"{op.address}: {op.kind.value} started"
    status = ResourceStatus(outcome.status) if outcome else ResourceStatus.PENDING
    if status == ResourceStatus.CONVERGED:
        return f"{op.address}: {op.kind.value} complete after {outcome.duration_seconds:.1f}s"
    return f"{op.address}: {status.value}"


def format_state_list(states: List[ResourceState]) -> str:
    return "\n".join(state.address for state in states)


def format_resource_state(state: ResourceState, registry: Optional[SchemaRegistry] = None) -> str:
    """Render one recorded resource; sensitive inputs are redacted when the type is known."""
    sensitive = set()
    if registry is not None and state.type in registry.types():
        sensitive = set(registry.lookup(state.type).sensitive_attributes)

    lines = [f"# {state.address}", f"type       = {state.type}", f"identifier = {state.identifier}"]
    if state.dependencies:
        lines.append(f"depends on = {', '.join(state.dependencies)}")
    lines.append("")
    lines.append("inputs:")
    for name in sorted(state.inputs):
        lines.append(f"  {name} = {_value(state.inputs[name], name in sensitive)}")
    lines.append("outputs:")
    for name in sorted(state.outputs):
        lines.append(f"  {name} = {_value(state.outputs[name])}")
    return "\n".join(lines)


def format_outputs(outputs: Dict[str, Any]) -> str:
    if not outputs:
        return "No outputs recorded. Run 'tierform apply' first."
    return "\n".join(f"{name} = {_value(outputs[name])}" for name in sorted(outputs))


def plan_as_dict(plan: Plan) -> Dict[str, Any]:
    """JSON-ready plan with sensitive attribute values redacted."""
    data = plan.model_dump(mode="json")
    for change in data["changes"]:
        for attr in change["changes"]:
            if attr["sensitive"]:
                attr["before"] = REDACTED if attr["before"] is not None else None
                attr["after"] = REDACTED
    data["summary"] = plan.summary()
    return data
