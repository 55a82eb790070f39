"""Presentation layer - human-friendly formatting."""

from .human_formatter import (
    format_plan,
    format_result,
    format_progress,
    format_state_list,
    format_resource_state,
    format_outputs,
    plan_as_dict,
)

__all__ = [
    "format_plan",
    "format_result",
    "format_progress",
    "format_state_list",
    "format_resource_state",
    "format_outputs",
    "plan_as_dict",
]
