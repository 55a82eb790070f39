"""Workspace path resolution utilities for CLI."""

from pathlib import Path
from typing import Optional


def resolve_workspace_root(root: Optional[str] = None) -> Path:
    """
    Resolve the workspace directory a command operates on.

    Args:
        root: User-provided directory (default: current directory)

    Returns:
        Resolved Path object

    Raises:
        FileNotFoundError: If the directory does not exist or is a file
    """
    if root is None:
        return Path.cwd()

    path = Path(root)
    if not path.is_absolute():
        path = Path.cwd() / path
    path = path.resolve()

    if not path.exists():
        raise FileNotFoundError(
            f"Directory not found: {root}. Please check the path and try again."
        )
    if not path.is_dir():
        raise FileNotFoundError(
            f"Path is not a directory: {root}. Pass the directory that holds deployment.yaml."
        )
    return path
