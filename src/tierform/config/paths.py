"""Config path resolution for two-tier config system."""

from pathlib import Path
from typing import Optional

def get_user_config_path() -> Path:
    """Get user config path: ~/.tierform/config.yaml"""
    home = Path.home()
    return home / ".tierform" / "config.yaml"


def get_project_config_path(root: Optional[Path] = None) -> Optional[Path]:
    """Get project config path: .tierform/config.yaml (from the workspace root)"""
    base = root or Path.cwd()
    project_config = base / ".tierform" / "config.yaml"
    if project_config.exists():
        return project_config
    return None


def get_defaults_path() -> Path:
    """Packaged defaults shipped with tierform."""
    return Path(__file__).parent / "defaults.yaml"
