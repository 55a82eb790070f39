"""Resource providers (optional remote backends)."""

from pathlib import Path
from typing import Optional
from .base import Provider
from .local import LocalProvider
from ..config import ProviderSettings
from ..utils.errors import ConfigError


def create_provider(settings: ProviderSettings, root: Optional[Path] = None) -> Provider:
    """
    Build the provider selected in configuration.

    Args:
        settings: Provider settings from OrchestratorConfig
        root: Workspace root that relative paths are resolved against

    Returns:
        Provider instance
    """
    if settings.kind == "memory":
        return LocalProvider()
    if settings.kind == "local":
        path = Path(settings.path or ".tierform/local-cloud.json")
        if root is not None and not path.is_absolute():
            path = root / path
        return LocalProvider(str(path))
    if settings.kind == "http":
        from .http import HttpProvider
        return HttpProvider(base_url=settings.base_url, timeout=settings.timeout_seconds)
    raise ConfigError(f"Unknown provider kind: {settings.kind}")


__all__ = ["Provider", "LocalProvider", "create_provider"]
