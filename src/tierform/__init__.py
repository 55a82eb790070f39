"""tierform - Declarative resource orchestrator for multi-tier cloud deployments."""

__version__ = "0.1.0"

from .utils.logging import setup_logging
from .utils.errors import TierformError
from .workspace import Workspace

__all__ = ["Workspace", "TierformError", "__version__"]

setup_logging()
