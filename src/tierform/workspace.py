"""Run-level facade: one deployment directory with its config, state and provider."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from .config import OrchestratorConfig, load_orchestrator_config, save_config
from .execution import CancellationToken, ExecutionResult, Executor, refresh
from .execution.executor import ProgressCallback
from .graph.dependency_graph import DependencyGraph, build_graph
from .ingest.declaration_loader import DeclarationLoader
from .ingest.models import DeclarationSet, Reference
from .planning import Plan, Planner
from .providers import Provider, create_provider
from .schema.registry import SchemaRegistry, default_registry
from .state import ResourceState, StateStore
from .utils.errors import StateError, TierformError
from .utils.logging import get_logger

logger = get_logger("workspace")

WORKSPACE_DIR = ".tierform"
SCHEMA_CATALOGUE = "schemas.json"


class Workspace:
    """
    A deployment rooted at a directory.

    Loads configuration once, then exposes the operations the CLI needs:
    validate, plan, apply, destroy, outputs and state surgery. Anything that
    may write state runs under the deployment lock.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        include_user_config: bool = True,
        provider: Optional[Provider] = None,
        registry: Optional[SchemaRegistry] = None,
    ):
        self.root = Path(root).resolve() if root else Path.cwd()
        self.config: OrchestratorConfig = load_orchestrator_config(
            self.root, config_path=config_path, overrides=overrides, include_user=include_user_config
        )
        self.variables = {**self.config.variables, **(variables or {})}
        self.registry = registry or default_registry()
        self.store = StateStore(
            str(self._path(self.config.state.path)),
            stale_after_seconds=self.config.lock.stale_after_seconds,
        )
        self._provider = provider

    def _path(self, relative: str) -> Path:
        path = Path(relative)
        return path if path.is_absolute() else self.root / path

    @property
    def declaration_path(self) -> Path:
        return self._path(self.config.declaration_file)

    @property
    def provider(self) -> Provider:
        if self._provider is None:
            self._provider = create_provider(self.config.provider, self.root)
        return self._provider

    # Setup and validation

    def init(self) -> List[Path]:
        """Create the workspace directory and write the schema catalogue; returns written files."""
        workspace_dir = self.root / WORKSPACE_DIR
        workspace_dir.mkdir(parents=True, exist_ok=True)
        written = []

        catalogue = workspace_dir / SCHEMA_CATALOGUE
        with open(catalogue, 'w', encoding='utf-8') as f:
            json.dump(self.registry.export(), f, indent=2, sort_keys=True)
        written.append(catalogue)

        project_config = workspace_dir / "config.yaml"
        if not project_config.exists():
            save_config({"provider": {"kind": self.config.provider.kind}, "variables": {}}, project_config)
            written.append(project_config)

        logger.info(f"Initialized workspace at {workspace_dir}")
        return written

    def load(self) -> Tuple[DeclarationSet, DependencyGraph]:
        """Parse declarations and build the dependency graph."""
        declarations = DeclarationLoader(self.registry).load(str(self.declaration_path), self.variables)
        graph = build_graph(declarations, self.registry)
        return declarations, graph

    def validate(self) -> DeclarationSet:
        """Check declarations end to end without contacting the provider."""
        declarations, graph = self.load()
        Planner(self.registry).plan(graph, [])
        return declarations

    # Planning and applying

    def plan(self, destroy: bool = False, refresh_state: bool = True) -> Plan:
        """Compute a plan; refreshing state takes the lock because it may rewrite state."""
        declarations, graph = self.load()
        if not refresh_state:
            return Planner(self.registry).plan(graph, self.store.load(), destroy=destroy)
        with self.store.lock("plan"):
            refresh(self.store, self.provider)
            return Planner(self.registry).plan(graph, self.store.load(), destroy=destroy)

    def apply(
        self,
        destroy: bool = False,
        approve: Optional[Callable[[Plan], bool]] = None,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None,
        refresh_state: bool = True,
    ) -> Tuple[Plan, Optional[ExecutionResult]]:
        """
        Plan and execute under the deployment lock.

        Args:
            destroy: Destroy every recorded resource
            approve: Called with the plan before anything changes; returning False aborts
            progress: Executor progress callback
            cancel: Token used to stop between waves
            refresh_state: Read recorded resources back from the provider first

        Returns:
            Tuple of (plan, result); result is None when nothing was executed
        """
        declarations, graph = self.load()
        with self.store.lock("destroy" if destroy else "apply"):
            if refresh_state:
                refresh(self.store, self.provider)
            plan = Planner(self.registry).plan(graph, self.store.load(), destroy=destroy)

            if not plan.has_changes:
                logger.info("No changes; infrastructure matches the declarations")
                self._record_outputs(declarations, destroy)
                return plan, None

            if approve is not None and not approve(plan):
                logger.info("Apply cancelled before any change was made")
                return plan, None

            executor = Executor(
                self.registry,
                self.provider,
                self.store,
                parallelism=self.config.execution.parallelism,
                resource_timeout=self.config.execution.resource_timeout_seconds,
                retry=self.config.retry,
                progress=progress,
            )
            result = executor.apply(plan, declarations, cancel=cancel)
            self._record_outputs(declarations, destroy)
            return plan, result

    def destroy(self, **kwargs) -> Tuple[Plan, Optional[ExecutionResult]]:
        return self.apply(destroy=True, **kwargs)

    def _record_outputs(self, declarations: DeclarationSet, destroy: bool) -> None:
        if destroy:
            self.store.set_outputs({})
            return

        states = {state.address: state for state in self.store.load()}
        outputs = {}
        for name, value in declarations.outputs.items():
            resolved = self._resolve_output(value, states)
            if resolved is _MISSING:
                logger.warning(f"Output '{name}' has no value yet; its resource has not converged")
                continue
            outputs[name] = resolved
        self.store.set_outputs(outputs)

    def _resolve_output(self, value: Any, states: Dict[str, ResourceState]) -> Any:
        if isinstance(value, Reference):
            state = states.get(value.target)
            if state is None or value.attribute not in state.outputs:
                return _MISSING
            return state.outputs[value.attribute]
        if isinstance(value, dict):
            resolved = {k: self._resolve_output(v, states) for k, v in value.items()}
            return _MISSING if any(v is _MISSING for v in resolved.values()) else resolved
        if isinstance(value, list):
            resolved = [self._resolve_output(v, states) for v in value]
            return _MISSING if any(v is _MISSING for v in resolved) else resolved
        return value

    # Outputs and state surgery

    def output(self, name: Optional[str] = None) -> Any:
        outputs = self.store.outputs()
        if name is None:
            return outputs
        if name not in outputs:
            available = ", ".join(sorted(outputs)) or "none"
            raise TierformError(f"Output '{name}' not found (available: {available})")
        return outputs[name]

    def state_list(self) -> List[ResourceState]:
        return self.store.load()

    def state_show(self, address: str) -> ResourceState:
        state = self.store.get(address)
        if state is None:
            raise StateError(f"No resource at address '{address}' in state")
        return state

    def state_rm(self, address: str) -> None:
        """Forget a resource without deleting it from the provider."""
        with self.store.lock("state rm"):
            if not self.store.remove(address):
                raise StateError(f"No resource at address '{address}' in state")
        logger.warning(f"Removed {address} from state; the real resource was left in place")

    def force_unlock(self, lock_id: str) -> None:
        self.store.force_unlock(lock_id)


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


_MISSING = _Missing()
