"""Wave-based executor: converge planned operations against the provider."""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from .models import (
    CancellationToken,
    ExecutionResult,
    OperationOutcome,
    ResourceStatus,
)
from .retry import build_retrying
from ..config import RetrySettings
from ..ingest.models import DeclarationSet, Reference, ResourceDeclaration
from ..planning.models import Operation, OperationKind, Plan
from ..providers.base import Provider
from ..schema.registry import SchemaRegistry
from ..state.models import ResourceState
from ..state.store import StateStore
from ..utils.errors import (
    DependencyViolationError,
    NotFoundError,
    OperationTimeoutError,
    SchemaViolationError,
    TierformError,
)
from ..utils.logging import get_logger

logger = get_logger("execution.executor")

ProgressCallback = Callable[[str, Operation, Optional[OperationOutcome]], None]

_POLL_SECONDS = 0.05
DEPENDENCY_VIOLATION_HINT = (
    "Another live resource still references it. If that resource is not part of this deployment, "
    "remove or detach it manually, then re-run."
)


class _Cancelled(Exception):
    """Operation was dequeued after cancellation was requested."""


class Executor:
    """
    Applies a Plan wave by wave.

    Operations whose prerequisites have all converged form a wave and run on a
    bounded thread pool. The coordinating thread is the only writer of the
    state store: each converged operation is committed before the next wave.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        provider: Provider,
        store: StateStore,
        parallelism: int = 10,
        resource_timeout: float = 1800,
        retry: Optional[RetrySettings] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self.registry = registry
        self.provider = provider
        self.store = store
        self.parallelism = max(1, parallelism)
        self.resource_timeout = resource_timeout
        self.retry_settings = retry or RetrySettings()
        self.progress = progress

    def apply(
        self,
        plan: Plan,
        declarations: Union[DeclarationSet, Dict[str, ResourceDeclaration], None] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """
        Execute every operation in ``plan``.

        Args:
            plan: Plan from the Planner
            declarations: Declarations the plan was computed from (needed for create/update)
            cancel: Token checked between waves and before each queued operation starts

        Returns:
            ExecutionResult with per-resource outcomes
        """
        if isinstance(declarations, DeclarationSet):
            declarations = declarations.by_address()
        declarations = declarations or {}
        cancel = cancel or CancellationToken()

        status: Dict[str, ResourceStatus] = {op.key: ResourceStatus.PENDING for op in plan.operations}
        outcomes: Dict[str, OperationOutcome] = {}
        result = ExecutionResult()

        pool = ThreadPoolExecutor(max_workers=self.parallelism, thread_name_prefix="tierform")
        abandoned = False
        try:
            while any(s == ResourceStatus.PENDING for s in status.values()):
                if cancel.cancelled:
                    result.cancelled = True
                    for op in plan.operations:
                        if status[op.key] == ResourceStatus.PENDING:
                            self._finish(status, outcomes, op, ResourceStatus.SKIPPED, "run cancelled", wave=result.waves)
                    break

                wave = self._next_wave(plan, status, outcomes, result.waves + 1)
                if not wave:
                    break
                result.waves += 1
                logger.info(f"Wave {result.waves}: {', '.join(op.key for op in wave)}")
                abandoned |= self._run_wave(pool, wave, declarations, status, outcomes, cancel, result.waves)
        finally:
            pool.shutdown(wait=not abandoned, cancel_futures=True)

        if cancel.cancelled:
            result.cancelled = True
        result.operations = list(outcomes.values())
        logger.info(
            f"Apply finished: {len(result.converged)} converged, {len(result.failed)} failed, "
            f"{len(result.skipped)} skipped"
        )
        return result

    def _next_wave(
        self,
        plan: Plan,
        status: Dict[str, ResourceStatus],
        outcomes: Dict[str, OperationOutcome],
        wave_number: int,
    ) -> List[Operation]:
        """Skip operations behind failures; return operations whose prerequisites converged."""
        wave = []
        # Operations are listed so that prerequisites precede dependents, so one
        # pass propagates skips transitively.
        for op in plan.operations:
            if status[op.key] != ResourceStatus.PENDING:
                continue
            blocked = [k for k in op.after if status.get(k) in (ResourceStatus.FAILED, ResourceStatus.SKIPPED)]
            if blocked:
                reason = f"skipped because {blocked[0]} {status[blocked[0]].value}"
                self._finish(status, outcomes, op, ResourceStatus.SKIPPED, reason, wave=wave_number)
                continue
            if all(status.get(k, ResourceStatus.CONVERGED) == ResourceStatus.CONVERGED for k in op.after):
                wave.append(op)
        return wave

    def _run_wave(
        self,
        pool: ThreadPoolExecutor,
        wave: List[Operation],
        declarations: Dict[str, ResourceDeclaration],
        status: Dict[str, ResourceStatus],
        outcomes: Dict[str, OperationOutcome],
        cancel: CancellationToken,
        wave_number: int,
    ) -> bool:
        """Run one wave to completion; returns True if a timed-out operation was abandoned."""
        snapshot = {state.address: state for state in self.store.load()}
        started: Dict[str, float] = {}
        started_lock = threading.Lock()
        futures: Dict[Future, Tuple[Operation, Any]] = {}
        order: Dict[Future, int] = {}
        abandoned = False

        for op in wave:
            try:
                prepared = self._prepare(op, declarations, snapshot)
            except TierformError as e:
                self._finish(status, outcomes, op, ResourceStatus.FAILED, self._describe(op, e), wave=wave_number)
                continue
            status[op.key] = ResourceStatus.IN_PROGRESS
            self._emit("start", op, None)
            future = pool.submit(self._execute, op, prepared, cancel, started, started_lock)
            futures[future] = (op, prepared)
            order[future] = len(order)

        while futures:
            done, _ = wait(list(futures), timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
            # Commit in wave order when several finish together.
            for future in sorted(done, key=lambda f: order[f]):
                op, prepared = futures.pop(future)
                with started_lock:
                    start = started.get(op.key)
                duration = time.monotonic() - start if start else 0.0
                self._complete(op, prepared, future, status, outcomes, wave_number, duration)

            now = time.monotonic()
            for future, (op, _) in list(futures.items()):
                with started_lock:
                    start = started.get(op.key)
                if start is not None and now - start > self.resource_timeout:
                    futures.pop(future)
                    abandoned = True
                    error = OperationTimeoutError(f"timed out after {self.resource_timeout:g}s")
                    self._finish(
                        status, outcomes, op, ResourceStatus.FAILED, self._describe(op, error),
                        wave=wave_number, duration=now - start,
                    )
                    future.add_done_callback(
                        lambda f, key=op.key: logger.warning(
                            f"{key} finished after its timeout; the result was not recorded in state"
                        )
                    )
        return abandoned

    def _prepare(
        self,
        op: Operation,
        declarations: Dict[str, ResourceDeclaration],
        snapshot: Dict[str, ResourceState],
    ) -> Dict[str, Any]:
        """Resolve inputs and identifiers for ``op`` from committed state."""
        prior = snapshot.get(op.address)
        if op.kind == OperationKind.DELETE:
            return {"identifier": prior.identifier if prior else None, "type": prior.type if prior else op.type}

        declaration = declarations.get(op.address)
        if declaration is None:
            raise SchemaViolationError(op.address, "no declaration available for this operation")
        values = self._resolve(op.address, declaration.inputs, snapshot)
        inputs = self.registry.validate_inputs(op.address, declaration.type, values)
        prepared = {"inputs": inputs, "type": declaration.type}
        if op.kind == OperationKind.UPDATE:
            if prior is None:
                raise SchemaViolationError(op.address, "cannot update a resource that is not in state")
            prepared["identifier"] = prior.identifier
        return prepared

    def _resolve(self, address: str, value: Any, snapshot: Dict[str, ResourceState]) -> Any:
        if isinstance(value, Reference):
            target = snapshot.get(value.target)
            if target is None or value.attribute not in target.outputs:
                raise SchemaViolationError(
                    address, f"reference {value} has no value; {value.target} has not converged"
                )
            return target.outputs[value.attribute]
        if isinstance(value, dict):
            return {k: self._resolve(address, v, snapshot) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(address, v, snapshot) for v in value]
        return value

    def _execute(
        self,
        op: Operation,
        prepared: Dict[str, Any],
        cancel: CancellationToken,
        started: Dict[str, float],
        started_lock: threading.Lock,
    ) -> Tuple[Any, int]:
        """Worker thread: call the provider with retries; returns (result, attempts)."""
        if cancel.cancelled:
            raise _Cancelled()
        with started_lock:
            started[op.key] = time.monotonic()

        retrying = build_retrying(self.retry_settings)
        resource_type = prepared["type"]
        if op.kind == OperationKind.CREATE:
            result = retrying(self.provider.create, resource_type, prepared["inputs"])
        elif op.kind == OperationKind.UPDATE:
            result = retrying(self.provider.update, resource_type, prepared["identifier"], prepared["inputs"])
        else:
            if prepared["identifier"] is None:
                return None, 0
            try:
                result = retrying(self.provider.delete, resource_type, prepared["identifier"])
            except NotFoundError:
                logger.warning(f"{op.address} was already deleted outside tierform")
                result = None
        return result, retrying.statistics.get("attempt_number", 1)

    def _complete(
        self,
        op: Operation,
        prepared: Dict[str, Any],
        future: Future,
        status: Dict[str, ResourceStatus],
        outcomes: Dict[str, OperationOutcome],
        wave_number: int,
        duration: float,
    ) -> None:
        """Coordinating thread: commit a finished operation to state."""
        try:
            result, attempts = future.result()
        except _Cancelled:
            self._finish(status, outcomes, op, ResourceStatus.SKIPPED, "run cancelled", wave=wave_number)
            return
        except TierformError as e:
            self._finish(
                status, outcomes, op, ResourceStatus.FAILED, self._describe(op, e),
                wave=wave_number, duration=duration,
            )
            return
        except Exception as e:
            logger.error(f"Unexpected error during {op.key}: {e}", exc_info=True)
            self._finish(
                status, outcomes, op, ResourceStatus.FAILED, self._describe(op, e),
                wave=wave_number, duration=duration,
            )
            return

        if op.kind == OperationKind.DELETE:
            self.store.remove(op.address)
        elif op.kind == OperationKind.CREATE:
            identifier, outputs = result
            self.store.upsert(ResourceState(
                address=op.address,
                type=prepared["type"],
                identifier=identifier,
                inputs=prepared["inputs"],
                outputs=self._checked_outputs(op, prepared["type"], outputs),
                dependencies=op.dependencies,
            ))
        else:
            self.store.upsert(ResourceState(
                address=op.address,
                type=prepared["type"],
                identifier=prepared["identifier"],
                inputs=prepared["inputs"],
                outputs=self._checked_outputs(op, prepared["type"], result),
                dependencies=op.dependencies,
            ))

        self._finish(
            status, outcomes, op, ResourceStatus.CONVERGED, None,
            wave=wave_number, attempts=attempts, duration=duration,
        )

    def _checked_outputs(self, op: Operation, resource_type: str, outputs: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.registry.validate_outputs(op.address, resource_type, outputs)
        except SchemaViolationError as e:
            # The resource exists; record what the provider returned.
            logger.warning(str(e))
            return dict(outputs)

    @staticmethod
    def _describe(op: Operation, error: Exception) -> str:
        message = f"{op.kind.value} {op.address} failed: {error}"
        if isinstance(error, DependencyViolationError):
            message += f". {DEPENDENCY_VIOLATION_HINT}"
        return message

    def _finish(
        self,
        status: Dict[str, ResourceStatus],
        outcomes: Dict[str, OperationOutcome],
        op: Operation,
        final: ResourceStatus,
        reason: Optional[str],
        wave: int = 0,
        attempts: int = 0,
        duration: float = 0.0,
    ) -> None:
        status[op.key] = final
        outcome = OperationOutcome(
            key=op.key,
            address=op.address,
            kind=op.kind,
            status=final,
            reason=reason,
            attempts=attempts,
            duration_seconds=max(duration, 0.0),
            wave=wave,
        )
        outcomes[op.key] = outcome
        if final == ResourceStatus.FAILED:
            logger.error(reason)
        elif final == ResourceStatus.SKIPPED:
            logger.warning(f"{op.key}: {reason}")
        else:
            logger.info(f"{op.key} converged")
        self._emit("finish", op, outcome)

    def _emit(self, event: str, op: Operation, outcome: Optional[OperationOutcome]) -> None:
        if self.progress is not None:
            self.progress(event, op, outcome)
