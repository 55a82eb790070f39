"""Diff declared resources against prior state and order the resulting actions."""

import networkx as nx
from typing import Any, Dict, Iterable, List, Optional, Tuple
from .models import (
    ActionType,
    AttributeChange,
    Operation,
    OperationKind,
    Plan,
    ResourceChange,
    UNKNOWN_DISPLAY,
    operation_key,
)
from ..graph.dependency_graph import DependencyGraph
from ..ingest.models import Reference, ResourceDeclaration
from ..schema.registry import SchemaRegistry
from ..state.models import ResourceState
from ..utils.errors import CyclicDependencyError
from ..utils.logging import get_logger

logger = get_logger("planning.planner")


class _Unknown:
    """Value that will only be known once a dependency has been applied."""

    def __repr__(self) -> str:
        return UNKNOWN_DISPLAY


UNKNOWN = _Unknown()


def is_known(value: Any) -> bool:
    if value is UNKNOWN:
        return False
    if isinstance(value, dict):
        return all(is_known(v) for v in value.values())
    if isinstance(value, list):
        return all(is_known(v) for v in value)
    return True


def _display(value: Any) -> Any:
    if value is UNKNOWN:
        return UNKNOWN_DISPLAY
    if isinstance(value, dict):
        return {k: _display(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_display(v) for v in value]
    return value


class Planner:
    """Produces a Plan from a dependency graph and prior state."""

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry

    def plan(
        self,
        graph: DependencyGraph,
        prior_state: Iterable[ResourceState],
        destroy: bool = False,
    ) -> Plan:
        """
        Compute the plan.

        Args:
            graph: Dependency graph of the declared resources
            prior_state: Last-known state of every recorded resource
            destroy: Treat the declaration set as empty

        Returns:
            Plan with one ResourceChange per declared or recorded resource

        Raises:
            SchemaViolationError: If fully-known declared inputs violate the schema
            CyclicDependencyError: If recorded dependencies form a cycle
        """
        prior = {state.address: state for state in prior_state}
        declared = [] if destroy else graph.topological_order()
        declared_set = set(declared)

        changes: Dict[str, ResourceChange] = {}
        for address in declared:
            changes[address] = self._plan_declared(graph, address, prior.get(address), changes, prior)

        for address in sorted(prior):
            if address not in declared_set:
                reason = "destroy requested" if destroy else "no longer declared"
                changes[address] = ResourceChange(
                    address=address, type=prior[address].type, action=ActionType.DESTROY, reason=reason
                )

        combined = self._combined_graph(graph, prior, declared_set)
        order_key = self._order_key(graph, declared_set)
        forward = [a for a in nx.lexicographical_topological_sort(combined.reverse(copy=False), key=order_key)]
        backward = [a for a in nx.lexicographical_topological_sort(combined, key=order_key)]

        destroyed = {a for a, c in changes.items() if c.action in (ActionType.DESTROY, ActionType.REPLACE)}
        converged = {a for a, c in changes.items() if c.action in (ActionType.CREATE, ActionType.UPDATE, ActionType.REPLACE)}

        operations: List[Operation] = []
        for address in backward:
            if address not in destroyed:
                continue
            dependents = nx.ancestors(combined, address) & destroyed
            operations.append(Operation(
                address=address,
                type=prior[address].type,
                kind=OperationKind.DELETE,
                after=[operation_key(OperationKind.DELETE, d) for d in backward if d in dependents],
            ))

        for address in forward:
            if address not in converged:
                continue
            change = changes[address]
            kind = OperationKind.UPDATE if change.action == ActionType.UPDATE else OperationKind.CREATE
            upstream = nx.descendants(combined, address) & converged
            after = [
                operation_key(
                    OperationKind.UPDATE if changes[u].action == ActionType.UPDATE else OperationKind.CREATE, u
                )
                for u in forward if u in upstream
            ]
            if change.action == ActionType.REPLACE:
                after.insert(0, operation_key(OperationKind.DELETE, address))
            operations.append(Operation(
                address=address,
                type=change.type,
                kind=kind,
                after=after,
                dependencies=graph.dependencies(address),
            ))

        ordered_changes = [changes[a] for a in backward if changes[a].action == ActionType.DESTROY]
        ordered_changes += [changes[a] for a in forward if a in declared_set]

        result = Plan(changes=ordered_changes, operations=operations, destroy=destroy)
        logger.info(f"Plan: {result.summary()}")
        return result

    def _plan_declared(
        self,
        graph: DependencyGraph,
        address: str,
        state: Optional[ResourceState],
        changes: Dict[str, ResourceChange],
        prior: Dict[str, ResourceState],
    ) -> ResourceChange:
        declaration = graph.get_resource(address)
        schema = self.registry.lookup(declaration.type)
        values = self._resolve(declaration.inputs, changes, prior)

        if is_known(values):
            values = self.registry.validate_inputs(address, declaration.type, values)
        else:
            values = self.registry.with_defaults(declaration.type, values)

        if state is None:
            return ResourceChange(
                address=address,
                type=declaration.type,
                action=ActionType.CREATE,
                changes=self._attribute_changes(schema, {}, values, all_keys=True),
            )

        if state.type != declaration.type:
            return ResourceChange(
                address=address,
                type=declaration.type,
                action=ActionType.REPLACE,
                changes=self._attribute_changes(schema, state.inputs, values),
                reason=f"type changed from {state.type} to {declaration.type}",
            )

        attribute_changes = self._attribute_changes(schema, state.inputs, values)
        if not attribute_changes:
            return ResourceChange(address=address, type=declaration.type, action=ActionType.NO_OP)

        forcing = [c.name for c in attribute_changes if c.forces_replacement]
        if forcing:
            return ResourceChange(
                address=address,
                type=declaration.type,
                action=ActionType.REPLACE,
                changes=attribute_changes,
                reason=f"change to {', '.join(forcing)} forces replacement",
            )

        # The live object points at a resource that is about to be deleted, and
        # that delete cannot succeed while this object still references it.
        replaced = self._replaced_targets(declaration, changes)
        if replaced:
            return ResourceChange(
                address=address,
                type=declaration.type,
                action=ActionType.REPLACE,
                changes=attribute_changes,
                reason=f"references {', '.join(replaced)}, which is being replaced",
            )
        return ResourceChange(
            address=address, type=declaration.type, action=ActionType.UPDATE, changes=attribute_changes
        )

    @staticmethod
    def _replaced_targets(declaration: ResourceDeclaration, changes: Dict[str, ResourceChange]) -> List[str]:
        targets = {reference.target for _, reference in declaration.references()}
        return sorted(
            target for target in targets
            if target in changes and changes[target].action == ActionType.REPLACE
        )

    def _resolve(self, value: Any, changes: Dict[str, ResourceChange], prior: Dict[str, ResourceState]) -> Any:
        """Substitute references with prior outputs, or UNKNOWN when the target is being (re)created."""
        if isinstance(value, Reference):
            target_change = changes.get(value.target)
            if target_change is not None and target_change.action in (ActionType.CREATE, ActionType.REPLACE):
                return UNKNOWN
            target_state = prior.get(value.target)
            if target_state is None or value.attribute not in target_state.outputs:
                return UNKNOWN
            return target_state.outputs[value.attribute]
        if isinstance(value, dict):
            return {k: self._resolve(v, changes, prior) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v, changes, prior) for v in value]
        return value

    @staticmethod
    def _attribute_changes(schema, before: Dict[str, Any], after: Dict[str, Any], all_keys: bool = False) -> List[AttributeChange]:
        result = []
        for spec in schema.inputs:
            old = before.get(spec.name)
            new = after.get(spec.name)
            if not all_keys and is_known(new) and old == new:
                continue
            if all_keys and new is None:
                continue
            result.append(AttributeChange(
                name=spec.name,
                before=old,
                after=_display(new),
                forces_replacement=spec.forces_replacement and not all_keys,
                sensitive=spec.sensitive,
            ))
        return result

    @staticmethod
    def _combined_graph(graph: DependencyGraph, prior: Dict[str, ResourceState], declared: set) -> nx.DiGraph:
        """Declared edges plus recorded edges of resources that are no longer declared."""
        combined = nx.DiGraph()
        for address in declared:
            combined.add_node(address)
            for dependency in graph.dependencies(address):
                combined.add_edge(address, dependency)
        for address, state in prior.items():
            if address in declared:
                continue
            combined.add_node(address)
            for dependency in state.dependencies:
                if dependency in prior or dependency in declared:
                    combined.add_edge(address, dependency)

        if not nx.is_directed_acyclic_graph(combined):
            raise CyclicDependencyError([edge[0] for edge in nx.find_cycle(combined)])
        return combined

    @staticmethod
    def _order_key(graph: DependencyGraph, declared: set):
        def key(address: str) -> Tuple[int, int, str]:
            if address in declared:
                return (0, graph.get_resource(address).index, address)
            return (1, 0, address)
        return key


def plan(
    graph: DependencyGraph,
    prior_state: Iterable[ResourceState],
    registry: SchemaRegistry,
    destroy: bool = False,
) -> Plan:
    """Convenience wrapper around Planner.plan."""
    return Planner(registry).plan(graph, prior_state, destroy=destroy)
