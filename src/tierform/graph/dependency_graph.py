"""Build directed dependency graph from resource declarations."""

import networkx as nx
from typing import Dict, Iterable, List, Optional, Set, Union
from ..ingest.models import DeclarationSet, ResourceDeclaration
from ..schema.registry import SchemaRegistry, default_registry
from ..utils.errors import CyclicDependencyError, UnresolvedReferenceError
from ..utils.logging import get_logger
from .validators import validate_invoker_bindings

logger = get_logger("graph.dependency_graph")


class DependencyGraph:
    """Directed dependency graph: nodes=resources, edges=dependent -> dependency."""

    def __init__(self, registry: Optional[SchemaRegistry] = None):
        self.graph = nx.DiGraph()
        self.registry = registry or default_registry()
        self._resource_map: Dict[str, ResourceDeclaration] = {}

    def add_resource(self, resource: ResourceDeclaration) -> None:
        """Add a resource node (edges are added by build)."""
        address = resource.address
        self.graph.add_node(address, resource=resource, index=resource.index)
        self._resource_map[address] = resource

    def build(self, declarations: Union[DeclarationSet, Iterable[ResourceDeclaration]]) -> "DependencyGraph":
        """
        Build the complete dependency graph.

        Raises:
            UnresolvedReferenceError: If a reference or hint names an undeclared resource/output
            CyclicDependencyError: If dependencies form a cycle
        """
        resources = declarations.resources if isinstance(declarations, DeclarationSet) else list(declarations)
        for resource in resources:
            self.add_resource(resource)

        for resource in resources:
            self._add_reference_edges(resource)
            self._add_explicit_edges(resource)

        cycle = self.find_cycle()
        if cycle:
            raise CyclicDependencyError(cycle)

        validate_invoker_bindings(self._resource_map)

        logger.info(
            f"Built dependency graph with {self.graph.number_of_nodes()} nodes "
            f"and {self.graph.number_of_edges()} edges"
        )
        return self

    def _add_reference_edges(self, resource: ResourceDeclaration) -> None:
        address = resource.address
        for path, reference in resource.references():
            source = f"{address}.{path}"
            target = self._resource_map.get(reference.target)
            if target is None:
                raise UnresolvedReferenceError(
                    source, f"{reference.target}.{reference.attribute}", "resource is not declared"
                )
            schema = self.registry.lookup(target.type)
            if not schema.has_output(reference.attribute):
                raise UnresolvedReferenceError(
                    source,
                    f"{reference.target}.{reference.attribute}",
                    f"type {target.type} has no output '{reference.attribute}' "
                    f"(outputs: {', '.join(schema.output_names)})",
                )
            self._add_edge(address, reference.target, "reference")

    def _add_explicit_edges(self, resource: ResourceDeclaration) -> None:
        address = resource.address
        for hint in resource.depends_on:
            if hint not in self._resource_map:
                raise UnresolvedReferenceError(f"{address}.depends_on", hint, "resource is not declared")
            self._add_edge(address, hint, "explicit")

    def _add_edge(self, dependent: str, dependency: str, kind: str) -> None:
        if self.graph.has_edge(dependent, dependency):
            return
        self.graph.add_edge(dependent, dependency, kind=kind)
        logger.debug(f"Added {kind} dependency edge: {dependent} -> {dependency}")

    def find_cycle(self) -> Optional[List[str]]:
        """Depth-first search with recursion-stack marking; returns cycle members or None."""
        visited: Set[str] = set()
        on_stack: Set[str] = set()
        stack: List[str] = []

        def visit(node: str) -> Optional[List[str]]:
            visited.add(node)
            on_stack.add(node)
            stack.append(node)
            for dependency in self._ordered(self.graph.successors(node)):
                if dependency in on_stack:
                    return stack[stack.index(dependency):]
                if dependency not in visited:
                    found = visit(dependency)
                    if found:
                        return found
            on_stack.discard(node)
            stack.pop()
            return None

        for node in self._ordered(self.graph.nodes):
            if node not in visited:
                found = visit(node)
                if found:
                    return list(found)
        return None

    def _index(self, address: str) -> int:
        return self.graph.nodes[address].get("index", 0)

    def _ordered(self, addresses: Iterable[str]) -> List[str]:
        return sorted(addresses, key=lambda a: (self._index(a), a))

    def topological_order(self) -> List[str]:
        """Dependencies before dependents; ties broken by declaration order."""
        return list(nx.lexicographical_topological_sort(
            self.graph.reverse(copy=False), key=lambda a: (self._index(a), a)
        ))

    def reverse_topological_order(self) -> List[str]:
        """Dependents before their dependencies (destroy order)."""
        return list(nx.lexicographical_topological_sort(
            self.graph, key=lambda a: (self._index(a), a)
        ))

    def waves(self) -> List[List[str]]:
        """Groups of resources that can be converged together, dependencies first."""
        return [
            self._ordered(generation)
            for generation in nx.topological_generations(self.graph.reverse(copy=False))
        ]

    def dependencies(self, address: str) -> List[str]:
        """Direct dependencies of ``address``."""
        if address not in self.graph:
            return []
        return self._ordered(self.graph.successors(address))

    def dependents(self, address: str) -> List[str]:
        """Direct dependents of ``address``."""
        if address not in self.graph:
            return []
        return self._ordered(self.graph.predecessors(address))

    def get_downstream_resources(self, address: str) -> Set[str]:
        """All resources that depend on the given resource, transitively."""
        if address not in self.graph:
            return set()
        return set(nx.ancestors(self.graph, address))

    def get_upstream_resources(self, address: str) -> Set[str]:
        """All resources the given resource depends on, transitively."""
        if address not in self.graph:
            return set()
        return set(nx.descendants(self.graph, address))

    def get_resource(self, address: str) -> Optional[ResourceDeclaration]:
        """Get declaration by address."""
        return self._resource_map.get(address)

    def get_all_resources(self) -> List[ResourceDeclaration]:
        """All declarations in declaration order."""
        return [self._resource_map[a] for a in self._ordered(self._resource_map)]


def build_graph(
    declarations: Union[DeclarationSet, Iterable[ResourceDeclaration]],
    registry: Optional[SchemaRegistry] = None,
) -> DependencyGraph:
    """Build and validate a dependency graph."""
    return DependencyGraph(registry).build(declarations)
