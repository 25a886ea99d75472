"""
Dependency graph module for deploygraph.
"""

from typing import TYPE_CHECKING

import networkx as nx

from .component import extract_dependencies
from .exceptions import (
    CyclicTemplateError,
    UndeclaredComponentError,
    UnresolvedGraphError,
)
from .execution_plan import ExecutionPlan
from .topology import Topology

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping

    from .component import ComponentDescriptor


def _normalize_cycle(cycle: list[str]) -> tuple[str, ...]:
    # rotate so the same cycle always reads from its smallest alias
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


class DependencyGraph:
    def __init__(self, components: "Mapping[str, ComponentDescriptor]") -> None:
        self.components = dict(components)
        self._topology: Topology | None = None
        self._execution_plan: ExecutionPlan | None = None

    @classmethod
    def from_components(
        cls, components: "Mapping[str, ComponentDescriptor]"
    ) -> "DependencyGraph":
        """Extract the dependencies of every component from its raw inputs."""
        for descriptor in components.values():
            descriptor.dependencies = extract_dependencies(
                descriptor.inputs, components.keys()
            )

        return cls(components)

    def resolve(self) -> "DependencyGraph":
        # an edge `a -> b` means a's inputs reference b
        digraph = nx.DiGraph()

        for alias, descriptor in self.components.items():
            digraph.add_node(alias, ref=descriptor.ref)

        for alias, descriptor in self.components.items():
            for dependency in descriptor.dependencies:
                if dependency not in self.components:
                    raise UndeclaredComponentError(dependency)

                digraph.add_edge(alias, dependency)

        try:
            order = list(reversed(list(nx.topological_sort(digraph))))
        except nx.NetworkXUnfeasible as e:
            # sort cycles by length for better error reporting
            cycles = sorted(
                (_normalize_cycle(cycle) for cycle in nx.simple_cycles(digraph)),
                key=lambda cycle: (len(cycle), cycle),
            )

            raise CyclicTemplateError(cycles) from e

        self._topology = Topology(digraph=digraph, order=order)
        self._execution_plan = ExecutionPlan.from_dependencies(
            {
                alias: descriptor.dependencies
                for alias, descriptor in self.components.items()
            }
        )

        return self

    @property
    def resolved(self) -> bool:
        return self._execution_plan is not None

    @property
    def topology(self) -> Topology:
        if not self.resolved:
            raise UnresolvedGraphError()

        return self._topology

    @property
    def execution_plan(self) -> ExecutionPlan:
        if not self.resolved:
            raise UnresolvedGraphError()

        return self._execution_plan
