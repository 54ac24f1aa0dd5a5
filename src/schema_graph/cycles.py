"""Cycle breaking for the dependency graph."""
import logging
from dataclasses import dataclass
from typing import List, Mapping, Set, Tuple

import networkx as nx

from .builder import Graph
from .errors import UnbreakableCycle
from .models import Edge, EdgeClass, Identity, SchemaObject

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcyclicView:
    """DAG-shaped view over a graph.

    ``graph`` is left untouched for diagnostics; ``dag`` is a frozen copy of
    its edges minus the ``deferred`` ones.
    """
    graph: Graph
    dag: nx.DiGraph
    deferred: Tuple[Edge, ...]

    @property
    def nodes(self) -> Mapping[Identity, SchemaObject]:
        return self.graph.nodes

    def retained_edges(self) -> List[Edge]:
        edges = [
            Edge(source, target, data["edge_class"])
            for source, target, data in self.dag.edges(data=True)
        ]
        return sorted(edges, key=lambda edge: edge.sort_key)


class CycleBreaker:
    """Turns a possibly cyclic graph into a DAG by deferring referential edges."""

    def break_cycles(self, graph: Graph) -> AcyclicView:
        """Defer the fewest referential edges needed to linearize the graph.

        Args:
            graph: Graph produced by GraphBuilder

        Returns:
            AcyclicView with the deferred edges in removal order

        Raises:
            UnbreakableCycle: if a cycle is made of structural or ownership
                edges only
        """
        dag = nx.DiGraph(graph.digraph)
        components = [
            component for component in nx.strongly_connected_components(dag)
            if len(component) > 1
        ]
        components.sort(key=lambda component: min(node.sort_key for node in component))

        deferred: List[Edge] = []
        for component in components:
            deferred.extend(self._break_component(dag, component))

        if deferred:
            logger.warning(
                f"Deferred {len(deferred)} references to break {len(components)} dependency cycles"
            )
        return AcyclicView(graph=graph, dag=nx.freeze(dag), deferred=tuple(deferred))

    def _break_component(self, dag: nx.DiGraph, component: Set[Identity]) -> List[Edge]:
        component_graph = nx.DiGraph(dag.subgraph(component))
        edges = [
            Edge(source, target, data["edge_class"])
            for source, target, data in component_graph.edges(data=True)
        ]

        fixed = nx.DiGraph()
        fixed.add_nodes_from(component)
        fixed.add_edges_from(
            (edge.source, edge.target) for edge in edges if not edge.edge_class.deferrable
        )
        self._check_fixed_edges(fixed, edges)

        # The edge whose source sorts last goes first; this keeps the break
        # independent of the order objects were captured in.
        candidates = sorted(
            (edge for edge in edges if edge.edge_class is EdgeClass.REFERENTIAL),
            key=lambda edge: edge.sort_key,
            reverse=True,
        )
        removed = []
        for edge in candidates:
            if not nx.has_path(component_graph, edge.target, edge.source):
                continue
            component_graph.remove_edge(edge.source, edge.target)
            dag.remove_edge(edge.source, edge.target)
            removed.append(edge)
            logger.debug(f"Deferring {edge}")
        return removed

    @staticmethod
    def _check_fixed_edges(fixed: nx.DiGraph, edges: List[Edge]):
        if nx.is_directed_acyclic_graph(fixed):
            return
        trapped: Set[Identity] = set()
        for cycle in nx.strongly_connected_components(fixed):
            if len(cycle) > 1:
                trapped.update(cycle)
        closing = sorted(
            (edge for edge in edges
             if not edge.edge_class.deferrable
             and edge.source in trapped and edge.target in trapped),
            key=lambda edge: edge.sort_key,
        )
        raise UnbreakableCycle(sorted(trapped, key=lambda node: node.sort_key), closing)
