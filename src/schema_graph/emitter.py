"""Linear creation order for the dependency graph."""
import heapq
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import networkx as nx

from .builder import Graph
from .cycles import AcyclicView
from .errors import InternalInconsistency
from .models import Edge, Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmissionPlan:
    """Objects to create, in order, and references to apply afterwards."""
    order: Tuple[Identity, ...]
    deferred: Tuple[Edge, ...]

    def position(self) -> Dict[Identity, int]:
        return {identity: index for index, identity in enumerate(self.order)}

    def as_dict(self) -> Dict[str, List[Any]]:
        return {
            "order": [str(identity) for identity in self.order],
            "deferred": [edge.as_dict() for edge in self.deferred],
        }


def creation_rank(identity: Identity) -> Tuple[int, str, str]:
    """Tie-break key for objects the dependencies do not order."""
    return (identity.kind.priority, str(identity.key), identity.kind.catalog)


def graph_dump(graph: nx.DiGraph) -> str:
    """Serialize a graph for diagnostics."""
    return json.dumps({
        "nodes": sorted(str(node) for node in graph.nodes),
        "edges": sorted(
            [str(source), str(target), data["edge_class"].value]
            for source, target, data in graph.edges(data=True)
        ),
    }, indent=2)


class TopologicalEmitter:
    """Orders a DAG with Kahn's algorithm."""

    def emit(self, view: AcyclicView) -> EmissionPlan:
        """Produce the creation order for an acyclic view.

        Args:
            view: Output of CycleBreaker

        Returns:
            EmissionPlan whose order puts every dependency before its dependents

        Raises:
            InternalInconsistency: if the view still contains a cycle
        """
        dag = view.dag
        waiting = {node: dag.out_degree(node) for node in dag.nodes}
        ready = [(creation_rank(node), node) for node, count in waiting.items() if count == 0]
        heapq.heapify(ready)

        order = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for dependent in dag.predecessors(node):
                waiting[dependent] -= 1
                if waiting[dependent] == 0:
                    heapq.heappush(ready, (creation_rank(dependent), dependent))

        if len(order) != len(waiting):
            emitted = set(order)
            remaining = sorted(
                (node for node in waiting if node not in emitted),
                key=lambda node: node.sort_key,
            )
            logger.error(f"Dependency graph still cyclic after cycle breaking:\n{graph_dump(dag)}")
            raise InternalInconsistency(remaining)

        logger.info(f"Emitted {len(order)} objects with {len(view.deferred)} deferred references")
        return EmissionPlan(order=tuple(order), deferred=tuple(view.deferred))


def verify_plan(graph: Graph, plan: EmissionPlan) -> List[Edge]:
    """Return every edge of ``graph`` the plan leaves unsatisfied.

    A retained edge is satisfied when its target is created before its source;
    a deferred edge is satisfied once both ends exist after the main pass.
    """
    position = plan.position()
    deferred = set(plan.deferred)
    unresolved = []
    for edge in graph.edges():
        source = position.get(edge.source)
        target = position.get(edge.target)
        if source is None or target is None:
            unresolved.append(edge)
        elif edge not in deferred and target > source:
            unresolved.append(edge)
    return unresolved
