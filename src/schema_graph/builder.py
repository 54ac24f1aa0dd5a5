"""Graph building module."""
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import networkx as nx

from .errors import DuplicateIdentityConflict, IncompleteSnapshot, MalformedIdentity
from .models import (CatalogKind, Dependency, Edge, EdgeClass, Identity, RawIdentity,
                     SchemaObject, normalize, quote_part, split_identifier)

logger = logging.getLogger(__name__)

_REFERENTIAL_TARGETS_OF_ROUTINES = frozenset({
    CatalogKind.TABLE,
    CatalogKind.VIEW,
    CatalogKind.SEQUENCE,
    CatalogKind.INDEX,
    CatalogKind.FUNCTION_OR_PROCEDURE,
    CatalogKind.CONSTRAINT,
    CatalogKind.TRIGGER,
    CatalogKind.POLICY,
})


def classify_edge(source: CatalogKind, target: CatalogKind) -> EdgeClass:
    """Default class of a dependency the reader did not classify."""
    if {source, target} == {CatalogKind.TABLE, CatalogKind.SEQUENCE}:
        return EdgeClass.OWNERSHIP
    if source is CatalogKind.TABLE and target is CatalogKind.TABLE:
        # Foreign key
        return EdgeClass.REFERENTIAL
    if source is CatalogKind.FUNCTION_OR_PROCEDURE and target in _REFERENTIAL_TARGETS_OF_ROUTINES:
        return EdgeClass.REFERENTIAL
    if source in (CatalogKind.TRIGGER, CatalogKind.POLICY) \
            and target is CatalogKind.FUNCTION_OR_PROCEDURE:
        return EdgeClass.REFERENTIAL
    return EdgeClass.STRUCTURAL


def is_foreign_key(payload: Mapping[str, Any]) -> bool:
    """True for a constraint payload whose ``constraint_type`` is a foreign key.

    The type is either a plain string or a mapping tagged with ``type``.
    """
    constraint_type = payload.get("constraint_type")
    if isinstance(constraint_type, Mapping):
        constraint_type = constraint_type.get("type")
    if not isinstance(constraint_type, str):
        return False
    return constraint_type.replace("_", "").replace(" ", "").lower() in ("foreignkey", "f")


def _owner_table(obj: SchemaObject) -> Identity:
    owner = obj.payload.get("owner_table_name")
    if isinstance(owner, Mapping):
        return normalize(RawIdentity(CatalogKind.TABLE, schema_name=owner.get("schema_name"),
                                     local_name=owner.get("local_name")))
    if isinstance(owner, str):
        return Identity.from_name(CatalogKind.TABLE, owner)
    # Constraint keys are ``schema.table.constraint``
    parts = split_identifier(str(obj.identity.key))
    return Identity(CatalogKind.TABLE, ".".join(quote_part(part) for part in parts[:-1]))


def default_edge_class(obj: SchemaObject, target: Identity) -> EdgeClass:
    """Default class of an unclassified dependency of ``obj``.

    A foreign-key constraint refers to the key's target table; the table
    carrying the constraint stays a structural dependency.
    """
    if obj.kind is CatalogKind.CONSTRAINT and target.kind is CatalogKind.TABLE \
            and is_foreign_key(obj.payload) and target != _owner_table(obj):
        return EdgeClass.REFERENTIAL
    return classify_edge(obj.kind, target.kind)


def orient_edge(source: Identity, target: Identity,
                edge_class: EdgeClass) -> Tuple[Identity, Identity, EdgeClass]:
    """Point every ownership relation from the owner to its sequence.

    A sequence reporting its owning table (``OWNED BY``) becomes an
    ownership edge from that table, so the sequence is created first.
    """
    if source.kind is CatalogKind.SEQUENCE and target.kind is CatalogKind.TABLE \
            and edge_class is EdgeClass.OWNERSHIP:
        return target, source, EdgeClass.OWNERSHIP
    return source, target, edge_class


@dataclass(frozen=True)
class Diagnostic:
    """A dependency that was dropped instead of becoming an edge."""
    source: Identity
    target: Identity
    reason: str

    def __str__(self) -> str:
        return f"{self.source} -> {self.target}: {self.reason}"


class Graph:
    """Immutable dependency graph of one catalog snapshot.

    Edges point from the dependent object to the object it needs, and carry
    their ``edge_class`` as an attribute.
    """

    def __init__(self, nodes: Mapping[Identity, SchemaObject], digraph: nx.DiGraph,
                 diagnostics: Iterable[Diagnostic] = ()):
        self._nodes = MappingProxyType(dict(nodes))
        self._digraph = nx.freeze(digraph)
        self.diagnostics = tuple(diagnostics)

    @property
    def nodes(self) -> Mapping[Identity, SchemaObject]:
        return self._nodes

    @property
    def digraph(self) -> nx.DiGraph:
        """Frozen networkx view of the graph."""
        return self._digraph

    def __contains__(self, identity: Identity) -> bool:
        return identity in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def edges(self) -> List[Edge]:
        """All edges in stable order."""
        edges = [
            Edge(source, target, data["edge_class"])
            for source, target, data in self._digraph.edges(data=True)
        ]
        return sorted(edges, key=lambda edge: edge.sort_key)

    def edges_from(self, identity: Identity) -> Set[Edge]:
        return {
            Edge(identity, target, data["edge_class"])
            for _, target, data in self._digraph.out_edges(identity, data=True)
        }

    @property
    def adjacency(self) -> Dict[Identity, Set[Edge]]:
        return {identity: self.edges_from(identity) for identity in self._nodes}

    def get_object_details(self, identity: Identity) -> Optional[Dict[str, Any]]:
        """Get details of a specific node.

        Args:
            identity: Identity of the node to get details for

        Returns:
            Dictionary with node details, or None for an unknown identity
        """
        if identity not in self._nodes:
            return None
        return {
            'id': str(identity),
            'kind': identity.kind.value,
            'payload': dict(self._nodes[identity].payload),
            'incoming': sorted(self._digraph.predecessors(identity), key=lambda i: i.sort_key),
            'outgoing': sorted(self._digraph.successors(identity), key=lambda i: i.sort_key),
        }


class GraphBuilder:
    """Merges per-kind catalog batches into a single graph."""

    def __init__(self):
        self._reset()

    def _reset(self, failed_kinds: Iterable[CatalogKind] = ()):
        self._nodes: Dict[Identity, SchemaObject] = {}
        self._oids: Dict[Tuple[str, int], Identity] = {}
        self._dependencies: Dict[Identity, Set[Dependency]] = {}
        self._diagnostics: List[Diagnostic] = []
        self._failed: Set[CatalogKind] = set(failed_kinds)

    def build(self, batches: Mapping[Any, Iterable[SchemaObject]],
              failed_kinds: Iterable[Any] = ()) -> Graph:
        """Build a graph from every batch of one snapshot.

        Args:
            batches: Objects per catalog kind, in any order
            failed_kinds: Kinds whose capture failed; references into them
                are fatal instead of being dropped

        Returns:
            Graph holding every object and every resolvable dependency

        Raises:
            MalformedIdentity: if an object is only known by oid
            DuplicateIdentityConflict: if an identity arrives with two payloads
            IncompleteSnapshot: if a reference points into a failed capture
        """
        self._reset(CatalogKind.parse(kind) for kind in failed_kinds)

        for objects in batches.values():
            for obj in objects:
                self._add_object(obj)

        graph = nx.DiGraph()
        graph.add_nodes_from(self._nodes)
        for source in sorted(self._dependencies, key=lambda i: i.sort_key):
            dependencies = sorted(
                self._dependencies[source],
                key=lambda d: (d.target.sort_key, d.edge_class.value if d.edge_class else ""),
            )
            for dependency in dependencies:
                target = self._resolve(source, dependency.target)
                if target is None or target == source:
                    continue
                if target not in graph:
                    graph.add_node(target)
                edge_class = dependency.edge_class or default_edge_class(self._nodes[source], target)
                self._add_edge(graph, *orient_edge(source, target, edge_class))

        logger.info(
            f"Built dependency graph with {graph.number_of_nodes()} nodes, "
            f"{graph.number_of_edges()} edges, {len(self._diagnostics)} dropped references"
        )
        return Graph(self._nodes, graph, self._diagnostics)

    def _add_object(self, obj: SchemaObject):
        identity = obj.identity
        if identity.is_numeric:
            raise MalformedIdentity(identity, "captured objects need a schema-qualified name")

        existing = self._nodes.get(identity)
        if existing is None:
            self._nodes[identity] = obj
        elif existing.kind is not obj.kind or dict(existing.payload) != dict(obj.payload):
            raise DuplicateIdentityConflict(identity, existing.payload, obj.payload)

        if obj.oid is not None:
            oid_key = (identity.kind.catalog, obj.oid)
            known = self._oids.setdefault(oid_key, identity)
            if known != identity:
                raise DuplicateIdentityConflict(
                    identity, {"oid": obj.oid, "name": known.key}, {"oid": obj.oid, "name": identity.key}
                )

        # Later arrivals only contribute edges.
        self._dependencies.setdefault(identity, set()).update(obj.dependencies)

    def _resolve(self, source: Identity, target: Identity) -> Optional[Identity]:
        if target.is_numeric:
            resolved = self._oids.get((target.kind.catalog, target.key))
            if resolved is not None:
                return self._nodes[resolved].identity
        elif target in self._nodes:
            return self._nodes[target].identity
        elif target.kind is CatalogKind.NAMESPACE:
            logger.debug(f"Adding synthetic schema node {target} for {source}")
            self._nodes[target] = SchemaObject.create(target, {"synthetic": True})
            return target

        failed = [kind for kind in self._failed if kind.catalog == target.kind.catalog]
        if failed:
            raise IncompleteSnapshot(failed, source, target)

        diagnostic = Diagnostic(source, target, "referenced object is not in the captured schemas")
        logger.debug(f"Dropping reference {diagnostic}")
        self._diagnostics.append(diagnostic)
        return None

    @staticmethod
    def _add_edge(graph: nx.DiGraph, source: Identity, target: Identity, edge_class: EdgeClass):
        if graph.has_edge(source, target):
            current = graph[source][target]["edge_class"]
            if current.binding >= edge_class.binding:
                return
            logger.debug(f"{source} -> {target} declared as {current.value} and {edge_class.value}")
        graph.add_edge(source, target, edge_class=edge_class)
