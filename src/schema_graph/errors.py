"""Errors raised while building and ordering the dependency graph."""
from typing import Any, Iterable, List, Mapping


class SchemaGraphError(Exception):
    """Base class for every error raised by schema_graph."""


class MalformedIdentity(SchemaGraphError):
    """An object or dependency reference cannot be normalized."""

    def __init__(self, raw: Any, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Malformed identity {raw!r}: {reason}")


class DuplicateIdentityConflict(SchemaGraphError):
    """The same identity was captured twice with different payloads."""

    def __init__(self, identity: Any, first_payload: Mapping, second_payload: Mapping):
        self.identity = identity
        self.first_payload = first_payload
        self.second_payload = second_payload
        super().__init__(
            f"{identity} was captured twice with different payloads; "
            f"the catalog snapshot is inconsistent"
        )


class UnbreakableCycle(SchemaGraphError):
    """A cycle survives after every deferrable edge has been removed.

    Attributes:
        identities: Every identity trapped in the cycle, in sort order
        edges: The non-deferrable edges that close the cycle
    """

    def __init__(self, identities: Iterable[Any], edges: Iterable[Any]):
        self.identities = list(identities)
        self.edges = list(edges)
        names = ", ".join(str(identity) for identity in self.identities)
        classes = ", ".join(self.edge_classes)
        super().__init__(f"Cannot linearize cycle between {names} (edge classes: {classes})")

    @property
    def edge_classes(self) -> List[str]:
        return sorted({edge.edge_class.value for edge in self.edges})


class InternalInconsistency(SchemaGraphError):
    """The emitter met a cycle in a graph that was certified acyclic."""

    def __init__(self, remaining: Iterable[Any]):
        self.remaining = list(remaining)
        super().__init__(
            f"{len(self.remaining)} objects could not be ordered after cycle breaking: "
            + ", ".join(str(identity) for identity in self.remaining)
        )


class IncompleteSnapshot(SchemaGraphError):
    """A dependency points into a catalog whose capture failed."""

    def __init__(self, kinds: Iterable[Any], source: Any = None, target: Any = None):
        self.kinds = sorted(kind.value for kind in kinds)
        self.source = source
        self.target = target
        message = f"Capture failed for {', '.join(self.kinds)}"
        if source is not None:
            message += f"; {source} depends on {target} which could not be captured"
        super().__init__(message)


class CaptureFailed(SchemaGraphError):
    """A per-kind catalog query failed; the whole capture run is aborted."""

    def __init__(self, kind: Any):
        self.kind = kind
        super().__init__(f"Could not load {kind.value} batch")
