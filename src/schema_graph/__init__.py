"""schema-graph - dependency ordering for PostgreSQL catalog objects."""

from .builder import Diagnostic, Graph, GraphBuilder
from .capture import CatalogReader, capture_batches
from .cycles import AcyclicView, CycleBreaker
from .emitter import EmissionPlan, TopologicalEmitter, verify_plan
from .errors import (
    CaptureFailed,
    DuplicateIdentityConflict,
    IncompleteSnapshot,
    InternalInconsistency,
    MalformedIdentity,
    SchemaGraphError,
    UnbreakableCycle,
)
from .models import (
    CatalogKind,
    Dependency,
    Edge,
    EdgeClass,
    Identity,
    RawIdentity,
    SchemaObject,
    normalize,
)
from .pipeline import PlanResult, build_plan, plan_from_config, plan_from_reader

__all__ = [
    "AcyclicView",
    "CaptureFailed",
    "CatalogKind",
    "CatalogReader",
    "CycleBreaker",
    "Dependency",
    "Diagnostic",
    "DuplicateIdentityConflict",
    "Edge",
    "EdgeClass",
    "EmissionPlan",
    "Graph",
    "GraphBuilder",
    "Identity",
    "IncompleteSnapshot",
    "InternalInconsistency",
    "MalformedIdentity",
    "PlanResult",
    "RawIdentity",
    "SchemaGraphError",
    "SchemaObject",
    "TopologicalEmitter",
    "UnbreakableCycle",
    "build_plan",
    "capture_batches",
    "normalize",
    "plan_from_config",
    "plan_from_reader",
    "verify_plan",
]
