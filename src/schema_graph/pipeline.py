"""End-to-end planning: capture, build, break cycles, emit."""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .builder import Graph, GraphBuilder
from .capture import CatalogReader, capture_batches
from .config import PlannerConfig
from .connection import DatabaseConnection, SnapshotCatalogReader
from .cycles import AcyclicView, CycleBreaker
from .emitter import EmissionPlan, TopologicalEmitter
from .models import SchemaObject
from .routines import augment_routine_dependencies

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    """Everything one planning run produced."""
    graph: Graph
    view: AcyclicView
    plan: EmissionPlan


def build_plan(batches: Mapping[Any, Iterable[SchemaObject]],
               failed_kinds: Iterable[Any] = ()) -> PlanResult:
    """Turn captured batches into an emission plan.

    Any error aborts the run; no partial plan is returned.
    """
    batches = augment_routine_dependencies(batches)
    graph = GraphBuilder().build(batches, failed_kinds)
    view = CycleBreaker().break_cycles(graph)
    plan = TopologicalEmitter().emit(view)
    logger.info(
        f"Planned {len(plan.order)} objects, {len(plan.deferred)} deferred references, "
        f"{len(graph.diagnostics)} out-of-scope references dropped"
    )
    return PlanResult(graph=graph, view=view, plan=plan)


def plan_from_reader(reader: CatalogReader, schemas: Sequence[str],
                     max_workers: int = 4) -> PlanResult:
    """Capture every batch concurrently, then plan."""
    batches = capture_batches(reader, schemas, max_workers=max_workers)
    return build_plan(batches)


def plan_from_config(config: PlannerConfig, queries: Mapping[Any, str]) -> PlanResult:
    """Plan a live database described by ``config`` using the given catalog queries."""
    database = DatabaseConnection(config.connection_params())
    with SnapshotCatalogReader(database, queries) as reader:
        return plan_from_reader(reader, config.schemas, max_workers=config.max_workers)
