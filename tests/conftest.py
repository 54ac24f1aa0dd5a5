"""Shared fixtures for schema_graph tests."""
import pytest

from schema_graph.models import Dependency, EdgeClass, Identity, SchemaObject


@pytest.fixture
def ident():
    """Build a normalized identity from a kind and a qualified name."""
    return Identity.from_name


@pytest.fixture
def make_object():
    """Factory for captured objects.

    ``depends_on`` entries are ``(kind, name)`` or ``(kind, name, edge_class)``.
    """
    def factory(kind, name, depends_on=(), payload=None, oid=None):
        dependencies = []
        for entry in depends_on:
            if isinstance(entry, Dependency):
                dependencies.append(entry)
                continue
            dep_kind, dep_name, *edge_class = entry
            dependencies.append(Dependency(
                Identity.from_name(dep_kind, dep_name),
                EdgeClass(edge_class[0]) if edge_class else None,
            ))
        return SchemaObject.create(
            Identity.from_name(kind, name),
            payload if payload is not None else {"name": name},
            dependencies,
            oid,
        )
    return factory


@pytest.fixture
def batches_of():
    """Group objects into per-kind batches."""
    def group(*objects):
        batches = {}
        for obj in objects:
            batches.setdefault(obj.kind, []).append(obj)
        return batches
    return group
