"""Tests for identity normalization and object models."""
import pytest

from schema_graph.errors import MalformedIdentity
from schema_graph.models import (
    CatalogKind,
    Dependency,
    EdgeClass,
    Identity,
    RawIdentity,
    SchemaObject,
    normalize,
)


def test_normalize_folds_unquoted_names():
    """Unquoted parts are folded to lower case."""
    identity = normalize(RawIdentity("table", schema_name="Public", local_name="Orders"))

    assert identity.kind is CatalogKind.TABLE
    assert identity.key == "public.orders"


def test_normalize_keeps_quoted_case():
    """Quoted parts keep their case and stay quoted in the key."""
    identity = normalize(RawIdentity("table", schema_name='"Sales"', local_name='"Order Items"'))

    assert identity.key == '"Sales"."Order Items"'


def test_needlessly_quoted_name_matches_plain_name(ident):
    """A quoted lower-case name is the same object as the plain name."""
    quoted = normalize(RawIdentity("table", schema_name='"public"', local_name='"orders"'))

    assert quoted == ident("table", "PUBLIC.ORDERS")
    assert quoted.key == "public.orders"


def test_normalize_routine_signature():
    """Routine argument lists are kept with whitespace collapsed."""
    identity = normalize(RawIdentity(
        "function", schema_name="public", local_name="Calc( integer ,  TEXT )"
    ))

    assert identity.kind is CatalogKind.FUNCTION_OR_PROCEDURE
    assert identity.key == "public.calc(integer, text)"


def test_empty_local_name_is_namespace_dependency():
    """Only a schema name means "the schema must exist"."""
    identity = normalize(RawIdentity("table", schema_name="App"))

    assert identity.kind is CatalogKind.NAMESPACE
    assert identity.key == "app"


def test_oid_only_identity_is_numeric():
    """An identity with only an oid keeps the oid as key."""
    identity = normalize(RawIdentity("pg_class", oid=16384))

    assert identity.is_numeric
    assert identity.key == 16384
    assert identity.kind.catalog == "pg_class"


@pytest.mark.parametrize("raw", [
    RawIdentity("widget", schema_name="public", local_name="x"),
    RawIdentity(None, schema_name="public", local_name="x"),
    RawIdentity("table"),
    RawIdentity("table", schema_name="", local_name="", oid=None),
    RawIdentity("table", local_name="public..x"),
    RawIdentity("table", local_name='"unterminated'),
    RawIdentity("table", oid="not-a-number"),
])
def test_malformed_identities(raw):
    """Unknown kinds, empty keys and broken names are rejected."""
    with pytest.raises(MalformedIdentity):
        normalize(raw)


def test_relations_share_one_identity_space(ident):
    """Tables, views and sequences live in pg_class and compare by name."""
    assert ident("table", "public.a") == ident("view", "public.a")
    assert hash(ident("table", "public.a")) == hash(ident("sequence", "public.a"))
    assert ident("table", "public.a") != ident("type", "public.a")


@pytest.mark.parametrize("name,kind", [
    ("pg_proc", CatalogKind.FUNCTION_OR_PROCEDURE),
    ("procedure", CatalogKind.FUNCTION_OR_PROCEDURE),
    ("schema", CatalogKind.NAMESPACE),
    ("materialized_view", CatalogKind.VIEW),
    ("PG_TYPE", CatalogKind.TYPE),
    ("policy", CatalogKind.POLICY),
])
def test_kind_aliases(name, kind):
    """Aliases and catalog names resolve to kinds."""
    assert CatalogKind.parse(name) is kind


def test_schema_object_drops_self_references_and_duplicates(ident):
    """Dependencies are deduplicated and self references dropped."""
    table = ident("table", "public.a")
    other = ident("table", "public.b")

    obj = SchemaObject.create(table, {}, [table, other, other])

    assert obj.dependencies == frozenset({Dependency(other)})


def test_from_record_reads_nested_names():
    """Records use the nested name layout of the catalog queries."""
    record = {
        "identity": {"catalog": "pg_class", "oid": 42,
                     "name": {"schema_name": "app", "local_name": "orders_view"}},
        "kind": "view",
        "payload": {"query": "SELECT 1"},
        "dependencies": [
            {"catalog_kind": "table", "schema_name": "app", "local_name": "orders"},
            {"catalog": "pg_proc", "oid": 7, "edge_class": "referential"},
            {"catalog_kind": "namespace", "schema_name": "app"},
        ],
    }

    obj = SchemaObject.from_record(record)

    assert obj.kind is CatalogKind.VIEW
    assert obj.identity.key == "app.orders_view"
    assert obj.oid == 42
    assert obj.payload == {"query": "SELECT 1"}
    assert Dependency(Identity.from_name("table", "app.orders")) in obj.dependencies
    assert Dependency(Identity(CatalogKind.FUNCTION_OR_PROCEDURE, 7),
                      EdgeClass.REFERENTIAL) in obj.dependencies
    assert Dependency(Identity(CatalogKind.NAMESPACE, "app")) in obj.dependencies


def test_from_record_rejects_unknown_edge_class():
    """An unknown edge class is a malformed reference."""
    record = {
        "identity": {"catalog_kind": "table", "schema_name": "app", "local_name": "a"},
        "dependencies": [{"catalog_kind": "table", "local_name": "app.b", "edge_class": "weak"}],
    }

    with pytest.raises(MalformedIdentity):
        SchemaObject.from_record(record)


def test_from_record_rejects_kind_mismatch():
    """The record kind must belong to the identity's catalog."""
    record = {
        "identity": {"catalog_kind": "table", "schema_name": "app", "local_name": "a"},
        "kind": "function",
    }

    with pytest.raises(MalformedIdentity):
        SchemaObject.from_record(record)


def test_edge_class_properties():
    """Only referential edges can be deferred."""
    assert EdgeClass.REFERENTIAL.deferrable
    assert not EdgeClass.STRUCTURAL.deferrable
    assert not EdgeClass.OWNERSHIP.deferrable
    assert EdgeClass.OWNERSHIP.binding > EdgeClass.STRUCTURAL.binding > EdgeClass.REFERENTIAL.binding
