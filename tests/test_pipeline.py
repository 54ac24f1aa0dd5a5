"""End-to-end planning scenarios."""
import itertools

import pytest

from schema_graph.emitter import verify_plan
from schema_graph.errors import UnbreakableCycle
from schema_graph.models import CatalogKind, Edge, EdgeClass
from schema_graph.pipeline import build_plan


@pytest.fixture
def shop_batches(make_object, batches_of):
    """A schema with a foreign-key/trigger cycle and mutually calling functions."""
    return batches_of(
        make_object("namespace", "shop"),
        make_object("type", "shop.status", depends_on=[("namespace", "shop")]),
        make_object("sequence", "shop.orders_id_seq", depends_on=[("namespace", "shop")]),
        make_object("table", "shop.customers", depends_on=[
            ("namespace", "shop"),
            ("function", "shop.touch()", "referential"),
        ]),
        make_object("table", "shop.orders", depends_on=[
            ("sequence", "shop.orders_id_seq"),
            ("type", "shop.status"),
            ("table", "shop.customers", "referential"),
        ]),
        make_object("function", "shop.touch()", depends_on=[("table", "shop.orders")]),
        make_object("function", "shop.even(integer)", depends_on=[("function", "shop.odd(integer)")]),
        make_object("function", "shop.odd(integer)", depends_on=[("function", "shop.even(integer)")]),
        make_object("view", "shop.open_orders", depends_on=[("table", "shop.orders")]),
        make_object("index", "shop.orders_status_idx", depends_on=[("table", "shop.orders")]),
        make_object("trigger", "shop.orders.touch_trg", depends_on=[
            ("table", "shop.orders"),
            ("function", "shop.touch()"),
        ]),
        make_object("view", "shop.outside", depends_on=[("view", "other.elsewhere")]),
    )


def test_scenario_mutual_views(make_object, batches_of, ident):
    """Views selecting from each other abort the run naming both."""
    batches = batches_of(
        make_object("view", "app.v1", depends_on=[("view", "app.v2")]),
        make_object("view", "app.v2", depends_on=[("view", "app.v1")]),
    )

    with pytest.raises(UnbreakableCycle) as exc_info:
        build_plan(batches)

    assert exc_info.value.identities == [ident("view", "app.v1"), ident("view", "app.v2")]


def test_scenario_identity_sequence(make_object, batches_of, ident):
    """An owned sequence is created before its table and never deferred."""
    batches = batches_of(
        make_object("table", "app.accounts", depends_on=[("sequence", "app.accounts_id_seq")]),
        make_object("sequence", "app.accounts_id_seq"),
    )

    result = build_plan(batches)

    assert result.plan.order == (ident("sequence", "app.accounts_id_seq"),
                                 ident("table", "app.accounts"))
    assert result.plan.deferred == ()
    assert result.graph.edges()[0].edge_class is EdgeClass.OWNERSHIP


def test_scenario_mutual_functions(make_object, batches_of, ident):
    """Mutually calling functions defer exactly one call."""
    batches = batches_of(
        make_object("function", "app.f1()", depends_on=[("function", "app.f2()")]),
        make_object("function", "app.f2()", depends_on=[("function", "app.f1()")]),
    )

    result = build_plan(batches)

    assert set(result.plan.order) == {ident("function", "app.f1()"), ident("function", "app.f2()")}
    assert len(result.plan.deferred) == 1
    assert verify_plan(result.graph, result.plan) == []


def test_scenario_serial_column(make_object, batches_of, ident):
    """A serial default and the sequence's OWNED BY link still put the sequence first."""
    batches = batches_of(
        make_object("table", "app.accounts", depends_on=[("sequence", "app.accounts_id_seq")]),
        make_object("sequence", "app.accounts_id_seq", depends_on=[("table", "app.accounts")]),
    )

    result = build_plan(batches)

    assert result.plan.order == (ident("sequence", "app.accounts_id_seq"),
                                 ident("table", "app.accounts"))
    assert result.plan.deferred == ()


def test_scenario_foreign_key_and_trigger(make_object, batches_of, ident):
    """The key target and its trigger's function are ordered around the key."""
    orders, users = ident("table", "public.orders"), ident("table", "public.users")
    audit = ident("function", "public.audit_orders()")
    trigger = ident("trigger", "public.users.audit_trg")
    batches = batches_of(
        make_object("table", "public.orders", depends_on=[("table", "public.users")]),
        make_object("table", "public.users"),
        make_object("function", "public.audit_orders()", depends_on=[("table", "public.orders")]),
        make_object("trigger", "public.users.audit_trg", depends_on=[
            ("table", "public.users"),
            ("function", "public.audit_orders()"),
        ]),
    )

    result = build_plan(batches)

    classes = {(edge.source, edge.target): edge.edge_class for edge in result.graph.edges()}
    assert classes == {
        (orders, users): EdgeClass.REFERENTIAL,
        (audit, orders): EdgeClass.REFERENTIAL,
        (trigger, users): EdgeClass.STRUCTURAL,
        (trigger, audit): EdgeClass.REFERENTIAL,
    }
    assert result.plan.order == (users, orders, audit, trigger)
    assert all(edge == Edge(trigger, audit, EdgeClass.REFERENTIAL) for edge in result.plan.deferred)


def test_trigger_binding_is_deferred_when_it_closes_a_cycle(make_object, batches_of, ident):
    """When the binding closes a cycle it is deferred and the key order holds."""
    users = ident("table", "public.users")
    audit = ident("function", "public.audit_orders()")
    trigger = ident("trigger", "public.users.audit_trg")
    batches = batches_of(
        make_object("table", "public.orders", depends_on=[("table", "public.users")]),
        make_object("table", "public.users", depends_on=[("trigger", "public.users.audit_trg",
                                                          "referential")]),
        make_object("function", "public.audit_orders()", depends_on=[("table", "public.orders")]),
        make_object("trigger", "public.users.audit_trg", depends_on=[
            ("table", "public.users"),
            ("function", "public.audit_orders()"),
        ]),
    )

    result = build_plan(batches)
    position = result.plan.position()

    assert Edge(trigger, audit, EdgeClass.REFERENTIAL) in result.plan.deferred
    assert position[users] < position[ident("table", "public.orders")]
    assert verify_plan(result.graph, result.plan) == []


def test_full_schema_plan_is_valid(shop_batches, ident):
    """A realistic schema yields a complete, verifiable plan."""
    result = build_plan(shop_batches)
    position = result.plan.position()

    assert len(result.plan.order) == len(result.graph)
    assert position[ident("sequence", "shop.orders_id_seq")] < position[ident("table", "shop.orders")]
    assert position[ident("table", "shop.customers")] < position[ident("table", "shop.orders")]
    assert position[ident("table", "shop.orders")] < position[ident("view", "shop.open_orders")]
    assert len(result.plan.deferred) == 2
    assert all(edge.edge_class is EdgeClass.REFERENTIAL for edge in result.plan.deferred)
    assert [str(d.target) for d in result.graph.diagnostics] == ["view:other.elsewhere"]
    assert verify_plan(result.graph, result.plan) == []


def test_plan_is_deterministic(shop_batches):
    """Two runs on the same input give identical plans."""
    first = build_plan(shop_batches).plan
    second = build_plan(shop_batches).plan

    assert first.as_dict() == second.as_dict()


def test_arrival_order_does_not_matter(shop_batches):
    """Permuting batches and their contents never changes the plan."""
    expected = build_plan(shop_batches).plan
    kinds = list(shop_batches)

    for permutation in itertools.islice(itertools.permutations(kinds), 24):
        batches = {kind: list(reversed(shop_batches[kind])) for kind in permutation}
        assert build_plan(batches).plan == expected


def test_routine_bodies_add_references(make_object, batches_of, ident):
    """SQL function bodies contribute referential edges."""
    batches = batches_of(
        make_object("table", "app.orders"),
        make_object("function", "app.order_count()", payload={
            "language": "sql",
            "source": "SELECT count(*) FROM app.orders",
        }),
    )

    result = build_plan(batches)

    assert Edge(ident("function", "app.order_count()"), ident("table", "app.orders"),
                EdgeClass.REFERENTIAL) in result.graph.edges()
    assert result.plan.order == (ident("table", "app.orders"), ident("function", "app.order_count()"))


def test_batches_may_be_keyed_by_name(make_object):
    """Batch keys are only labels."""
    batches = {
        "tables": [make_object("table", "app.t")],
        "sequences": [make_object("sequence", "app.s")],
    }

    result = build_plan(batches)

    assert [identity.kind for identity in result.plan.order] == [CatalogKind.SEQUENCE,
                                                                 CatalogKind.TABLE]
