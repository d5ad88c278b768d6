import uuid

import pytest
from sqlmodel import select

from app.core.errors import (
    InsufficientStockError,
    InvalidStatusError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import OrderLineIn
from app.services.identifiers import is_valid_id
from app.services.order_service import OrderService, is_allowed_transition, next_status


@pytest.fixture
def service(feed):
    return OrderService(OrderRepository(), ProductRepository(), feed=feed)


def line(product, quantity):
    return OrderLineIn(product_id=product.id, quantity=quantity)


def _stock(session, product_id):
    session.expire_all()
    return session.get(Product, product_id).stock


# -------- create_order --------


def test_create_order_computes_totals_and_deducts_stock(session, service, customer, make_product):
    paracetamol = make_product(price=45.0, gst_rate=12.0, stock=100)

    order = service.create_order(session, customer, [line(paracetamol, 10)])

    assert order.status == "pending"
    assert is_valid_id(order.order_id)
    assert order.subtotal == 450.0
    assert order.tax_amount == 54.0
    assert order.total_amount == 504.0
    assert order.customer_uid == customer.id
    assert order.shipping_address == customer.address
    assert order.next_status == "processing"
    assert len(order.items) == 1
    assert order.items[0].name == "Paracetamol 650mg"
    assert order.items[0].line_total == 450.0
    assert _stock(session, paracetamol.id) == 90


def test_wholesale_price_preferred_over_mrp(session, service, customer, make_product):
    product = make_product(price=50.0, wholesale_price=40.0, gst_rate=5.0)

    order = service.create_order(session, customer, [line(product, 5)])

    assert order.items[0].unit_price == 40.0
    assert order.items[0].mrp == 50.0
    assert order.subtotal == 200.0
    assert order.tax_amount == 10.0


def test_mixed_rates_taxed_per_line(session, service, customer, make_product):
    a = make_product(name="Amoxicillin 500", price=100.0, gst_rate=12.0)
    b = make_product(name="Cotton Roll", price=20.0, gst_rate=5.0)

    order = service.create_order(session, customer, [line(a, 2), line(b, 10)])

    assert order.subtotal == 400.0
    assert order.tax_amount == 24.0 + 10.0
    assert order.total_amount == 434.0


def test_duplicate_lines_are_merged(session, service, customer, make_product):
    product = make_product(stock=10)

    order = service.create_order(session, customer, [line(product, 4), line(product, 3)])

    assert len(order.items) == 1
    assert order.items[0].quantity == 7
    assert _stock(session, product.id) == 3


def test_empty_order_rejected(session, service, customer):
    with pytest.raises(ValidationError):
        service.create_order(session, customer, [])


@pytest.mark.parametrize("bad", [0, -2])
def test_non_positive_quantity_rejected(session, service, customer, make_product, bad):
    product = make_product()
    requested = OrderLineIn.model_construct(product_id=product.id, quantity=bad)

    with pytest.raises(ValidationError):
        service.create_order(session, customer, [requested])
    assert session.exec(select(Order)).all() == []


def test_unknown_product_rejected(session, service, customer):
    with pytest.raises(NotFoundError):
        service.create_order(
            session, customer, [OrderLineIn(product_id=uuid.uuid4(), quantity=1)]
        )


def test_inactive_product_rejected(session, service, customer, make_product):
    product = make_product(status="inactive")

    with pytest.raises(ValidationError):
        service.create_order(session, customer, [line(product, 1)])


def test_insufficient_stock_writes_nothing(session, service, customer, make_product):
    plenty = make_product(name="Plenty", stock=50)
    scarce = make_product(name="Scarce", stock=2)

    with pytest.raises(InsufficientStockError) as exc:
        service.create_order(session, customer, [line(plenty, 5), line(scarce, 3)])

    err = exc.value
    assert err.status_code == 409
    assert err.product_name == "Scarce"
    assert err.available == 2
    assert err.requested == 3
    assert session.exec(select(Order)).all() == []
    assert _stock(session, plenty.id) == 50
    assert _stock(session, scarce.id) == 2


def test_exact_stock_can_be_ordered(session, service, customer, make_product):
    product = make_product(stock=5)

    service.create_order(session, customer, [line(product, 5)])

    assert _stock(session, product.id) == 0


def test_lost_stock_race_rolls_back_order(session, service, customer, make_product, monkeypatch):
    product = make_product(stock=10)
    # Another checkout drained the stock between our read and our write
    monkeypatch.setattr(service.order_repo, "decrement_stock", lambda *args: False)

    with pytest.raises(InsufficientStockError):
        service.create_order(session, customer, [line(product, 4)])

    assert session.exec(select(Order)).all() == []
    assert session.exec(select(OrderItem)).all() == []
    assert _stock(session, product.id) == 10


def test_only_customers_can_order(session, service, staff, admin, make_product):
    product = make_product()

    for actor in (staff, admin):
        with pytest.raises(UnauthorizedError):
            service.create_order(session, actor, [line(product, 1)])
    assert _stock(session, product.id) == 100


def test_create_publishes_orders_and_products(session, service, customer, make_product, feed):
    seen = []
    feed.subscribe("orders", lambda: "orders", seen.append)
    feed.subscribe("products", lambda: "products", seen.append)
    seen.clear()

    service.create_order(session, customer, [line(make_product(), 1)])

    assert seen == ["orders", "products"]


# -------- reads --------


def test_customer_sees_only_own_orders(session, service, make_user, make_product):
    alice = make_user("customer")
    bob = make_user("customer")
    product = make_product()
    mine = service.create_order(session, alice, [line(product, 1)])
    service.create_order(session, bob, [line(product, 2)])

    assert [o.id for o in service.list_customer_orders(session, alice.id)] == [mine.id]
    assert service.get_customer_order(session, alice.id, mine.id).order_id == mine.order_id
    assert service.get_customer_order(session, bob.id, mine.id) is None


def test_list_all_filters_by_status(session, service, customer, make_product):
    product = make_product()
    first = service.create_order(session, customer, [line(product, 1)])
    service.create_order(session, customer, [line(product, 1)])
    service.update_status(session, first.id, "processing", "staff")

    assert len(service.list_all_orders(session)) == 2
    assert [o.id for o in service.list_all_orders(session, status="processing")] == [first.id]
    assert service.pending_count(session) == 1

    with pytest.raises(InvalidStatusError):
        service.list_all_orders(session, status="lost")


def test_lookup_by_business_id(session, service, customer, make_product):
    order = service.create_order(session, customer, [line(make_product(), 1)])

    found = service.get_by_order_id(session, order.order_id)

    assert found.id == order.id
    assert service.get_by_order_id(session, "FPW-1999-00000") is None


# -------- status --------


@pytest.mark.parametrize(
    "current, new, allowed",
    [
        ("pending", "processing", True),
        ("pending", "shipped", True),
        ("pending", "delivered", True),
        ("processing", "shipped", True),
        ("shipped", "delivered", True),
        ("pending", "cancelled", True),
        ("processing", "cancelled", True),
        ("shipped", "cancelled", False),
        ("shipped", "processing", False),
        ("processing", "pending", False),
        ("delivered", "shipped", False),
        ("delivered", "cancelled", False),
        ("cancelled", "pending", False),
    ],
)
def test_transition_rules(current, new, allowed):
    assert is_allowed_transition(current, new) is allowed


def test_next_status():
    assert next_status("pending") == "processing"
    assert next_status("shipped") == "delivered"
    assert next_status("delivered") is None
    assert next_status("cancelled") is None


def test_update_status_skips_ahead(session, service, customer, make_product):
    order = service.create_order(session, customer, [line(make_product(), 1)])

    updated = service.update_status(session, order.id, "shipped", "staff")

    assert updated.status == "shipped"
    assert updated.updated_by_role == "staff"


def test_update_status_rejects_unknown_value(session, service, customer, make_product):
    order = service.create_order(session, customer, [line(make_product(), 1)])

    with pytest.raises(InvalidStatusError):
        service.update_status(session, order.id, "lost", "admin")


def test_update_status_rejects_backward_move(session, service, customer, make_product):
    order = service.create_order(session, customer, [line(make_product(), 1)])
    service.update_status(session, order.id, "delivered", "admin")

    with pytest.raises(InvalidStatusError):
        service.update_status(session, order.id, "pending", "admin")


def test_transitions_unenforced_when_disabled(session, service, customer, make_product, monkeypatch):
    monkeypatch.setattr(service.settings, "ENFORCE_STATUS_TRANSITIONS", False)
    order = service.create_order(session, customer, [line(make_product(), 1)])
    service.update_status(session, order.id, "delivered", "admin")

    reverted = service.update_status(session, order.id, "pending", "admin")

    assert reverted.status == "pending"


def test_same_status_is_noop(session, service, customer, make_product, feed):
    order = service.create_order(session, customer, [line(make_product(), 1)])
    seen = []
    feed.subscribe("orders", lambda: None, seen.append)
    seen.clear()

    result = service.update_status(session, order.id, "pending", "staff")

    assert result.status == "pending"
    assert seen == []


def test_customer_cannot_update_status(session, service, customer, make_product):
    order = service.create_order(session, customer, [line(make_product(), 1)])

    with pytest.raises(UnauthorizedError):
        service.update_status(session, order.id, "processing", "customer")


def test_update_status_missing_order(session, service):
    with pytest.raises(NotFoundError):
        service.update_status(session, uuid.uuid4(), "processing", "staff")


def test_stored_totals_survive_price_change(session, service, customer, make_product):
    product = make_product(price=45.0, gst_rate=12.0)
    order = service.create_order(session, customer, [line(product, 10)])
    product.price = 99.0
    session.add(product)
    session.commit()

    again = service.get_with_items(session, service.get_by_id(session, order.id))

    assert again.total_amount == 504.0
    assert again.items[0].unit_price == 45.0


# -------- statistics --------


def test_statistics_counts_today(session, service, customer, make_product):
    product = make_product(price=100.0, gst_rate=0.0)
    a = service.create_order(session, customer, [line(product, 1)])
    b = service.create_order(session, customer, [line(product, 2)])
    service.create_order(session, customer, [line(product, 3)])
    service.update_status(session, a.id, "processing", "staff")
    service.update_status(session, b.id, "cancelled", "staff")

    stats = service.statistics(session)

    assert stats.total == 3
    assert stats.pending == 1
    assert stats.processing == 1
    assert stats.cancelled == 1
    assert stats.today_count == 3
    assert stats.today_revenue == 400.0
    assert stats.today_processed == 1


# -------- live snapshots --------


def test_subscribe_all_pushes_snapshot_on_change(session, session_factory, service, customer, make_product):
    snapshots = []
    unsubscribe = service.subscribe_all(session_factory, snapshots.append)
    assert snapshots == [[]]

    order = service.create_order(session, customer, [line(make_product(), 1)])

    assert [o.order_id for o in snapshots[-1]] == [order.order_id]
    unsubscribe()
    service.update_status(session, order.id, "processing", "staff")
    assert len(snapshots) == 2


def test_subscribe_customer_scoped(session, session_factory, service, make_user, make_product):
    alice = make_user("customer")
    bob = make_user("customer")
    product = make_product()
    snapshots = []
    unsubscribe = service.subscribe_customer(session_factory, alice.id, snapshots.append)

    service.create_order(session, bob, [line(product, 1)])
    service.create_order(session, alice, [line(product, 1)])

    assert [len(s) for s in snapshots] == [0, 0, 1]
    assert snapshots[-1][0].customer_uid == alice.id
    unsubscribe()


def test_discount_and_extra_fee_reach_totals(session, service, customer, make_product):
    product = make_product(price=100.0, gst_rate=5.0)

    order = service.create_order(session, customer, [line(product, 2)], discount=20.0, extra_fee=15.0)

    assert order.discount == 20.0
    assert order.extra_fee == 15.0
    assert order.total_amount == 200.0 + 10.0 + 15.0 - 20.0


@pytest.mark.parametrize("discount, extra_fee", [(-1.0, 0.0), (0.0, -5.0)])
def test_negative_discount_or_fee_rejected(session, service, customer, make_product, discount, extra_fee):
    product = make_product(stock=10)

    with pytest.raises(ValidationError):
        service.create_order(
            session, customer, [line(product, 1)], discount=discount, extra_fee=extra_fee
        )
    assert session.exec(select(Order)).all() == []
    assert _stock(session, product.id) == 10
