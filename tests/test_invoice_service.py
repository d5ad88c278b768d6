import uuid

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.core.errors import (
    AlreadyExistsError,
    InvalidStatusError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.models.invoice import Invoice, InvoiceItem
from app.repositories.invoice_repo import InvoiceRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.user_repo import UserRepository
from app.schemas.invoice import InvoiceRead
from app.schemas.order import OrderLineIn
from app.services.identifiers import is_valid_id
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService


@pytest.fixture
def orders(feed):
    return OrderService(OrderRepository(), ProductRepository(), feed=feed)


@pytest.fixture
def service(feed):
    return InvoiceService(InvoiceRepository(), OrderRepository(), UserRepository(), feed=feed)


@pytest.fixture
def order(session, orders, customer, make_product):
    product = make_product(price=45.0, gst_rate=12.0, stock=100)
    return orders.create_order(
        session, customer, [OrderLineIn(product_id=product.id, quantity=10)]
    )


def test_invoice_bills_what_the_order_charged(session, service, order, staff, customer):
    invoice = service.generate_invoice(session, order.id, staff)

    assert is_valid_id(invoice.invoice_id)
    assert invoice.order_id == order.order_id
    assert invoice.order_doc_id == order.id
    assert invoice.customer_uid == customer.id
    assert invoice.customer_name == "City Medicals"
    assert invoice.customer_email == customer.email
    assert invoice.customer_address == "12 MG Road, Coimbatore"
    assert invoice.subtotal == 450.0
    # stored tax is one component; CGST + SGST = 54
    assert invoice.tax == 27.0
    assert invoice.tax_rate == 6.0
    assert invoice.final_amount == order.total_amount == 504.0
    assert invoice.status == "pending"
    assert invoice.generated_by_uid == staff.id
    assert invoice.generated_by_name == "Sam Staff"


def test_invoice_items_carry_tax_fields(session, service, order, staff):
    invoice = service.generate_invoice(session, order.id, staff)

    [item] = service.get_items(session, invoice)
    assert item.name == "Paracetamol 650mg"
    assert item.quantity == 10
    assert item.price == 45.0
    assert item.rate == 45.0
    assert item.mrp == 45.0
    assert item.amount == 450.0
    assert item.discount_pct == 0.0
    assert item.hsn == "3004"
    assert item.gst_rate_pct == 12.0
    assert item.pack == "15x10"


def test_missing_gst_rate_defaults_to_five_percent(session, service, orders, customer, staff, make_product):
    product = make_product(gst_rate=None, hsn_code="3005")
    order = orders.create_order(session, customer, [OrderLineIn(product_id=product.id, quantity=1)])

    invoice = service.generate_invoice(session, order.id, staff)

    [item] = service.get_items(session, invoice)
    assert item.gst_rate_pct == 5.0
    assert item.hsn == "3005"


def test_flat_rate_override(session, service, order, admin):
    invoice = service.generate_invoice(
        session, order.id, admin, tax_rate_per_component=2.5, discount=50.0, notes="Net 30"
    )

    # taxable 400 at 5% => 20 total, 10 per component
    assert invoice.discount == 50.0
    assert invoice.tax == 10.0
    assert invoice.tax_rate == 2.5
    assert invoice.final_amount == 450.0 + 20.0 - 50.0
    assert invoice.notes == "Net 30"


def test_discount_only_uses_configured_rate(session, service, order, admin, settings):
    invoice = service.generate_invoice(session, order.id, admin, discount=0.0)

    assert invoice.tax_rate == settings.INVOICE_TAX_RATE_PER_COMPONENT
    assert invoice.tax == round(450.0 * settings.INVOICE_TAX_RATE_PER_COMPONENT / 100, 2)


def test_second_generate_returns_existing(session, service, order, staff, admin):
    first = service.generate_invoice(session, order.id, staff)
    second = service.generate_invoice(session, order.id, admin)

    assert second.id == first.id
    assert len(session.exec(select(Invoice)).all()) == 1


def test_strict_mode_rejects_second_generate(session, service, order, staff, monkeypatch):
    monkeypatch.setattr(service.settings, "STRICT_INVOICE_UNIQUENESS", True)
    service.generate_invoice(session, order.id, staff)

    with pytest.raises(AlreadyExistsError) as exc:
        service.generate_invoice(session, order.id, staff)
    assert exc.value.status_code == 409


def test_concurrent_generate_keeps_one(session, service, order, staff, monkeypatch):
    winner = service.generate_invoice(session, order.id, staff)
    # Simulate the loser: its pre-check ran before the winner committed
    original = service.invoice_repo.get_by_order_id
    calls = {"n": 0}

    def stale_lookup(sess, order_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return original(sess, order_id)

    monkeypatch.setattr(service.invoice_repo, "get_by_order_id", stale_lookup)

    result = service.generate_invoice(session, order.id, staff)

    assert result.id == winner.id
    assert len(session.exec(select(Invoice)).all()) == 1
    assert len(session.exec(select(InvoiceItem)).all()) == 1


def test_unique_index_on_order_id(session, service, order, staff):
    invoice = service.generate_invoice(session, order.id, staff)
    duplicate = Invoice(
        invoice_id="FPW-2025-11111",
        order_id=invoice.order_id,
        order_doc_id=order.id,
        customer_uid=invoice.customer_uid,
        customer_name="dup",
        generated_by_uid=staff.id,
        generated_by_name="dup",
    )
    session.add(duplicate)

    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_customer_cannot_generate(session, service, order, customer):
    with pytest.raises(UnauthorizedError):
        service.generate_invoice(session, order.id, customer)
    assert not service.invoice_exists_for_order(session, order.order_id)


def test_generate_for_missing_order(session, service, staff):
    with pytest.raises(NotFoundError):
        service.generate_invoice(session, uuid.uuid4(), staff)


def test_breakdown_shows_both_components(session, service, order, staff):
    invoice = service.generate_invoice(session, order.id, staff)

    breakdown = service.render_breakdown(invoice)

    assert breakdown.cgst == breakdown.sgst == 27.0
    assert breakdown.total_gst == 54.0
    assert breakdown.taxable_amount == 450.0
    assert breakdown.grand_total == 504.0


def test_update_status(session, service, order, staff, customer):
    invoice = service.generate_invoice(session, order.id, staff)

    paid = service.update_status(session, invoice.id, "paid", staff)
    assert paid.status == "paid"
    assert paid.updated_at is not None

    with pytest.raises(UnauthorizedError):
        service.update_status(session, invoice.id, "cancelled", customer)
    with pytest.raises(NotFoundError):
        service.update_status(session, uuid.uuid4(), "paid", staff)


def test_lookups(session, service, order, staff, customer, make_user):
    invoice = service.generate_invoice(session, order.id, staff)
    stranger = make_user("customer")

    assert service.get_by_invoice_id(session, invoice.invoice_id).id == invoice.id
    assert service.get_by_order_id(session, order.order_id).id == invoice.id
    assert [i.id for i in service.list_customer_invoices(session, customer.id)] == [invoice.id]
    assert service.list_customer_invoices(session, stranger.id) == []
    assert len(service.get_with_items(session, invoice).items) == 1


def test_statistics(session, service, orders, order, staff, customer, make_product):
    service.generate_invoice(session, order.id, staff)
    other = orders.create_order(
        session, customer, [OrderLineIn(product_id=make_product(price=10.0, gst_rate=0.0).id, quantity=1)]
    )
    service.generate_invoice(session, other.id, staff)

    stats = service.statistics(session)

    assert stats.total_count == 2
    assert stats.total_revenue == 514.0
    assert stats.today_count == 2
    assert stats.today_revenue == 514.0


def test_subscribe_customer(session, session_factory, service, order, staff, customer, make_user):
    mine, theirs = [], []
    unsubscribe_mine = service.subscribe_customer(session_factory, customer.id, mine.append)
    unsubscribe_theirs = service.subscribe_customer(session_factory, make_user("customer").id, theirs.append)

    service.generate_invoice(session, order.id, staff)

    assert [len(s) for s in mine] == [0, 1]
    assert [len(s) for s in theirs] == [0, 0]
    unsubscribe_mine()
    unsubscribe_theirs()


def test_flat_rate_on_round_thousand(session, service, orders, customer, admin, make_product):
    product = make_product(price=100.0, gst_rate=None)
    order = orders.create_order(session, customer, [OrderLineIn(product_id=product.id, quantity=10)])

    invoice = service.generate_invoice(session, order.id, admin, tax_rate_per_component=2.5)

    assert invoice.tax == 25.0
    assert service.render_breakdown(invoice).total_gst == 50.0
    assert invoice.final_amount == 1050.0


def test_discount_above_subtotal_rejected(session, service, order, staff):
    with pytest.raises(ValidationError):
        service.generate_invoice(session, order.id, staff, discount=1000.0)
    assert not service.invoice_exists_for_order(session, order.order_id)


def test_discount_equal_to_subtotal_bills_zero(session, service, order, staff):
    invoice = service.generate_invoice(session, order.id, staff, discount=450.0)

    assert invoice.tax == 0.0
    assert invoice.final_amount == 0.0
    assert service.render_breakdown(invoice).taxable_amount == 0.0


def test_update_status_rejects_unknown_value(session, service, order, staff):
    invoice = service.generate_invoice(session, order.id, staff)

    with pytest.raises(InvalidStatusError):
        service.update_status(session, invoice.id, "archived", staff)

    session.expire_all()
    stored = service.get_by_id(session, invoice.id)
    assert stored.status == "pending"
    assert InvoiceRead.model_validate(stored).status == "pending"
