# app/services/invoice_service.py
import logging
import uuid
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import AlreadyExistsError, InvalidStatusError, NotFoundError, ValidationError
from app.core.permissions import ensure_can_perform
from app.core.realtime import ChangeFeed, change_feed
from app.core.time_utils import local_date, local_today, utcnow
from app.models.invoice import Invoice, InvoiceItem
from app.models.order import Order, OrderItem
from app.models.user import User
from app.repositories.invoice_repo import InvoiceRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import UserRepository
from app.schemas.invoice import (
    INVOICE_STATUSES,
    InvoiceBreakdown,
    InvoiceItemRead,
    InvoiceRead,
    InvoiceStatistics,
    InvoiceWithItemsRead,
)
from app.services.identifiers import generate_unique_id
from app.services.pricing import (
    LineInput,
    compute_totals,
    effective_rate_per_component,
    render_tax_breakdown,
)

logger = logging.getLogger(__name__)

INVOICES_TOPIC = "invoices"


class InvoiceService:
    """
    Business logic for invoices.

    Responsibilities:
      - Issue at most one invoice per order (pre-check + unique index)
      - Snapshot customer details and project order lines with tax fields
      - Store tax as ONE component (CGST); display doubles it
      - Statistics and live snapshots
    """

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        order_repo: OrderRepository,
        user_repo: UserRepository,
        feed: ChangeFeed = change_feed,
    ):
        self.invoice_repo = invoice_repo
        self.order_repo = order_repo
        self.user_repo = user_repo
        self.feed = feed
        self.settings = get_settings()

    # -------- Generation --------

    def invoice_exists_for_order(self, session: Session, order_id: str) -> bool:
        return self.invoice_repo.get_by_order_id(session, order_id) is not None

    def generate_invoice(
        self,
        session: Session,
        order_doc_id: uuid.UUID,
        actor: User,
        tax_rate_per_component: float | None = None,
        discount: float | None = None,
        notes: str | None = None,
        customer_address: str | None = None,
    ) -> Invoice:
        """
        Issue the invoice for an order, or hand back the one already issued.

        Totals:
          - default: the order's stored totals, so final_amount matches
            what the customer was charged.
          - tax_rate_per_component given: re-tax the order subtotal with
            the flat CGST + SGST convention.

        Raises:
            UnauthorizedError: actor may not generate invoices.
            NotFoundError: order does not exist.
            AlreadyExistsError: invoice exists and STRICT_INVOICE_UNIQUENESS is on.
            ValidationError: discount is negative or larger than the subtotal.
        """
        ensure_can_perform(actor.role, "generate_invoice")

        order = self.order_repo.get_by_id(session, order_doc_id)
        if not order:
            raise NotFoundError(detail="Order not found")

        existing = self.invoice_repo.get_by_order_id(session, order.order_id)
        if existing is not None:
            return self._existing_invoice(existing, order)

        if discount is not None and discount < 0:
            raise ValidationError(detail="Discount cannot be negative")
        if discount is not None and discount > order.subtotal:
            raise ValidationError(
                detail=f"Discount {discount:.2f} exceeds order subtotal {order.subtotal:.2f}"
            )

        order_items = self.order_repo.list_items_for_order(session, order.id)
        subtotal, tax_amount, tax_rate, final_discount, final_amount = self._invoice_totals(
            order, order_items, tax_rate_per_component, discount
        )

        customer = self.user_repo.get_by_id(session, order.customer_uid)
        address = customer_address
        if address is None:
            address = (customer.address if customer else None) or order.shipping_address or ""

        invoice_id = generate_unique_id(
            self.settings.INVOICE_ID_PREFIX,
            lambda candidate: self.invoice_repo.invoice_id_exists(session, candidate),
            max_attempts=self.settings.ID_MAX_ATTEMPTS,
        )

        invoice = Invoice(
            invoice_id=invoice_id,
            order_id=order.order_id,
            order_doc_id=order.id,
            customer_uid=order.customer_uid,
            customer_name=(customer.name if customer else None) or "Customer",
            customer_email=(customer.email if customer else None) or "",
            customer_address=address,
            subtotal=subtotal,
            tax=round(tax_amount / 2, 2),
            tax_rate=tax_rate,
            discount=final_discount,
            extra_fee=order.extra_fee,
            shipping_fee=order.shipping_fee,
            final_amount=final_amount,
            status="pending",
            notes=notes or "",
            generated_at=utcnow(),
            generated_by_uid=actor.id,
            generated_by_name=actor.name or actor.role.title(),
        )
        items = [self._project_item(it) for it in order_items]

        try:
            self.invoice_repo.create_invoice(session, invoice, items)
            session.commit()
        except IntegrityError:
            # Another request issued this order's invoice between our
            # check and insert; the unique index kept it to one.
            session.rollback()
            winner = self.invoice_repo.get_by_order_id(session, order.order_id)
            if winner is None:
                raise
            logger.warning("Concurrent invoice generation for %s; keeping %s", order.order_id, winner.invoice_id)
            return self._existing_invoice(winner, order)

        session.refresh(invoice)
        logger.info(
            "Invoice %s issued for order %s by %s (final=%.2f)",
            invoice.invoice_id, order.order_id, actor.id, invoice.final_amount,
        )

        self.feed.publish(INVOICES_TOPIC)
        return invoice

    def _existing_invoice(self, invoice: Invoice, order: Order) -> Invoice:
        if self.settings.STRICT_INVOICE_UNIQUENESS:
            raise AlreadyExistsError(
                detail=f"Invoice {invoice.invoice_id} already exists for order {order.order_id}"
            )
        logger.info("Invoice %s already exists for order %s", invoice.invoice_id, order.order_id)
        return invoice

    def _invoice_totals(
        self,
        order: Order,
        order_items: list[OrderItem],
        tax_rate_per_component: float | None,
        discount: float | None,
    ) -> tuple[float, float, float, float, float]:
        """
        (subtotal, total tax, per-component rate, discount, final amount)
        """
        if tax_rate_per_component is None and discount is None:
            taxable = order.subtotal - order.discount
            rate = effective_rate_per_component(order.tax_amount, taxable)
            return order.subtotal, order.tax_amount, rate, order.discount, order.total_amount

        rate = (
            tax_rate_per_component
            if tax_rate_per_component is not None
            else self.settings.INVOICE_TAX_RATE_PER_COMPONENT
        )
        totals = compute_totals(
            [LineInput(quantity=it.quantity, unit_price=it.unit_price) for it in order_items],
            discount=discount if discount is not None else order.discount,
            extra_fee=order.extra_fee,
            shipping_fee=order.shipping_fee,
            tax_rate_per_component=rate,
        )
        return totals.subtotal, totals.tax_amount, rate, totals.discount, totals.grand_total

    def _project_item(self, item: OrderItem) -> InvoiceItem:
        """
        Tax-annotated copy of an order line. HSN, GST rate and discount
        fall back to defaults when the order line doesn't carry them.
        """
        return InvoiceItem(
            product_id=item.product_id,
            name=item.name,
            quantity=item.quantity,
            price=item.unit_price,
            mrp=item.mrp if item.mrp is not None else item.unit_price,
            rate=item.unit_price,
            discount_pct=0.0,
            hsn=item.hsn_code or self.settings.DEFAULT_HSN_CODE,
            gst_rate_pct=item.tax_rate if item.tax_rate is not None else self.settings.DEFAULT_GST_RATE_PCT,
            pack=item.pack,
            amount=round(item.quantity * item.unit_price, 2),
        )

    # -------- Status --------

    def update_status(
        self,
        session: Session,
        invoice_doc_id: uuid.UUID,
        new_status: str,
        actor: User,
    ) -> Invoice:
        """
        Invoice payment status (pending / paid / cancelled). Independent of
        the order status.
        """
        ensure_can_perform(actor.role, "update_invoice_status")

        if new_status not in INVOICE_STATUSES:
            raise InvalidStatusError(detail=f"Invalid invoice status: {new_status}")

        invoice = self.invoice_repo.get_by_id(session, invoice_doc_id)
        if not invoice:
            raise NotFoundError(detail="Invoice not found")

        if invoice.status != new_status:
            previous = invoice.status
            invoice.status = new_status
            invoice.updated_at = utcnow()
            self.invoice_repo.update_invoice(session, invoice)
            session.commit()
            session.refresh(invoice)
            logger.info("Invoice %s: %s -> %s by %s", invoice.invoice_id, previous, new_status, actor.id)
            self.feed.publish(INVOICES_TOPIC)
        return invoice

    # -------- Reads --------

    def get_by_id(self, session: Session, invoice_doc_id: uuid.UUID) -> Invoice | None:
        return self.invoice_repo.get_by_id(session, invoice_doc_id)

    def get_by_invoice_id(self, session: Session, invoice_id: str) -> Invoice | None:
        return self.invoice_repo.get_by_invoice_id(session, invoice_id)

    def get_by_order_id(self, session: Session, order_id: str) -> Invoice | None:
        return self.invoice_repo.get_by_order_id(session, order_id)

    def list_customer_invoices(
        self,
        session: Session,
        customer_uid: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Invoice]:
        return self.invoice_repo.list_for_customer(session, customer_uid, skip, limit)

    def list_all_invoices(self, session: Session, skip: int = 0, limit: int = 50) -> list[Invoice]:
        return self.invoice_repo.list_all(session, skip, limit)

    def get_items(self, session: Session, invoice: Invoice) -> list[InvoiceItem]:
        return self.invoice_repo.list_items_for_invoice(session, invoice.id)

    def get_with_items(self, session: Session, invoice: Invoice) -> InvoiceWithItemsRead:
        items = [InvoiceItemRead.model_validate(it) for it in self.get_items(session, invoice)]
        data = InvoiceRead.model_validate(invoice).model_dump()
        return InvoiceWithItemsRead(**data, items=items)

    def render_breakdown(self, invoice: Invoice) -> InvoiceBreakdown:
        """
        Display totals. The stored tax is one component; CGST and SGST
        each show it, total GST is twice it.
        """
        gst = render_tax_breakdown(invoice.tax, invoice.tax_rate)
        taxable = round(max(invoice.subtotal - invoice.discount, 0.0), 2)
        return InvoiceBreakdown(
            invoice_id=invoice.invoice_id,
            subtotal=invoice.subtotal,
            discount=invoice.discount,
            taxable_amount=taxable,
            extra_fee=invoice.extra_fee,
            shipping_fee=invoice.shipping_fee,
            grand_total=invoice.final_amount,
            **gst,
        )

    # -------- Statistics --------

    def statistics(self, session: Session) -> InvoiceStatistics:
        total_count = 0
        total_revenue = 0.0
        today_count = 0
        today_revenue = 0.0
        today = local_today()

        for final_amount, generated_at in self.invoice_repo.stat_rows(session):
            total_count += 1
            total_revenue += final_amount or 0.0
            if generated_at is not None and local_date(generated_at) == today:
                today_count += 1
                today_revenue += final_amount or 0.0

        return InvoiceStatistics(
            total_count=total_count,
            total_revenue=round(total_revenue, 2),
            today_count=today_count,
            today_revenue=round(today_revenue, 2),
        )

    # -------- Live snapshots --------

    def subscribe_all(
        self,
        session_factory: Callable[[], Session],
        callback: Callable[[list[InvoiceRead]], None],
    ) -> Callable[[], None]:
        def fetch() -> list[InvoiceRead]:
            with session_factory() as session:
                return [InvoiceRead.model_validate(i) for i in self.invoice_repo.list_all(session, 0, 1000)]

        return self.feed.subscribe(INVOICES_TOPIC, fetch, callback)

    def subscribe_customer(
        self,
        session_factory: Callable[[], Session],
        customer_uid: uuid.UUID,
        callback: Callable[[list[InvoiceRead]], None],
    ) -> Callable[[], None]:
        def fetch() -> list[InvoiceRead]:
            with session_factory() as session:
                invoices = self.invoice_repo.list_for_customer(session, customer_uid, 0, 1000)
                return [InvoiceRead.model_validate(i) for i in invoices]

        return self.feed.subscribe(INVOICES_TOPIC, fetch, callback)
