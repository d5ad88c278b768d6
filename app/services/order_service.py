# app/services/order_service.py
import logging
import uuid
from typing import Callable

from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import (
    InsufficientStockError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from app.core.permissions import ensure_can_perform
from app.core.realtime import ChangeFeed, change_feed
from app.core.time_utils import local_date, local_today, utcnow
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import (
    ORDER_STATUSES,
    OrderItemRead,
    OrderLineIn,
    OrderRead,
    OrderStatistics,
    OrderWithItemsRead,
)
from app.services.identifiers import generate_unique_id
from app.services.pricing import LineInput, compute_totals

logger = logging.getLogger(__name__)

ORDERS_TOPIC = "orders"
PRODUCTS_TOPIC = "products"

# Forward lookup offered to staff in the UI
NEXT_STATUS: dict[str, str] = {
    "pending": "processing",
    "processing": "shipped",
    "shipped": "delivered",
}

# Position along the fulfilment path; cancelled sits outside it
_FORWARD_RANK: dict[str, int] = {
    "pending": 0,
    "processing": 1,
    "shipped": 2,
    "delivered": 3,
}
_CANCELLABLE = {"pending", "processing"}
_TERMINAL = {"delivered", "cancelled"}

# Orders that count as "processed" for the staff dashboard
_PROCESSED = {"processing", "shipped", "delivered"}


def next_status(current: str) -> str | None:
    return NEXT_STATUS.get(current)


def is_allowed_transition(current: str, new: str) -> bool:
    """
    Forward-only state machine:

      pending -> processing -> shipped -> delivered  (skips allowed)
      pending | processing -> cancelled
      delivered, cancelled are terminal
    """
    if current in _TERMINAL:
        return False
    if new == "cancelled":
        return current in _CANCELLABLE
    return _FORWARD_RANK[new] > _FORWARD_RANK[current]


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Create an order from requested lines
      - Validate lines against products (exists, active, stock)
      - Snapshot lines and compute totals server-side
      - Deduct stock in the same transaction (conditional decrement)
      - Status transitions (staff/admin)
      - Statistics and live snapshots
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        feed: ChangeFeed = change_feed,
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.feed = feed
        self.settings = get_settings()

    # -------- Customer-facing operations --------

    def create_order(
        self,
        session: Session,
        customer: User,
        lines: list[OrderLineIn],
        note: str | None = None,
        shipping_address: str | None = None,
        discount: float = 0.0,
        extra_fee: float = 0.0,
    ) -> OrderWithItemsRead:
        """
        Convert requested lines into a persisted Order.

        Steps:
          1. Validate lines (non-empty, whole positive quantities).
          2. Load each product; must exist and be active.
          3. Check quantity <= stock (nothing is written on failure).
          4. Snapshot lines and compute totals.
          5. Insert Order (status='pending') + OrderItems.
          6. Conditionally decrement stock; a lost race rolls everything back.
          7. Commit and notify subscribers.
        """
        ensure_can_perform(customer.role, "create_order")

        # 1) Lines
        quantities = self._merge_lines(lines)
        if discount < 0 or extra_fee < 0:
            raise ValidationError(detail="Discount and fees cannot be negative")

        # 2-3) Products vs stock
        products: dict[uuid.UUID, Product] = {}
        for product_id, qty in quantities.items():
            product = self.product_repo.get_by_id(session, product_id)
            if product is None:
                raise NotFoundError(detail=f"Product {product_id} not found")
            if product.status != "active":
                raise ValidationError(detail=f"Product {product.name} is not available")
            if qty > product.stock:
                logger.warning(
                    "Checkout rejected: %s requested=%d available=%d",
                    product.name, qty, product.stock,
                )
                raise InsufficientStockError(product.id, product.name, product.stock, qty)
            products[product_id] = product

        # 4) Snapshot + totals
        lines_in: list[LineInput] = []
        for product_id, qty in quantities.items():
            product = products[product_id]
            unit_price = product.wholesale_price if product.wholesale_price is not None else product.price
            if unit_price < 0:
                raise ValidationError(detail=f"Product {product.name} has an invalid price")
            lines_in.append(LineInput(quantity=qty, unit_price=unit_price, tax_rate=product.gst_rate))

        totals = compute_totals(
            lines_in,
            discount=discount,
            extra_fee=extra_fee,
            shipping_fee=self.settings.SHIPPING_FEE,
        )

        # 5) Order + items
        order_id = generate_unique_id(
            self.settings.ORDER_ID_PREFIX,
            lambda candidate: self.order_repo.order_id_exists(session, candidate),
            max_attempts=self.settings.ID_MAX_ATTEMPTS,
        )
        now = utcnow()
        order = Order(
            order_id=order_id,
            customer_uid=customer.id,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount=totals.discount,
            extra_fee=totals.extra,
            shipping_fee=totals.shipping,
            total_amount=totals.grand_total,
            status="pending",
            note=note,
            shipping_address=shipping_address or customer.address,
            created_at=now,
            updated_at=now,
            updated_by_role="customer",
        )
        order = self.order_repo.create_order(session, order)

        items: list[OrderItem] = []
        for (product_id, qty), line in zip(quantities.items(), lines_in):
            product = products[product_id]
            items.append(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    name=product.name,
                    quantity=qty,
                    unit_price=line.unit_price,
                    mrp=product.price,
                    tax_rate=product.gst_rate,
                    hsn_code=product.hsn_code,
                    pack=product.pack,
                )
            )
        items = self.order_repo.create_items(session, items)

        # 6) Stock
        for product_id, qty in quantities.items():
            if not self.order_repo.decrement_stock(session, product_id, qty):
                name = products[product_id].name
                session.rollback()
                product = self.product_repo.get_by_id(session, product_id)
                available = product.stock if product is not None else 0
                logger.warning(
                    "Stock for %s changed during checkout (requested=%d available=%d)",
                    name, qty, available,
                )
                raise InsufficientStockError(product_id, name, available, qty)

        # 7) Commit
        session.commit()
        session.refresh(order)
        logger.info(
            "Order %s placed by %s: %d line(s), total=%.2f",
            order.order_id, customer.id, len(items), order.total_amount,
        )

        self.feed.publish(ORDERS_TOPIC)
        self.feed.publish(PRODUCTS_TOPIC)
        return self._build_order_with_items_dto(order, items)

    def list_customer_orders(
        self,
        session: Session,
        customer_uid: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        """
        List orders for the given customer (without items), newest first.
        """
        return self.order_repo.list_for_customer(session, customer_uid, skip, limit)

    def get_customer_order(
        self,
        session: Session,
        customer_uid: uuid.UUID,
        order_doc_id: uuid.UUID,
    ) -> OrderWithItemsRead | None:
        """
        Get a single order for the customer, including items.

        None if not found or it belongs to someone else.
        """
        order = self.order_repo.get_by_id(session, order_doc_id)
        if not order or order.customer_uid != customer_uid:
            return None
        return self.get_with_items(session, order)

    # -------- Staff / admin operations --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        if status is not None and status not in ORDER_STATUSES:
            raise InvalidStatusError(detail=f"Invalid order status: {status}")
        return self.order_repo.list_all(session, skip, limit, status=status)

    def get_by_id(self, session: Session, order_doc_id: uuid.UUID) -> Order | None:
        return self.order_repo.get_by_id(session, order_doc_id)

    def get_by_order_id(self, session: Session, order_id: str) -> Order | None:
        return self.order_repo.get_by_order_id(session, order_id)

    def get_items(self, session: Session, order: Order) -> list[OrderItem]:
        return self.order_repo.list_items_for_order(session, order.id)

    def get_with_items(self, session: Session, order: Order) -> OrderWithItemsRead:
        return self._build_order_with_items_dto(order, self.get_items(session, order))

    def pending_count(self, session: Session) -> int:
        return self.order_repo.count_by_status(session, "pending")

    def update_status(
        self,
        session: Session,
        order_doc_id: uuid.UUID,
        new_status: str,
        acting_role: str,
    ) -> Order:
        """
        Staff/admin status update.

        - new_status must be one of ORDER_STATUSES.
        - With ENFORCE_STATUS_TRANSITIONS the move must follow
          is_allowed_transition(); otherwise any member of the set goes.
        - Same status is a no-op.
        """
        ensure_can_perform(acting_role, "update_order_status")

        if new_status not in ORDER_STATUSES:
            raise InvalidStatusError(detail=f"Invalid order status: {new_status}")

        order = self.order_repo.get_by_id(session, order_doc_id)
        if not order:
            raise NotFoundError(detail="Order not found")

        current = order.status
        if current == new_status:
            return order

        if self.settings.ENFORCE_STATUS_TRANSITIONS and not is_allowed_transition(current, new_status):
            logger.warning("Rejected transition %s: %s -> %s", order.order_id, current, new_status)
            raise InvalidStatusError(detail=f"Invalid status transition: {current} -> {new_status}")

        order.status = new_status
        order.updated_at = utcnow()
        order.updated_by_role = acting_role
        self.order_repo.update_order(session, order)
        session.commit()
        session.refresh(order)
        logger.info("Order %s: %s -> %s by %s", order.order_id, current, new_status, acting_role)

        self.feed.publish(ORDERS_TOPIC)
        return order

    # -------- Statistics --------

    def statistics(self, session: Session) -> OrderStatistics:
        """
        Aggregates over all orders.

        "today" is the local calendar day (settings.TIMEZONE); revenue
        excludes cancelled orders.
        """
        counts = {status: 0 for status in ORDER_STATUSES}
        total = 0
        today_count = 0
        today_revenue = 0.0
        today_processed = 0
        today = local_today()

        for status, amount, created_at, updated_at in self.order_repo.stat_rows(session):
            total += 1
            if status in counts:
                counts[status] += 1
            if created_at is not None and local_date(created_at) == today:
                today_count += 1
                if status != "cancelled":
                    today_revenue += amount or 0.0
            if status in _PROCESSED and updated_at is not None and local_date(updated_at) == today:
                today_processed += 1

        return OrderStatistics(
            total=total,
            today_count=today_count,
            today_revenue=round(today_revenue, 2),
            today_processed=today_processed,
            **counts,
        )

    # -------- Live snapshots --------

    def subscribe_all(
        self,
        session_factory: Callable[[], Session],
        callback: Callable[[list[OrderRead]], None],
        status: str | None = None,
    ) -> Callable[[], None]:
        """
        Push every order (optionally one status) now and on every change.
        Returns the unsubscribe function.
        """
        def fetch() -> list[OrderRead]:
            with session_factory() as session:
                orders = self.order_repo.list_all(session, 0, 1000, status=status)
                return [OrderRead.model_validate(o) for o in orders]

        return self.feed.subscribe(ORDERS_TOPIC, fetch, callback)

    def subscribe_customer(
        self,
        session_factory: Callable[[], Session],
        customer_uid: uuid.UUID,
        callback: Callable[[list[OrderRead]], None],
    ) -> Callable[[], None]:
        def fetch() -> list[OrderRead]:
            with session_factory() as session:
                orders = self.order_repo.list_for_customer(session, customer_uid, 0, 1000)
                return [OrderRead.model_validate(o) for o in orders]

        return self.feed.subscribe(ORDERS_TOPIC, fetch, callback)

    # -------- Helpers --------

    @staticmethod
    def _merge_lines(lines: list[OrderLineIn]) -> dict[uuid.UUID, int]:
        """
        Validate requested lines and fold duplicates of the same product.
        """
        if not lines:
            raise ValidationError(detail="Order must contain at least one item")

        quantities: dict[uuid.UUID, int] = {}
        for line in lines:
            qty = line.quantity
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise ValidationError(detail=f"Invalid quantity for product {line.product_id}: {qty!r}")
            quantities[line.product_id] = quantities.get(line.product_id, 0) + qty
        return quantities

    def _build_order_with_items_dto(
        self,
        order: Order,
        items: list[OrderItem],
    ) -> OrderWithItemsRead:
        """
        Compose OrderWithItemsRead from ORM models. Totals come from the
        stored order, never recomputed.
        """
        item_dtos = [
            OrderItemRead(
                id=it.id,
                order_id=it.order_id,
                product_id=it.product_id,
                name=it.name,
                quantity=it.quantity,
                unit_price=it.unit_price,
                mrp=it.mrp,
                tax_rate=it.tax_rate,
                hsn_code=it.hsn_code,
                pack=it.pack,
                line_total=round(it.quantity * it.unit_price, 2),
            )
            for it in items
        ]

        data = OrderRead.model_validate(order).model_dump()
        return OrderWithItemsRead(
            **data,
            items=item_dtos,
            next_status=next_status(order.status),
        )
