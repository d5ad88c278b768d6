# app/repositories/order_repo.py
import uuid

from sqlalchemy import func, update
from sqlmodel import Session, select

from app.models.order import Order, OrderItem
from app.models.product import Product


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - No commits here; order creation is a multi-step transaction.
        The service is responsible for calling session.commit().
    """

    # ---- Orders ----

    def list_for_customer(
        self,
        session: Session,
        customer_uid: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.customer_uid == customer_uid)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def count_by_status(self, session: Session, status: str) -> int:
        stmt = select(func.count()).select_from(Order).where(Order.status == status)
        value = session.exec(stmt).one()
        return int(value or 0)

    def get_by_id(self, session: Session, order_doc_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_doc_id)

    def get_by_order_id(self, session: Session, order_id: str) -> Order | None:
        stmt = select(Order).where(Order.order_id == order_id)
        return session.exec(stmt).first()

    def order_id_exists(self, session: Session, order_id: str) -> bool:
        return self.get_by_order_id(session, order_id) is not None

    def stat_rows(self, session: Session) -> list[tuple]:
        """
        (status, total_amount, created_at, updated_at) for every order.
        """
        stmt = select(Order.status, Order.total_amount, Order.created_at, Order.updated_at)
        return list(session.exec(stmt).all())

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()  # Assign PK
        session.refresh(order)
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_doc_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_doc_id)
        return list(session.exec(stmt).all())

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        for item in items:
            session.refresh(item)
        return items

    # ---- Stock ----

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> bool:
        """
        Conditional decrement: UPDATE ... SET stock = stock - q WHERE stock >= q.

        Returns False when no row matched, i.e. another checkout took the
        stock between our read and this write.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session="fetch")
        )
        result = session.execute(stmt)
        return result.rowcount == 1
