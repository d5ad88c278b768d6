# app/repositories/product_repo.py
import uuid

from sqlmodel import Session, select

from app.models.product import Product


class ProductRepository:
    """
    Data access layer for Product.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    """

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def list_products(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        only_active: bool = True,
        category: str | None = None,
    ) -> list[Product]:
        stmt = select(Product)
        if only_active:
            stmt = stmt.where(Product.status == "active")
        if category is not None:
            stmt = stmt.where(Product.category == category)
        stmt = stmt.order_by(Product.name).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_low_stock(self, session: Session) -> list[Product]:
        stmt = (
            select(Product)
            .where(Product.status == "active", Product.stock <= Product.low_stock_threshold)
            .order_by(Product.stock)
        )
        return list(session.exec(stmt).all())

    def list_all(self, session: Session) -> list[Product]:
        return list(session.exec(select(Product)).all())

    def create(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def update(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.commit()
        session.refresh(product)
        return product
