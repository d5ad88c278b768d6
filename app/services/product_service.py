# app/services/product_service.py
import logging
import uuid

from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import NotFoundError, ValidationError
from app.core.permissions import ensure_can_perform
from app.core.realtime import ChangeFeed, change_feed
from app.core.time_utils import utcnow
from app.models.product import Product
from app.models.user import User
from app.repositories.product_repo import ProductRepository
from app.schemas.product import ProductCounts, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)

PRODUCTS_TOPIC = "products"


class ProductService:
    """
    Business logic for the catalog.

    Responsibilities:
      - admin-only create / update / soft delete
      - stock adjustments (admin and staff)
      - low stock queries for the staff dashboard
    """

    def __init__(self, repo: ProductRepository, feed: ChangeFeed = change_feed):
        self.repo = repo
        self.feed = feed

    def list_products(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        only_active: bool = True,
        category: str | None = None,
    ) -> list[Product]:
        return self.repo.list_products(
            session, skip=skip, limit=limit, only_active=only_active, category=category
        )

    def list_low_stock(self, session: Session) -> list[Product]:
        return self.repo.list_low_stock(session)

    def get_product(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return self.repo.get_by_id(session, product_id)

    def _require_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.repo.get_by_id(session, product_id)
        if not product:
            raise NotFoundError(detail="Product not found")
        return product

    def create_product(
        self,
        session: Session,
        actor: User,
        payload: ProductCreate,
    ) -> Product:
        ensure_can_perform(actor.role, "create_product")

        data = payload.model_dump()
        if data["low_stock_threshold"] is None:
            data["low_stock_threshold"] = get_settings().DEFAULT_LOW_STOCK_THRESHOLD

        product = Product(**data, updated_by_uid=actor.id)
        product = self.repo.create(session, product)
        logger.info("Product %s created by %s", product.name, actor.id)
        self.feed.publish(PRODUCTS_TOPIC)
        return product

    def update_product(
        self,
        session: Session,
        actor: User,
        product_id: uuid.UUID,
        payload: ProductUpdate,
    ) -> Product:
        """
        Partial update of a product (admin only).
        """
        ensure_can_perform(actor.role, "update_product")
        product = self._require_product(session, product_id)

        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(product, field, value)

        product.updated_at = utcnow()
        product.updated_by_uid = actor.id
        product = self.repo.update(session, product)
        self.feed.publish(PRODUCTS_TOPIC)
        return product

    def update_stock(
        self,
        session: Session,
        actor: User,
        product_id: uuid.UUID,
        new_stock: int,
    ) -> Product:
        """
        Set an absolute stock level (admin and staff).
        """
        ensure_can_perform(actor.role, "update_stock")
        if new_stock < 0:
            raise ValidationError(detail="Stock cannot be negative")

        product = self._require_product(session, product_id)
        previous = product.stock
        product.stock = new_stock
        product.updated_at = utcnow()
        product.updated_by_uid = actor.id
        product = self.repo.update(session, product)
        logger.info("Stock for %s: %d -> %d by %s", product.name, previous, new_stock, actor.role)
        self.feed.publish(PRODUCTS_TOPIC)
        return product

    def soft_delete(
        self,
        session: Session,
        actor: User,
        product_id: uuid.UUID,
    ) -> Product:
        """
        Mark a product inactive; past orders keep their snapshots.
        """
        ensure_can_perform(actor.role, "delete_product")
        product = self._require_product(session, product_id)
        product.status = "inactive"
        product.updated_at = utcnow()
        product.updated_by_uid = actor.id
        product = self.repo.update(session, product)
        self.feed.publish(PRODUCTS_TOPIC)
        return product

    def counts(self, session: Session) -> ProductCounts:
        counts = {"total": 0, "active": 0, "inactive": 0, "low_stock": 0}
        for product in self.repo.list_all(session):
            counts["total"] += 1
            if product.status == "active":
                counts["active"] += 1
                if product.stock <= product.low_stock_threshold:
                    counts["low_stock"] += 1
            else:
                counts["inactive"] += 1
        return ProductCounts(**counts)
