# app/models/order.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    Customer order.

    Totals are computed once at checkout and stored; they are never
    recomputed on read. After creation only status, updated_at and
    updated_by_role change.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # Business key, e.g. FPW-2025-48213
    order_id: str = Field(
        unique=True,
        index=True,
        max_length=32,
    )

    customer_uid: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    subtotal: float = Field(default=0.0)
    tax_amount: float = Field(default=0.0)
    discount: float = Field(default=0.0)
    extra_fee: float = Field(default=0.0)
    shipping_fee: float = Field(default=0.0)
    total_amount: float = Field(
        description="Final amount for this order (including tax)",
    )

    # pending | processing | shipped | delivered | cancelled
    status: str = Field(
        default="pending",
        index=True,
        description="Order status lifecycle",
    )

    note: str | None = None
    shipping_address: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    # Audit only, not an authorization input
    updated_by_role: str = Field(default="customer")


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order, snapshot from the catalog at checkout.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    name: str
    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    # Pre-tax price at time of order
    unit_price: float = Field(
        ge=0,
        description="Unit price at time of order (pre-tax)",
    )
    mrp: float | None = None

    tax_rate: float | None = Field(default=None, description="GST percent for this line")
    hsn_code: str | None = None
    pack: str | None = None
