# app/schemas/order.py
import uuid
from datetime import datetime
from typing import Literal, get_args

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
ORDER_STATUSES: tuple[str, ...] = get_args(OrderStatus)


class OrderLineIn(SQLModel):
    """
    One requested line at checkout. Price, name and tax come from the
    catalog, never from the client.
    """

    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    quantity: int = Field(gt=0, description="Whole units, >= 1")


class OrderCreate(SQLModel):
    """
    Payload for placing an order.

    User provides:
      - items (product_id + quantity)
      - note (optional)
      - shipping_address (optional, defaults to profile address)

    Backend derives:
      - customer_uid from token
      - status = 'pending'
      - prices / tax / totals from the catalog
    """

    model_config = ConfigDict(extra="forbid")

    items: list[OrderLineIn]
    note: str | None = None
    shipping_address: str | None = None

    @field_validator("items")
    @classmethod
    def not_empty(cls, v: list[OrderLineIn]) -> list[OrderLineIn]:
        if not v:
            raise ValueError("order must contain at least one item")
        return v

    @field_validator("note", "shipping_address")
    @classmethod
    def normalize_text(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    order_id: str
    customer_uid: uuid.UUID
    subtotal: float
    tax_amount: float
    discount: float
    extra_fee: float
    shipping_fee: float
    total_amount: float
    status: OrderStatus
    note: str | None
    shipping_address: str | None
    created_at: datetime
    updated_at: datetime
    updated_by_role: str


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    order_id: uuid.UUID
    product_id: uuid.UUID
    name: str
    quantity: int
    unit_price: float
    mrp: float | None
    tax_rate: float | None
    hsn_code: str | None
    pack: str | None
    line_total: float


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items.
    """

    items: list[OrderItemRead]
    next_status: OrderStatus | None = None


class OrderStatusUpdate(SQLModel):
    """
    Staff/admin payload to change order status.

    Plain str so values outside the set reach the service and come back
    as InvalidStatusError rather than a schema error.
    """

    model_config = ConfigDict(extra="forbid")

    status: str


class OrderStatistics(SQLModel):
    total: int
    pending: int
    processing: int
    shipped: int
    delivered: int
    cancelled: int
    today_count: int
    today_revenue: float
    today_processed: int
