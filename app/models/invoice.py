# app/models/invoice.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Invoice(SQLModel, table=True):
    """
    GST invoice issued for exactly one order.

    Tax convention:
      - `tax` holds ONE component (CGST alone); SGST is equal, so the
        total GST on the invoice is tax * 2.
      - `tax_rate` is the per-component percent (2.5 => 5% GST).

    The unique index on order_id backs the "at most one invoice per order"
    rule even when two generate requests race.
    """

    __tablename__ = "invoices"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    invoice_id: str = Field(
        unique=True,
        index=True,
        max_length=32,
    )

    # Business key of the order (FPW-YYYY-#####)
    order_id: str = Field(
        unique=True,
        index=True,
        max_length=32,
    )
    order_doc_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    customer_uid: uuid.UUID = Field(index=True)

    # Customer snapshot at invoice time
    customer_name: str
    customer_email: str = ""
    customer_address: str = ""

    subtotal: float = 0.0
    tax: float = Field(default=0.0, description="One tax component (CGST == SGST)")
    tax_rate: float = Field(default=2.5, description="Per-component tax percent")
    discount: float = 0.0
    extra_fee: float = 0.0
    shipping_fee: float = 0.0
    final_amount: float = 0.0

    # pending | paid | cancelled
    status: str = Field(default="pending", index=True)
    notes: str = ""

    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
    generated_by_uid: uuid.UUID
    generated_by_name: str
    updated_at: datetime | None = None


class InvoiceItem(SQLModel, table=True):
    """
    Tax-annotated projection of an order line.
    """

    __tablename__ = "invoice_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    invoice_id: uuid.UUID = Field(
        foreign_key="invoices.id",
        index=True,
    )

    product_id: uuid.UUID
    name: str
    quantity: int
    price: float
    mrp: float
    rate: float
    discount_pct: float = 0.0
    hsn: str = "3004"
    gst_rate_pct: float = 5.0
    pack: str | None = None
    amount: float
