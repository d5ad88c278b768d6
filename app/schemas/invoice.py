# app/schemas/invoice.py
import uuid
from datetime import datetime
from typing import Literal, get_args

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

InvoiceStatus = Literal["pending", "paid", "cancelled"]
INVOICE_STATUSES: tuple[str, ...] = get_args(InvoiceStatus)


class InvoiceGenerate(SQLModel):
    """
    Optional overrides when generating an invoice.

    Leave everything empty to bill exactly what the order was charged.
    Setting tax_rate_per_component re-taxes the order subtotal with the
    flat CGST + SGST convention (2.5 => 5% GST).
    """

    model_config = ConfigDict(extra="forbid")

    tax_rate_per_component: float | None = Field(default=None, ge=0, le=50)
    discount: float | None = Field(default=None, ge=0)
    notes: str | None = None
    customer_address: str | None = None

    @field_validator("notes", "customer_address")
    @classmethod
    def normalize_text(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip()


class InvoiceItemRead(SQLModel):
    product_id: uuid.UUID
    name: str
    quantity: int
    price: float
    mrp: float
    rate: float
    discount_pct: float
    hsn: str
    gst_rate_pct: float
    pack: str | None
    amount: float


class InvoiceRead(SQLModel):
    id: uuid.UUID
    invoice_id: str
    order_id: str
    order_doc_id: uuid.UUID
    customer_uid: uuid.UUID
    customer_name: str
    customer_email: str
    customer_address: str
    subtotal: float
    tax: float
    tax_rate: float
    discount: float
    extra_fee: float
    shipping_fee: float
    final_amount: float
    status: InvoiceStatus
    notes: str
    generated_at: datetime
    generated_by_uid: uuid.UUID
    generated_by_name: str


class InvoiceWithItemsRead(InvoiceRead):
    items: list[InvoiceItemRead]


class InvoiceStatusUpdate(SQLModel):
    """
    Plain str, checked by the service like OrderStatusUpdate.
    """

    model_config = ConfigDict(extra="forbid")

    status: str


class InvoiceBreakdown(SQLModel):
    """
    Display totals: the stored tax is one component, shown twice.
    """

    invoice_id: str
    subtotal: float
    discount: float
    taxable_amount: float
    cgst_rate: float
    cgst: float
    sgst_rate: float
    sgst: float
    total_gst: float
    extra_fee: float
    shipping_fee: float
    grand_total: float


class InvoiceStatistics(SQLModel):
    total_count: int
    total_revenue: float
    today_count: int
    today_revenue: float
