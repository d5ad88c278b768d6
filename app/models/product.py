# app/models/product.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Catalog entry.

    Orders read price/stock from here and decrement `stock` on success;
    everything an order needs later is snapshot onto its lines.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=200,
        index=True,
        description="Display name, e.g. 'Paracetamol 650mg'",
    )

    category: str = Field(
        max_length=50,
        index=True,
        description="Medicines | Surgical | Consumables | ...",
    )

    price: float = Field(
        ge=0,
        description="MRP per unit",
    )

    wholesale_price: float | None = Field(
        default=None,
        ge=0,
        description="Unit price charged to wholesale customers (falls back to MRP)",
    )

    stock: int = Field(
        default=0,
        ge=0,
        description="Units currently in stock",
    )

    low_stock_threshold: int = Field(
        default=10,
        ge=0,
    )

    # active | inactive (soft delete)
    status: str = Field(
        default="active",
        index=True,
    )

    hsn_code: str | None = None
    gst_rate: float | None = Field(
        default=None,
        ge=0,
        description="GST percent applied to this product's order lines",
    )
    pack: str | None = Field(default=None, description="Pack descriptor, e.g. '15x10'")
    sku: str | None = None
    description: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime | None = None
    updated_by_uid: uuid.UUID | None = None
