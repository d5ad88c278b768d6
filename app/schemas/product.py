# app/schemas/product.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

ProductStatus = Literal["active", "inactive"]


class ProductRead(SQLModel):
    """
    Product as returned to clients.
    """

    id: uuid.UUID
    name: str
    category: str
    price: float
    wholesale_price: float | None
    stock: int
    low_stock_threshold: int
    status: ProductStatus
    hsn_code: str | None
    gst_rate: float | None
    pack: str | None
    sku: str | None
    description: str | None
    created_at: datetime
    updated_at: datetime | None


class ProductCreate(SQLModel):
    """
    Payload for creating a product (admin only).
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=200)
    category: str = Field(max_length=50)
    price: float = Field(ge=0)
    wholesale_price: float | None = Field(default=None, ge=0)
    stock: int = Field(default=0, ge=0)
    low_stock_threshold: int | None = Field(default=None, ge=0)
    status: ProductStatus = "active"
    hsn_code: str | None = None
    gst_rate: float | None = Field(default=None, ge=0, le=100)
    pack: str | None = None
    sku: str | None = None
    description: str | None = None

    @field_validator("name", "category")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class ProductUpdate(SQLModel):
    """
    Partial update. Stock has its own endpoint so staff can adjust it.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=200)
    category: str | None = Field(default=None, max_length=50)
    price: float | None = Field(default=None, ge=0)
    wholesale_price: float | None = Field(default=None, ge=0)
    low_stock_threshold: int | None = Field(default=None, ge=0)
    status: ProductStatus | None = None
    hsn_code: str | None = None
    gst_rate: float | None = Field(default=None, ge=0, le=100)
    pack: str | None = None
    sku: str | None = None
    description: str | None = None

    @field_validator("name", "category")
    @classmethod
    def not_empty(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class StockUpdate(SQLModel):
    """
    New absolute stock level. Negative values are rejected by the service
    so the error kind matches other validation failures.
    """

    model_config = ConfigDict(extra="forbid")

    stock: int


class ProductCounts(SQLModel):
    total: int
    active: int
    inactive: int
    low_stock: int
