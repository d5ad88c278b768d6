# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Persistent user profile for FinePharma Wholesale.

    Identity:
      - id: MUST match Supabase auth.users.id (UUID from JWT "sub")

    Role:
      - "customer" | "staff" | "admin"

    Status:
      - "active" | "disabled" (disabled users are rejected at auth time)

    Passwords live in Supabase Auth; this table only mirrors identity,
    profile details and application role.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from Supabase auth.users",
    )

    name: str = Field(
        max_length=100,
        description="Display name; first part of email by default",
    )

    role: str = Field(
        default="customer",
        index=True,
        description="Application role: customer | staff | admin",
    )

    status: str = Field(
        default="active",
        index=True,
        description="Account status: active | disabled",
    )

    # Profile details used on invoices
    phone: str | None = None
    shop_name: str | None = None
    gstin: str | None = None
    address: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime | None = None
    last_login_at: datetime | None = None
