# app/schemas/stats.py
from pydantic import ConfigDict
from sqlmodel import SQLModel

from app.schemas.invoice import InvoiceStatistics
from app.schemas.order import OrderRead, OrderStatistics
from app.schemas.product import ProductCounts
from app.schemas.user import UserCounts


class AdminDashboardStats(SQLModel):
    """
    Full payload for the admin/staff dashboard.
    """
    model_config = ConfigDict(extra="forbid")

    orders: OrderStatistics
    invoices: InvoiceStatistics
    users: UserCounts
    products: ProductCounts
    latest_orders: list[OrderRead]
