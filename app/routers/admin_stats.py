# app/routers/admin_stats.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_permission
from app.database import get_session
from app.repositories.invoice_repo import InvoiceRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.user_repo import UserRepository
from app.schemas.stats import AdminDashboardStats
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService
from app.services.product_service import ProductService
from app.services.stats_service import StatsService
from app.services.user_service import UserService

router = APIRouter(prefix="/admin/stats", tags=["Admin Stats"])

order_repo = OrderRepository()
product_repo = ProductRepository()
user_repo = UserRepository()

service = StatsService(
    orders=OrderService(order_repo, product_repo),
    invoices=InvoiceService(InvoiceRepository(), order_repo, user_repo),
    users=UserService(user_repo),
    products=ProductService(product_repo),
)


@router.get(
    "",
    response_model=AdminDashboardStats,
    dependencies=[Depends(require_permission("view_statistics"))],
)
def get_admin_dashboard_stats(
    latest: int = 5,
    session: Session = Depends(get_session),
):
    """
    Aggregated statistics for the admin/staff dashboard.

    Query params (optional):
      - latest: number of most recent orders to include (default 5)
    """
    return service.get_dashboard(session=session, latest_n_orders=latest)
