# app/services/stats_service.py
from sqlmodel import Session

from app.schemas.order import OrderRead
from app.schemas.stats import AdminDashboardStats
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService
from app.services.product_service import ProductService
from app.services.user_service import UserService


class StatsService:
    """
    Orchestrates aggregated dashboard statistics.
    """

    def __init__(
        self,
        orders: OrderService,
        invoices: InvoiceService,
        users: UserService,
        products: ProductService,
    ):
        self.orders = orders
        self.invoices = invoices
        self.users = users
        self.products = products

    def get_dashboard(
        self,
        session: Session,
        latest_n_orders: int = 5,
    ) -> AdminDashboardStats:
        latest = self.orders.list_all_orders(session, skip=0, limit=latest_n_orders)
        return AdminDashboardStats(
            orders=self.orders.statistics(session),
            invoices=self.invoices.statistics(session),
            users=self.users.counts_by_role(session),
            products=self.products.counts(session),
            latest_orders=[OrderRead.model_validate(o) for o in latest],
        )
