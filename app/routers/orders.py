# app/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from app.core.auth import require_customer, require_permission, resolve_user_in_new_session
from app.core.errors import NotFoundError
from app.core.permissions import can_perform
from app.core.realtime import stream_to_websocket
from app.database import get_session, get_session_factory
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import (
    OrderCreate,
    OrderRead,
    OrderStatistics,
    OrderStatusUpdate,
    OrderWithItemsRead,
)
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
product_repo = ProductRepository()
service = OrderService(order_repo, product_repo)


# -------- Customer endpoints --------


@router.post(
    "/checkout",
    response_model=OrderWithItemsRead,
    status_code=status.HTTP_201_CREATED,
)
def checkout(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("create_order")),
):
    """
    Place an order. Prices, tax and totals are computed server-side from
    the catalog and stock is reserved in the same transaction.

    Auth:
      - Only role='customer' can checkout.
    """
    return service.create_order(
        session,
        current_user,
        payload.items,
        note=payload.note,
        shipping_address=payload.shipping_address,
    )


@router.get(
    "/me",
    response_model=list[OrderRead],
)
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated customer's orders (without items), newest first.
    """
    return service.list_customer_orders(session, current_user.id, skip, limit)


@router.get(
    "/me/{order_doc_id}",
    response_model=OrderWithItemsRead,
)
def get_my_order(
    order_doc_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
):
    """
    Get a single order (with items) belonging to the current customer.
    """
    order = service.get_customer_order(session, current_user.id, order_doc_id)
    if order is None:
        raise NotFoundError(detail="Order not found")
    return order


# -------- Staff / admin endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
    dependencies=[Depends(require_permission("view_all_orders"))],
)
def list_all_orders(
    session: Session = Depends(get_session),
    status: str | None = None,
    skip: int = 0,
    limit: int = 50,
):
    """
    List all orders, optionally filtered by status.
    """
    return service.list_all_orders(session, skip, limit, status=status)


@router.get(
    "/stats",
    response_model=OrderStatistics,
    dependencies=[Depends(require_permission("view_statistics"))],
)
def order_statistics(session: Session = Depends(get_session)):
    """
    Totals per status plus today's count, revenue and processed orders.
    """
    return service.statistics(session)


@router.get(
    "/by-order-id/{order_id}",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_permission("view_all_orders"))],
)
def get_order_by_business_id(
    order_id: str,
    session: Session = Depends(get_session),
):
    """
    Look up an order by its business id (FPW-YYYY-#####).
    """
    order = service.get_by_order_id(session, order_id)
    if order is None:
        raise NotFoundError(detail="Order not found")
    return service.get_with_items(session, order)


@router.get(
    "/{order_doc_id}",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_permission("view_all_orders"))],
)
def get_order(
    order_doc_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    order = service.get_by_id(session, order_doc_id)
    if order is None:
        raise NotFoundError(detail="Order not found")
    return service.get_with_items(session, order)


@router.patch(
    "/{order_doc_id}/status",
    response_model=OrderRead,
)
def update_order_status(
    order_doc_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("update_order_status")),
):
    """
    Move an order along its lifecycle (staff/admin).

      pending    -> processing, shipped, delivered, cancelled

      processing -> shipped, delivered, cancelled

      shipped    -> delivered

      delivered, cancelled -> (no change)
    """
    return service.update_status(session, order_doc_id, payload.status, current_user.role)


# -------- Live updates --------


@router.websocket("/ws")
async def order_feed(
    websocket: WebSocket,
    token: str,
    session_factory=Depends(get_session_factory),
):
    """
    Full order list on connect and after every change.

    Staff/admin receive every order; customers receive their own.
    Auth via ?token=<Supabase access token>.
    """
    try:
        user = await run_in_threadpool(resolve_user_in_new_session, token, session_factory)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    if can_perform(user.role, "view_all_orders"):
        subscribe = lambda push: service.subscribe_all(session_factory, push)  # noqa: E731
    else:
        subscribe = lambda push: service.subscribe_customer(session_factory, user.id, push)  # noqa: E731
    await stream_to_websocket(websocket, subscribe)
