# app/routers/invoices.py
import uuid

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from app.core.auth import require_auth, require_customer, require_permission, resolve_user_in_new_session
from app.core.errors import NotFoundError
from app.core.permissions import can_perform
from app.core.realtime import stream_to_websocket
from app.database import get_session, get_session_factory
from app.models.user import User
from app.repositories.invoice_repo import InvoiceRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import UserRepository
from app.schemas.invoice import (
    InvoiceBreakdown,
    InvoiceGenerate,
    InvoiceRead,
    InvoiceStatistics,
    InvoiceStatusUpdate,
    InvoiceWithItemsRead,
)
from app.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])

invoice_repo = InvoiceRepository()
order_repo = OrderRepository()
user_repo = UserRepository()
service = InvoiceService(invoice_repo, order_repo, user_repo)


@router.post(
    "/generate/{order_doc_id}",
    response_model=InvoiceWithItemsRead,
)
def generate_invoice(
    order_doc_id: uuid.UUID,
    payload: InvoiceGenerate | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("generate_invoice")),
):
    """
    Issue the invoice for an order (staff/admin).

    Calling it again for the same order returns the invoice already
    issued (or 409 when strict uniqueness is configured).
    """
    payload = payload or InvoiceGenerate()
    invoice = service.generate_invoice(
        session,
        order_doc_id,
        current_user,
        tax_rate_per_component=payload.tax_rate_per_component,
        discount=payload.discount,
        notes=payload.notes,
        customer_address=payload.customer_address,
    )
    return service.get_with_items(session, invoice)


@router.get(
    "/me",
    response_model=list[InvoiceRead],
)
def list_my_invoices(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_customer),
    skip: int = 0,
    limit: int = 50,
):
    return service.list_customer_invoices(session, current_user.id, skip, limit)


@router.get(
    "",
    response_model=list[InvoiceRead],
    dependencies=[Depends(require_permission("view_all_invoices"))],
)
def list_all_invoices(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
):
    return service.list_all_invoices(session, skip, limit)


@router.get(
    "/stats",
    response_model=InvoiceStatistics,
    dependencies=[Depends(require_permission("view_statistics"))],
)
def invoice_statistics(session: Session = Depends(get_session)):
    return service.statistics(session)


@router.get(
    "/by-order/{order_id}",
    response_model=InvoiceWithItemsRead,
    dependencies=[Depends(require_permission("view_all_invoices"))],
)
def get_invoice_for_order(
    order_id: str,
    session: Session = Depends(get_session),
):
    """
    Invoice issued for an order business id (FPW-YYYY-#####).
    """
    invoice = service.get_by_order_id(session, order_id)
    if invoice is None:
        raise NotFoundError(detail="No invoice for this order")
    return service.get_with_items(session, invoice)


@router.get(
    "/by-invoice-id/{invoice_id}",
    response_model=InvoiceWithItemsRead,
    dependencies=[Depends(require_permission("view_all_invoices"))],
)
def get_invoice_by_business_id(
    invoice_id: str,
    session: Session = Depends(get_session),
):
    invoice = service.get_by_invoice_id(session, invoice_id)
    if invoice is None:
        raise NotFoundError(detail="Invoice not found")
    return service.get_with_items(session, invoice)


def _visible_invoice(session: Session, invoice_doc_id: uuid.UUID, user: User):
    """
    Staff/admin see every invoice; customers only their own.
    """
    invoice = service.get_by_id(session, invoice_doc_id)
    if invoice is None:
        raise NotFoundError(detail="Invoice not found")
    if not can_perform(user.role, "view_all_invoices") and invoice.customer_uid != user.id:
        raise NotFoundError(detail="Invoice not found")
    return invoice


@router.get(
    "/{invoice_doc_id}",
    response_model=InvoiceWithItemsRead,
)
def get_invoice(
    invoice_doc_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    invoice = _visible_invoice(session, invoice_doc_id, current_user)
    return service.get_with_items(session, invoice)


@router.get(
    "/{invoice_doc_id}/breakdown",
    response_model=InvoiceBreakdown,
)
def get_invoice_breakdown(
    invoice_doc_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Display totals: CGST and SGST lines (each the stored tax) and total GST.
    """
    invoice = _visible_invoice(session, invoice_doc_id, current_user)
    return service.render_breakdown(invoice)


@router.patch(
    "/{invoice_doc_id}/status",
    response_model=InvoiceRead,
)
def update_invoice_status(
    invoice_doc_id: uuid.UUID,
    payload: InvoiceStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("update_invoice_status")),
):
    return service.update_status(session, invoice_doc_id, payload.status, current_user)


@router.websocket("/ws")
async def invoice_feed(
    websocket: WebSocket,
    token: str,
    session_factory=Depends(get_session_factory),
):
    """
    Full invoice list on connect and after every change.
    Auth via ?token=<Supabase access token>.
    """
    try:
        user = await run_in_threadpool(resolve_user_in_new_session, token, session_factory)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    if can_perform(user.role, "view_all_invoices"):
        subscribe = lambda push: service.subscribe_all(session_factory, push)  # noqa: E731
    else:
        subscribe = lambda push: service.subscribe_customer(session_factory, user.id, push)  # noqa: E731
    await stream_to_websocket(websocket, subscribe)
