# app/routers/products.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_auth, require_permission
from app.core.errors import NotFoundError
from app.database import get_session
from app.models.user import User
from app.repositories.product_repo import ProductRepository
from app.schemas.product import ProductCreate, ProductRead, ProductUpdate, StockUpdate
from app.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])

repo = ProductRepository()
service = ProductService(repo)


# -------- Catalog (any signed-in user) --------


@router.get(
    "",
    response_model=list[ProductRead],
    dependencies=[Depends(require_auth)],
)
def list_products(
    session: Session = Depends(get_session),
    category: str | None = None,
    skip: int = 0,
    limit: int = 50,
):
    """
    Active products, sorted by name.
    """
    return service.list_products(session, skip=skip, limit=limit, category=category)


@router.get(
    "/low-stock",
    response_model=list[ProductRead],
    dependencies=[Depends(require_permission("update_stock"))],
)
def list_low_stock(session: Session = Depends(get_session)):
    """
    Active products at or below their low-stock threshold (staff/admin).
    """
    return service.list_low_stock(session)


@router.get(
    "/{product_id}",
    response_model=ProductRead,
    dependencies=[Depends(require_auth)],
)
def get_product(
    product_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    product = service.get_product(session, product_id)
    if product is None:
        raise NotFoundError(detail="Product not found")
    return product


# -------- Admin / staff endpoints --------


@router.post(
    "",
    response_model=ProductRead,
    status_code=201,
)
def create_product(
    payload: ProductCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("create_product")),
):
    return service.create_product(session, current_user, payload)


@router.patch(
    "/{product_id}",
    response_model=ProductRead,
)
def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("update_product")),
):
    return service.update_product(session, current_user, product_id, payload)


@router.patch(
    "/{product_id}/stock",
    response_model=ProductRead,
)
def update_stock(
    product_id: uuid.UUID,
    payload: StockUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("update_stock")),
):
    """
    Set the absolute stock level (staff/admin).
    """
    return service.update_stock(session, current_user, product_id, payload.stock)


@router.delete(
    "/{product_id}",
    response_model=ProductRead,
)
def delete_product(
    product_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("delete_product")),
):
    """
    Soft delete: the product becomes inactive, order history is untouched.
    """
    return service.soft_delete(session, current_user, product_id)
