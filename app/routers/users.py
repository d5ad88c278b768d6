# app/routers/users.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_auth, require_permission
from app.core.errors import NotFoundError
from app.database import get_session
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import UserRead, UserRoleUpdate, UserStatusUpdate, UserUpdate
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()
service = UserService(repo)


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(require_auth)):
    """
    Return the authenticated user's profile.

    The profile row is auto-created on first request with role="customer".
    """
    return service.get_me(current_user)


@router.patch("/me", response_model=UserRead)
def update_me(
    payload: UserUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Update the authenticated user's profile (partial update).
    Name, phone, shop name, GSTIN and address are editable.
    """
    return service.update_me(session, current_user, payload)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[UserRead],
    dependencies=[Depends(require_permission("view_users"))],
)
def list_users(
    session: Session = Depends(get_session),
    role: str | None = None,
    skip: int = 0,
    limit: int = 50,
):
    """
    List users (admin only), optionally filtered by role.
    """
    return service.list_users(session, skip, limit, role=role)


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_permission("view_users"))],
)
def get_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    user = service.get_user(session, user_id)
    if user is None:
        raise NotFoundError(detail="User not found")
    return user


@router.patch(
    "/{user_id}/role",
    response_model=UserRead,
)
def change_role(
    user_id: uuid.UUID,
    payload: UserRoleUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("update_user_role")),
):
    """
    Update a user's role (admin only).

    Allowed roles: customer, staff, admin. Admins cannot change their own role.
    """
    return service.update_role(session, current_user, user_id, payload.role)


@router.patch(
    "/{user_id}/status",
    response_model=UserRead,
)
def change_status(
    user_id: uuid.UUID,
    payload: UserStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_permission("update_user_status")),
):
    """
    Enable or disable an account (admin only). Admins cannot disable themselves.
    """
    return service.update_status(session, current_user, user_id, payload.status)
