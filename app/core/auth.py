# app/core/auth.py
import uuid
from typing import Any, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.core.config import get_settings
from app.core.permissions import CUSTOMER, ensure_can_perform
from app.core.time_utils import utcnow
from app.database import get_session
from app.models.user import User

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so require_auth can answer with a consistent 401.
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def _default_name_from_email(email: str) -> str:
    """
    Derive a default display name from email if the user has not
    completed their profile yet.
    """
    if "@" in email:
        return email.split("@", 1)[0]
    return email


def resolve_user_from_token(token: str, session: Session) -> User:
    """
    Resolve (or auto-provision) the profile behind a Supabase JWT.

    Flow:
      1. Decode JWT => extract 'sub' (auth user id) and 'email'.
      2. Convert 'sub' to UUID to match User.id type.
      3. Find user profile in users.
      4. If missing, provision it with role='customer'.
      5. Reject disabled accounts.

    Raises:
        HTTPException(401): malformed token or missing claims.
        HTTPException(403): account disabled.
    """
    payload = decode_access_token(token)
    sub = payload.get("sub")
    email = payload.get("email")

    if not sub or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub/email",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    user = session.exec(select(User).where(User.id == sub_uuid)).first()

    # Default role = "customer" (staff/admin are promoted by an admin).
    if user is None:
        now = utcnow()
        user = User(
            id=sub_uuid,
            email=email,
            name=_default_name_from_email(email),
            role=CUSTOMER,
            status="active",
            created_at=now,
            last_login_at=now,
        )
        session.add(user)
        session.commit()
        session.refresh(user)

    if user.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been disabled. Please contact support.",
        )

    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a Supabase JWT; None when no token.
    """
    if credentials is None:
        return None
    return resolve_user_from_token(credentials.credentials, session)


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_permission(action: str) -> Callable[..., User]:
    """
    Dependency factory gating a route on the permission table.

        @router.patch("/{id}/status")
        def update(..., user: User = Depends(require_permission("update_order_status"))):
            ...

    Raises:
        UnauthorizedError(403): if the user's role may not perform `action`.
    """

    def dependency(user: User = Depends(require_auth)) -> User:
        ensure_can_perform(user.role, action)
        return user

    return dependency


def require_customer(user: User = Depends(require_auth)) -> User:
    """
    Enforce that only customers can access a route (own orders/invoices).
    Staff and admins use the "all" endpoints instead.
    """
    if user.role != CUSTOMER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer access required",
        )
    return user


def resolve_user_in_new_session(token: str, session_factory: Callable[[], Session]) -> User:
    """
    resolve_user_from_token() with its own short-lived session, for
    WebSocket handlers that run it in the threadpool.
    """
    with session_factory() as session:
        return resolve_user_from_token(token, session)
