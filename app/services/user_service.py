# app/services/user_service.py
import logging
import uuid

from sqlmodel import Session

from app.core.errors import NotFoundError, ValidationError
from app.core.permissions import ADMIN, ensure_can_perform, ensure_not_self_demotion
from app.core.time_utils import utcnow
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import UserCounts, UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    """
    Business logic for User.

    Responsibilities:
      - profile edits (no email / role change through here)
      - admin role and account-status management
      - self-protection: an admin can't demote or disable themselves
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    # ----- Self profile -----

    def get_me(self, current_user: User) -> User:
        """Return the current authenticated user."""
        return current_user

    def update_me(
        self,
        session: Session,
        current_user: User,
        payload: UserUpdate,
    ) -> User:
        """
        Partial update for profile edits.
        """
        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(current_user, field, value)
        current_user.updated_at = utcnow()
        return self.repo.update(session, current_user)

    # ----- Admin operations -----

    def list_users(
        self,
        session: Session,
        skip: int,
        limit: int,
        role: str | None = None,
    ) -> list[User]:
        """List users with pagination (admin only)."""
        return self.repo.list(session, skip=skip, limit=limit, role=role)

    def get_user(self, session: Session, user_id: uuid.UUID) -> User | None:
        return self.repo.get_by_id(session, user_id)

    def _require_user(self, session: Session, user_id: uuid.UUID) -> User:
        user = self.repo.get_by_id(session, user_id)
        if not user:
            raise NotFoundError(detail="User not found")
        return user

    def update_role(
        self,
        session: Session,
        actor: User,
        user_id: uuid.UUID,
        role: str,
    ) -> User:
        """
        Change a user's role (admin only).

        Raises:
            UnauthorizedError: actor isn't admin, or is demoting themselves.
        """
        ensure_can_perform(actor.role, "update_user_role")
        ensure_not_self_demotion(actor.id, actor.role, user_id, new_role=role)

        user = self._require_user(session, user_id)
        previous = user.role
        user.role = role
        user.updated_at = utcnow()
        user = self.repo.update(session, user)
        logger.info("User %s role %s -> %s by %s", user.id, previous, role, actor.id)
        return user

    def update_status(
        self,
        session: Session,
        actor: User,
        user_id: uuid.UUID,
        status: str,
    ) -> User:
        """
        Enable / disable an account (admin only). Disabled users are
        rejected at authentication.
        """
        ensure_can_perform(actor.role, "update_user_status")
        ensure_not_self_demotion(actor.id, actor.role, user_id, new_status=status)

        user = self._require_user(session, user_id)
        previous = user.status
        user.status = status
        user.updated_at = utcnow()
        user = self.repo.update(session, user)
        logger.info("User %s status %s -> %s by %s", user.id, previous, status, actor.id)
        return user

    def counts_by_role(self, session: Session) -> UserCounts:
        counts = self.repo.count_by_role(session)
        return UserCounts(
            total=sum(counts.values()),
            admin=counts.get("admin", 0),
            staff=counts.get("staff", 0),
            customer=counts.get("customer", 0),
        )

    def admin_exists(self, session: Session) -> bool:
        return self.counts_by_role(session).admin > 0

    def bootstrap_admin(self, session: Session, email: str) -> User:
        """
        Promote the first admin. Only allowed while no admin exists.
        """
        if self.admin_exists(session):
            raise ValidationError(detail="An admin already exists")

        user = self.repo.get_by_email(session, email)
        if not user:
            raise NotFoundError(detail=f"No user with email {email}; sign in once first")

        user.role = ADMIN
        user.status = "active"
        user.updated_at = utcnow()
        user = self.repo.update(session, user)
        logger.info("Bootstrapped first admin %s", user.email)
        return user
