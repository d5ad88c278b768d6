# Shared fixtures
#
# - in-memory SQLite per test (StaticPool so every session sees the same DB)
# - user / product factories
# - TestClient wired to the test engine
# - Supabase-style access tokens signed with the test secret

import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-secret-do-not-use-in-prod")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import get_settings
from app.core.realtime import ChangeFeed
from app.database import get_session, get_session_factory
from app.main import app
from app.models.product import Product
from app.models.user import User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def make_user(session):
    def factory(role: str = "customer", status: str = "active", **fields) -> User:
        uid = fields.pop("id", None) or uuid.uuid4()
        user = User(
            id=uid,
            email=fields.pop("email", f"{role}-{uid.hex[:8]}@example.com"),
            name=fields.pop("name", f"{role.title()} {uid.hex[:4]}"),
            role=role,
            status=status,
            **fields,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return factory


@pytest.fixture
def make_product(session):
    def factory(**fields) -> Product:
        data = {
            "name": "Paracetamol 650mg",
            "category": "Medicines",
            "price": 45.0,
            "stock": 100,
            "gst_rate": 12.0,
            "pack": "15x10",
        }
        data.update(fields)
        product = Product(**data)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return factory


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Asha Admin")


@pytest.fixture
def staff(make_user):
    return make_user("staff", name="Sam Staff")


@pytest.fixture
def customer(make_user):
    return make_user("customer", name="City Medicals", address="12 MG Road, Coimbatore")


def make_token(user_id: uuid.UUID, email: str, expires_in: int = 3600) -> str:
    """
    Mint an access token shaped like Supabase's (sub + email, HS256).
    """
    settings = get_settings()
    claims = {
        "sub": str(user_id),
        "email": email,
        "aud": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm=settings.SUPABASE_JWT_ALG)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user.id, user.email)}"}


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: (lambda: Session(engine))
    # No context manager: the lifespan would create tables on the app engine
    yield TestClient(app)
    app.dependency_overrides.clear()
