"""Shared fixtures: in-memory SQLite, seeded roles, API client, fake clock."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sanctuary.models  # noqa: F401
from sanctuary.core.rate_limiter import FixedWindowRateLimiter
from sanctuary.core.security import create_access_token, hash_password
from sanctuary.db.base import Base
from sanctuary.db.seeds.seed_roles import seed_roles
from sanctuary.db.session import get_db
from sanctuary.main import app
from sanctuary.models.role import Role, UserRole
from sanctuary.models.user import User


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    seed_roles(db)
    return db


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(email=None, account_role="member", roles=(), is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@sanctuary.local",
            hashed_password=hash_password("password123"),
            full_name=f"User {counter['n']}",
            account_role=account_role,
            is_active=is_active,
        )
        db.add(user)
        db.flush()
        for role_name in roles:
            role = db.query(Role).filter(Role.name == role_name).one()
            db.add(UserRole(user_id=user.id, role_id=role.id, is_active=True))
        db.commit()
        db.refresh(user)
        return user

    return _make


def auth_headers(user) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(window_ms=60_000, max_per_window=3, clock=clock, name="test")


@pytest.fixture
def client(db, limiter):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    previous = app.state.rate_limiter
    app.state.rate_limiter = limiter
    try:
        yield TestClient(app)
    finally:
        app.state.rate_limiter = previous
        app.dependency_overrides.clear()
