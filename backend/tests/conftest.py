"""Pytest configuration and fixtures"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REVOCATION_BACKEND"] = "database"

from datetime import date
from typing import Callable, Generator

import bcrypt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from assetguard.database import Base, get_db
from assetguard.main import app
from assetguard.models.asset import Asset
from assetguard.models.enums import AssetState, Role
from assetguard.models.user import User
from assetguard.utils.jwt_utils import Principal, issue_access_token

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory for users; low bcrypt cost keeps the suite fast"""
    password_hash = bcrypt.hashpw(TEST_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()

    def _make(username: str, role: Role = Role.STAFF, location_id: int = 1, **fields) -> User:
        user = User(
            username=username,
            password_hash=password_hash,
            role=role.value,
            location_id=location_id,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin.hn", role=Role.ADMIN, location_id=1)


@pytest.fixture
def staff(make_user) -> User:
    return make_user("staff.hn", role=Role.STAFF, location_id=1)


@pytest.fixture
def other_staff(make_user) -> User:
    return make_user("staff2.hn", role=Role.STAFF, location_id=1)


@pytest.fixture
def remote_admin(make_user) -> User:
    """Admin of a different location"""
    return make_user("admin.hcm", role=Role.ADMIN, location_id=2)


@pytest.fixture
def make_asset(db: Session) -> Callable[..., Asset]:
    counter = {"n": 0}

    def _make(location_id: int = 1, state: AssetState = AssetState.AVAILABLE) -> Asset:
        counter["n"] += 1
        asset = Asset(
            code=f"LA{counter['n']:06d}",
            name=f"Laptop {counter['n']}",
            category_id=1,
            location_id=location_id,
            state=state.value,
            installed_date=date(2024, 1, 15),
        )
        db.add(asset)
        db.commit()
        db.refresh(asset)
        return asset

    return _make


@pytest.fixture
def asset(make_asset) -> Asset:
    return make_asset()


def principal_for(user: User) -> Principal:
    return Principal(
        subject_id=user.id,
        role=Role(user.role),
        session_id="test-session",
        location_id=user.location_id,
    )


def bearer(user: User, **kwargs) -> dict:
    """Authorization header carrying a fresh access token for ``user``"""
    return {"Authorization": f"Bearer {issue_access_token(principal_for(user), **kwargs)}"}


@pytest.fixture
def principal_of() -> Callable[[User], Principal]:
    return principal_for


@pytest.fixture
def auth_headers() -> Callable[..., dict]:
    return bearer


@pytest.fixture
def session_factory() -> sessionmaker:
    """Opens extra sessions on the test database, e.g. to race two writers"""
    return TestingSessionLocal


@pytest.fixture
def user_password() -> str:
    """Plain-text password of every user made by ``make_user``"""
    return TEST_PASSWORD
