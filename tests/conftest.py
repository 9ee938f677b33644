from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app as fastapi_app
from app.database import Base
from app.models import MenuItem
import app.auth

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_bakery.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def menu(db):
    items = [
        MenuItem(id="croissant", name="Croissant", price=Decimal("3.50"),
                 image_url="https://example.com/croissant.jpg", category="pastry"),
        MenuItem(id="baguette", name="Baguette", price=Decimal("2.25"), category="bread"),
        MenuItem(id="eclair", name="Eclair", price=Decimal("4.00"),
                 category="pastry", available=False),
    ]
    db.add_all(items)
    db.commit()
    return items


@pytest.fixture
def client(monkeypatch):
    # Point every module that opens sessions at the test database
    monkeypatch.setattr("app.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("app.main.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("app.auth.SessionLocal", TestingSessionLocal)

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def as_customer():
    claims = {"sub": "user-1", "email": "a@b.com"}
    fastapi_app.dependency_overrides[app.auth.verify_token] = lambda: claims
    fastapi_app.dependency_overrides[app.auth.optional_user] = lambda: claims
    return claims


@pytest.fixture
def as_manager():
    claims = {"sub": "manager-1", "email": "boss@bakery.test"}
    fastapi_app.dependency_overrides[app.auth.require_manager] = lambda: claims
    return claims
