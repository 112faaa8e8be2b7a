import os

# Configure before any application module reads the environment.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-long-enough-for-hs256-signing"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("SENDGRID_API_KEY", None)

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import auth
import models
from constants import ROLE_ADMIN, ROLE_COOK, ROLE_WAITER
from database import Base, SessionLocal, engine
from main import app


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(role, name=None, password="secret123", email=None, is_active=True):
        name = name or f"{role}_user"
        user = models.User(
            name=name,
            email=email or f"{name}@example.com",
            password=auth.get_password_hash(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def headers_for():
    def _headers(user):
        return {"Authorization": f"Bearer {auth.create_user_token(user)}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture
def cook(make_user):
    return make_user(ROLE_COOK)


@pytest.fixture
def waiter(make_user):
    return make_user(ROLE_WAITER)


@pytest.fixture
def make_dish(db):
    def _make(name, price, available=True, description=None):
        dish = models.Dish(name=name, price=Decimal(price), available=available, description=description)
        db.add(dish)
        db.commit()
        db.refresh(dish)
        return dish
    return _make


@pytest.fixture
def dish_a(make_dish):
    return make_dish("Lasagna", "10.00", description="Baked pasta with ragu")


@pytest.fixture
def dish_b(make_dish):
    return make_dish("Minestrone", "8.99")


@pytest.fixture
def unavailable_dish(make_dish):
    return make_dish("Seasonal Truffle Pasta", "25.00", available=False)


@pytest.fixture
def make_table(db):
    def _make(number, capacity=4, status="available"):
        table = models.Table(number=number, capacity=capacity, status=status)
        db.add(table)
        db.commit()
        db.refresh(table)
        return table
    return _make


@pytest.fixture
def table5(make_table):
    return make_table(5, capacity=4)
