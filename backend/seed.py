"""
Demo data: one user per role, a small menu and ten tables.
Safe to run repeatedly; existing rows are left alone.
"""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

import auth
import models
from constants import ROLE_ADMIN, ROLE_COOK, ROLE_WAITER
from database import SessionLocal, init_db

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("admin", "admin@restaurant.local", "admin123", ROLE_ADMIN),
    ("cook", "cook@restaurant.local", "cook123", ROLE_COOK),
    ("waiter", "waiter@restaurant.local", "waiter123", ROLE_WAITER),
]

DEMO_DISHES = [
    ("Pizza Margherita", "Tomato sauce, fresh mozzarella and basil", "12.50"),
    ("Pasta Carbonara", "Egg, pancetta, pecorino and black pepper", "15.00"),
    ("Risotto ai Funghi", "Mushrooms, white wine and parmesan", "18.00"),
    ("Caesar Salad", "Romaine, croutons, parmesan and Caesar dressing", "10.00"),
    ("Tiramisu", "Ladyfingers, coffee, mascarpone and cocoa", "7.25"),
    ("Espresso", None, "2.00"),
    ("Sparkling Water", None, "2.50"),
]

DEMO_TABLE_CAPACITIES = [2, 2, 4, 4, 4, 4, 6, 6, 8, 10]


def seed_users(db: Session) -> int:
    created = 0
    for name, email, password, role in DEMO_USERS:
        if db.query(models.User).filter(models.User.name == name).first():
            continue
        db.add(models.User(name=name, email=email, password=auth.get_password_hash(password), role=role))
        created += 1
    return created


def seed_dishes(db: Session) -> int:
    if db.query(models.Dish).count() > 0:
        return 0
    for name, description, price in DEMO_DISHES:
        db.add(models.Dish(name=name, description=description, price=Decimal(price), available=True))
    return len(DEMO_DISHES)


def seed_tables(db: Session) -> int:
    if db.query(models.Table).count() > 0:
        return 0
    for number, capacity in enumerate(DEMO_TABLE_CAPACITIES, start=1):
        db.add(models.Table(number=number, capacity=capacity))
    return len(DEMO_TABLE_CAPACITIES)


def seed_all(db: Session) -> dict:
    try:
        counts = {
            "users": seed_users(db),
            "dishes": seed_dishes(db),
            "tables": seed_tables(db),
        }
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Seed complete: {counts}")
    return counts


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    init_db()
    session = SessionLocal()
    try:
        seed_all(session)
    finally:
        session.close()
