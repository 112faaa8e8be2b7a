"""
Dish catalog and table management.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

import models
from constants import TABLE_AVAILABLE
from errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


# ========== Dishes ==========

def list_dishes(db: Session, filters: Dict[str, Any]) -> List[models.Dish]:
    query = db.query(models.Dish)

    available = filters.get("available")
    if available is not None:
        query = query.filter(models.Dish.available == (available == "true"))

    search = filters.get("search")
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Dish.name.ilike(pattern), models.Dish.description.ilike(pattern)))

    return query.order_by(models.Dish.id.desc()).all()


def get_dish(db: Session, dish_id: int) -> models.Dish:
    dish = db.query(models.Dish).filter(models.Dish.id == dish_id).first()
    if not dish:
        raise NotFoundError("Dish not found")
    return dish


def create_dish(db: Session, data: Dict[str, Any]) -> models.Dish:
    dish = models.Dish(
        name=data["name"].strip(),
        description=data.get("description") or None,
        price=Decimal(str(data["price"])),
        available=data.get("available", True),
    )
    db.add(dish)
    _commit(db)
    db.refresh(dish)
    logger.info(f"Dish {dish.id} created: {dish.name} ({dish.price})")
    return dish


def update_dish(db: Session, dish_id: int, data: Dict[str, Any]) -> models.Dish:
    dish = get_dish(db, dish_id)

    if "name" in data:
        dish.name = data["name"].strip()
    if "description" in data:
        dish.description = data["description"] or None
    if "price" in data:
        dish.price = Decimal(str(data["price"]))
    if "available" in data:
        dish.available = data["available"]

    _commit(db)
    db.refresh(dish)
    return dish


def delete_dish(db: Session, dish_id: int) -> None:
    dish = get_dish(db, dish_id)
    referenced = db.query(models.OrderDetail.id).filter(models.OrderDetail.dish_id == dish.id).first()
    if referenced:
        raise ConflictError("Dish is referenced by existing orders; mark it unavailable instead")
    db.delete(dish)
    _commit(db)
    logger.info(f"Dish {dish_id} deleted")


# ========== Tables ==========

def list_tables(db: Session, filters: Dict[str, Any]) -> List[models.Table]:
    query = db.query(models.Table)

    if filters.get("number") is not None:
        query = query.filter(models.Table.number == int(filters["number"]))

    if filters.get("status") is not None:
        query = query.filter(models.Table.status == filters["status"])
    elif filters.get("disponible") is not None:
        if filters["disponible"] == "true":
            query = query.filter(models.Table.status == TABLE_AVAILABLE)
        else:
            query = query.filter(models.Table.status != TABLE_AVAILABLE)

    if filters.get("min_capacity") is not None:
        query = query.filter(models.Table.capacity >= int(filters["min_capacity"]))
    if filters.get("max_capacity") is not None:
        query = query.filter(models.Table.capacity <= int(filters["max_capacity"]))

    return query.order_by(models.Table.number).all()


def get_table(db: Session, table_id: int) -> models.Table:
    table = db.query(models.Table).filter(models.Table.id == table_id).first()
    if not table:
        raise NotFoundError("Table not found")
    return table


def _ensure_number_free(db: Session, number: int, exclude_id: int = None) -> None:
    query = db.query(models.Table.id).filter(models.Table.number == number)
    if exclude_id is not None:
        query = query.filter(models.Table.id != exclude_id)
    if query.first():
        raise ConflictError(f"Table number {number} already exists")


def create_table(db: Session, data: Dict[str, Any]) -> models.Table:
    number = int(data["number"])
    _ensure_number_free(db, number)

    table = models.Table(
        number=number,
        capacity=int(data["capacity"]),
        status=data.get("status") or TABLE_AVAILABLE,
    )
    db.add(table)
    _commit(db)
    db.refresh(table)
    logger.info(f"Table {table.number} created (capacity {table.capacity})")
    return table


def update_table(db: Session, table_id: int, data: Dict[str, Any]) -> models.Table:
    table = get_table(db, table_id)

    if "number" in data:
        number = int(data["number"])
        _ensure_number_free(db, number, exclude_id=table.id)
        table.number = number
    if "capacity" in data:
        table.capacity = int(data["capacity"])
    if data.get("status") is not None:
        if data["status"] != table.status:
            logger.info(f"Table {table.number} status overridden: {table.status} -> {data['status']}")
        table.status = data["status"]

    _commit(db)
    db.refresh(table)
    return table


def delete_table(db: Session, table_id: int) -> None:
    table = get_table(db, table_id)
    if db.query(models.Order.id).filter(models.Order.table_id == table.id).first():
        raise ConflictError("Table has orders and cannot be deleted")
    db.delete(table)
    _commit(db)
    logger.info(f"Table {table_id} deleted")
