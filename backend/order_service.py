"""
Order lifecycle: creation, status transitions, deletion and role-aware reads.

Every write touches both the order and its table and is committed once;
any failure rolls the whole session back before the error propagates, so
table occupancy always mirrors the order lifecycle.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

import models
from constants import (
    ACTIVE_ORDER_STATUSES,
    CLOSED_ORDER_STATUSES,
    KITCHEN_VISIBLE_STATUSES,
    ORDER_COMPLETED,
    ORDER_PENDING,
    ORDER_STATUS_TRANSITIONS,
    ROLE_ADMIN,
    ROLE_COOK,
    TABLE_AVAILABLE,
    TABLE_OCCUPIED,
)
from errors import NotFoundError, PermissionDeniedError, ValidationError
from validators import parse_date

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def is_valid_status_transition(current_status: str, new_status: str, role: str) -> bool:
    rule = ORDER_STATUS_TRANSITIONS.get(role)
    if rule is None:
        return False
    if callable(rule):
        return bool(rule(current_status, new_status))
    return new_status in rule.get(current_status, ())


def compute_total(lines: Iterable[Dict[str, Any]]) -> Decimal:
    total = sum((line["price"] * line["quantity"] for line in lines), Decimal("0"))
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def _order_query(db: Session):
    return db.query(models.Order).options(
        joinedload(models.Order.user),
        joinedload(models.Order.table),
        selectinload(models.Order.details).joinedload(models.OrderDetail.dish),
    )


def _load_order(db: Session, order_id: int) -> models.Order:
    order = _order_query(db).filter(models.Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def _release_table(db: Session, order: models.Order) -> None:
    """Free the order's table unless another active order still holds it."""
    table = db.query(models.Table).filter(models.Table.id == order.table_id).first()
    if not table:
        return
    other_active = db.query(models.Order.id).filter(
        models.Order.table_id == table.id,
        models.Order.id != order.id,
        models.Order.status.in_(ACTIVE_ORDER_STATUSES),
    ).first()
    if other_active is None:
        table.status = TABLE_AVAILABLE


def create_order(db: Session, table_id: int, items: List[Dict[str, Any]], user: models.User) -> models.Order:
    try:
        table = db.query(models.Table).filter(models.Table.id == int(table_id)).first()
        if not table:
            raise NotFoundError("Table not found")
        if table.status != TABLE_AVAILABLE:
            raise ValidationError(f"Table {table.number} is not available. Current status: {table.status}")

        lines = []
        for item in items:
            dish_id = int(item["dish_id"])
            quantity = int(item["quantity"])
            dish = db.query(models.Dish).filter(models.Dish.id == dish_id).first()
            if not dish:
                raise NotFoundError(f"Dish with id {dish_id} not found")
            if not dish.available:
                raise ValidationError(f'Dish "{dish.name}" is not available')
            lines.append({"dish_id": dish.id, "quantity": quantity, "price": Decimal(dish.price)})

        order = models.Order(
            user_id=user.id,
            table_id=table.id,
            status=ORDER_PENDING,
            total=compute_total(lines),
        )
        db.add(order)
        db.flush()

        for line in lines:
            db.add(models.OrderDetail(order_id=order.id, **line))

        table.status = TABLE_OCCUPIED
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Order {order.id} created by user {user.id} for table {table.number} (total {order.total})")
    db.expire_all()
    return _load_order(db, order.id)


def update_order_status(db: Session, order_id: int, new_status: str, role: str) -> models.Order:
    try:
        order = db.query(models.Order).filter(models.Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")

        current_status = order.status
        if not is_valid_status_transition(current_status, new_status, role):
            raise PermissionDeniedError(
                f'Cannot change status from "{current_status}" to "{new_status}": '
                f"transition not allowed for role {role}"
            )

        order.status = new_status
        if new_status in CLOSED_ORDER_STATUSES:
            _release_table(db, order)
        elif current_status in CLOSED_ORDER_STATUSES and order.table:
            # reopened by an admin: the party is back at the table
            order.table.status = TABLE_OCCUPIED
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Order {order_id}: {current_status} -> {new_status} by {role}")
    db.expire_all()
    return _load_order(db, order_id)


def delete_order(db: Session, order_id: int, role: str) -> None:
    if role != ROLE_ADMIN:
        raise PermissionDeniedError("Only administrators can delete orders")

    try:
        order = db.query(models.Order).filter(models.Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")
        if order.status == ORDER_COMPLETED:
            raise ValidationError("Completed orders cannot be deleted")

        table = order.table
        if table and table.status == TABLE_OCCUPIED and order.status in ACTIVE_ORDER_STATUSES:
            _release_table(db, order)

        # details go with the order (delete-orphan cascade)
        db.delete(order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Order {order_id} deleted")


def get_order(db: Session, order_id: int, role: Optional[str] = None) -> models.Order:
    order = _load_order(db, order_id)
    if role == ROLE_COOK and order.status not in KITCHEN_VISIBLE_STATUSES:
        raise PermissionDeniedError("You do not have permission to view this order")
    return order


def list_orders(db: Session, filters: Dict[str, Any], role: str) -> List[models.Order]:
    query = _order_query(db)

    status = filters.get("status")
    if role == ROLE_COOK:
        if status and status not in KITCHEN_VISIBLE_STATUSES:
            return []
        query = query.filter(models.Order.status.in_([status] if status else KITCHEN_VISIBLE_STATUSES))
    elif status:
        query = query.filter(models.Order.status == status)

    if filters.get("table_id") is not None:
        query = query.filter(models.Order.table_id == int(filters["table_id"]))

    start = parse_date(filters.get("start_date"))
    end = parse_date(filters.get("end_date"))
    if start is not None:
        query = query.filter(models.Order.created_at >= start)
    if end is not None:
        query = query.filter(models.Order.created_at <= end)

    return query.order_by(models.Order.created_at.desc(), models.Order.id.desc()).all()


def list_order_details(db: Session, order_id: int) -> List[models.OrderDetail]:
    if not db.query(models.Order.id).filter(models.Order.id == order_id).first():
        raise NotFoundError("Order not found")
    return (
        db.query(models.OrderDetail)
        .options(joinedload(models.OrderDetail.dish))
        .filter(models.OrderDetail.order_id == order_id)
        .order_by(models.OrderDetail.id)
        .all()
    )
