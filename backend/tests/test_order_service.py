from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

import catalog_service
import models
import order_service
from errors import NotFoundError, PermissionDeniedError, ValidationError


def _place(db, waiter, table, *lines):
    items = [{"dish_id": dish.id, "quantity": qty} for dish, qty in lines]
    return order_service.create_order(db, table.id, items, waiter)


def test_compute_total_rounds_to_cents():
    lines = [{"price": Decimal("10.00"), "quantity": 2}, {"price": Decimal("8.99"), "quantity": 1}]
    assert order_service.compute_total(lines) == Decimal("28.99")
    assert order_service.compute_total([]) == Decimal("0.00")


def test_create_order_snapshots_prices_and_occupies_table(db, waiter, table5, dish_a, dish_b):
    order = _place(db, waiter, table5, (dish_a, 2), (dish_b, 1))

    assert order.status == "pending"
    assert order.total == Decimal("28.99")
    assert order.user_id == waiter.id
    assert order.table.status == "occupied"
    assert [(d.dish_id, d.quantity, d.price) for d in order.details] == [
        (dish_a.id, 2, Decimal("10.00")),
        (dish_b.id, 1, Decimal("8.99")),
    ]


def test_order_total_equals_sum_of_lines(db, waiter, table5, dish_a, dish_b):
    order = _place(db, waiter, table5, (dish_a, 3), (dish_b, 4))
    assert order.total == sum(d.price * d.quantity for d in order.details)


def test_create_order_rejects_unavailable_dish_and_leaves_nothing_behind(
        db, waiter, table5, dish_a, unavailable_dish):
    with pytest.raises(ValidationError) as exc:
        _place(db, waiter, table5, (dish_a, 1), (unavailable_dish, 1))

    assert unavailable_dish.name in exc.value.message
    assert db.query(models.Order).count() == 0
    assert db.query(models.OrderDetail).count() == 0
    assert db.get(models.Table, table5.id).status == "available"


def test_create_order_reports_first_failing_item(db, waiter, table5, unavailable_dish):
    items = [{"dish_id": 9999, "quantity": 1}, {"dish_id": unavailable_dish.id, "quantity": 1}]
    with pytest.raises(NotFoundError):
        order_service.create_order(db, table5.id, items, waiter)


def test_create_order_requires_existing_available_table(db, waiter, make_table, dish_a):
    items = [{"dish_id": dish_a.id, "quantity": 1}]
    with pytest.raises(NotFoundError):
        order_service.create_order(db, 12345, items, waiter)

    reserved = make_table(7, status="reserved")
    with pytest.raises(ValidationError) as exc:
        order_service.create_order(db, reserved.id, items, waiter)
    assert "not available" in exc.value.message


def test_price_change_does_not_touch_existing_orders(db, waiter, table5, dish_a):
    order = _place(db, waiter, table5, (dish_a, 2))

    catalog_service.update_dish(db, dish_a.id, {"price": 12.5})

    reloaded = order_service.get_order(db, order.id)
    assert reloaded.details[0].price == Decimal("10.00")
    assert reloaded.total == Decimal("20.00")
    assert reloaded.details[0].dish.price == Decimal("12.50")


def test_kitchen_flow_frees_table_on_completion(db, waiter, table5, dish_a):
    order = _place(db, waiter, table5, (dish_a, 1))

    order = order_service.update_order_status(db, order.id, "in_progress", "cook")
    assert order.status == "in_progress"
    assert order.table.status == "occupied"

    order = order_service.update_order_status(db, order.id, "completed", "cook")
    assert order.status == "completed"
    assert order.table.status == "available"


def test_waiter_cancel_frees_table(db, waiter, table5, dish_a):
    order = _place(db, waiter, table5, (dish_a, 1))
    order = order_service.update_order_status(db, order.id, "cancelled", "waiter")
    assert order.status == "cancelled"
    assert order.table.status == "available"


def test_illegal_transition_is_denied_and_changes_nothing(db, waiter, table5, dish_a):
    order = _place(db, waiter, table5, (dish_a, 1))
    order_service.update_order_status(db, order.id, "in_progress", "cook")
    order_service.update_order_status(db, order.id, "completed", "cook")

    with pytest.raises(PermissionDeniedError) as exc:
        order_service.update_order_status(db, order.id, "in_progress", "cook")

    assert "completed" in exc.value.message
    assert "in_progress" in exc.value.message
    assert "cook" in exc.value.message
    assert order_service.get_order(db, order.id).status == "completed"


def test_update_status_of_missing_order(db):
    with pytest.raises(NotFoundError):
        order_service.update_order_status(db, 999, "cancelled", "admin")


def test_closing_one_order_keeps_table_held_by_another(db, waiter, table5, dish_a, dish_b):
    first = _place(db, waiter, table5, (dish_a, 1))
    # admin override puts the table back on the floor while the first order is open
    catalog_service.update_table(db, table5.id, {"status": "available"})
    second = _place(db, waiter, table5, (dish_b, 1))

    order_service.update_order_status(db, first.id, "cancelled", "waiter")
    assert db.get(models.Table, table5.id).status == "occupied"

    order_service.update_order_status(db, second.id, "cancelled", "waiter")
    assert db.get(models.Table, table5.id).status == "available"


def test_admin_deletes_open_order_and_frees_table(db, waiter, table5, dish_a, dish_b):
    order = _place(db, waiter, table5, (dish_a, 1), (dish_b, 2))

    order_service.delete_order(db, order.id, "admin")

    assert db.query(models.Order).count() == 0
    assert db.query(models.OrderDetail).count() == 0
    assert db.get(models.Table, table5.id).status == "available"


def test_completed_orders_cannot_be_deleted(db, waiter, table5, dish_a):
    order = _place(db, waiter, table5, (dish_a, 1))
    order_service.update_order_status(db, order.id, "completed", "admin")

    with pytest.raises(ValidationError):
        order_service.delete_order(db, order.id, "admin")

    assert db.query(models.Order).count() == 1
    assert db.query(models.OrderDetail).count() == 1


@pytest.mark.parametrize("role", ["waiter", "cook"])
def test_only_admin_deletes_orders(db, waiter, table5, dish_a, role):
    order = _place(db, waiter, table5, (dish_a, 1))
    with pytest.raises(PermissionDeniedError):
        order_service.delete_order(db, order.id, role)
    assert db.query(models.Order).count() == 1


def test_delete_missing_order(db):
    with pytest.raises(NotFoundError):
        order_service.delete_order(db, 42, "admin")


@pytest.fixture
def mixed_orders(db, waiter, make_table, dish_a):
    """One order in each status, each on its own table."""
    orders = {}
    for number, status in enumerate(["pending", "in_progress", "completed", "cancelled"], start=1):
        table = make_table(number)
        order = _place(db, waiter, table, (dish_a, 1))
        if status != "pending":
            order = order_service.update_order_status(db, order.id, status, "admin")
        orders[status] = order
    return orders


def test_cook_sees_only_kitchen_orders(db, mixed_orders):
    statuses = {o.status for o in order_service.list_orders(db, {}, "cook")}
    assert statuses == {"pending", "in_progress"}


def test_cook_status_filter_is_intersected(db, mixed_orders):
    assert order_service.list_orders(db, {"status": "completed"}, "cook") == []
    only_pending = order_service.list_orders(db, {"status": "pending"}, "cook")
    assert [o.status for o in only_pending] == ["pending"]


def test_waiter_and_admin_see_all_orders(db, mixed_orders):
    assert len(order_service.list_orders(db, {}, "waiter")) == 4
    assert len(order_service.list_orders(db, {"status": "cancelled"}, "admin")) == 1


def test_list_orders_newest_first(db, mixed_orders):
    ids = [o.id for o in order_service.list_orders(db, {}, "admin")]
    assert ids == sorted(ids, reverse=True)


def test_list_orders_by_table_and_date(db, mixed_orders):
    table_id = mixed_orders["completed"].table_id
    by_table = order_service.list_orders(db, {"table_id": str(table_id)}, "admin")
    assert [o.id for o in by_table] == [mixed_orders["completed"].id]

    wide = {"start_date": "2000-01-01", "end_date": "2999-12-31"}
    assert len(order_service.list_orders(db, wide, "admin")) == 4
    assert order_service.list_orders(db, {"start_date": "2999-01-01"}, "admin") == []


def test_cook_cannot_read_closed_order(db, mixed_orders):
    with pytest.raises(PermissionDeniedError):
        order_service.get_order(db, mixed_orders["completed"].id, "cook")
    assert order_service.get_order(db, mixed_orders["pending"].id, "cook").status == "pending"


def test_get_missing_order(db):
    with pytest.raises(NotFoundError):
        order_service.get_order(db, 404, "admin")


def test_list_order_details(db, waiter, table5, dish_a, dish_b):
    order = _place(db, waiter, table5, (dish_a, 2), (dish_b, 1))
    details = order_service.list_order_details(db, order.id)
    assert [d.dish.name for d in details] == ["Lasagna", "Minestrone"]

    with pytest.raises(NotFoundError):
        order_service.list_order_details(db, 999)


@pytest.mark.parametrize("reopened", ["pending", "in_progress"])
def test_admin_reopening_closed_order_occupies_table(db, waiter, table5, dish_a, reopened):
    order = _place(db, waiter, table5, (dish_a, 1))
    order = order_service.update_order_status(db, order.id, "cancelled", "admin")
    assert order.table.status == "available"

    order = order_service.update_order_status(db, order.id, reopened, "admin")
    assert order.status == reopened
    assert order.table.status == "occupied"


@pytest.fixture
def failing_commit(db, monkeypatch):
    """Make the next commit on the test session fail like a dropped connection would."""
    def _arm():
        def _commit():
            raise SQLAlchemyError("connection lost")
        monkeypatch.setattr(db, "commit", _commit)
    return _arm


def test_failed_commit_leaves_no_partial_order(db, waiter, table5, dish_a, dish_b, failing_commit):
    failing_commit()
    with pytest.raises(SQLAlchemyError):
        _place(db, waiter, table5, (dish_a, 2), (dish_b, 1))

    assert db.query(models.Order).count() == 0
    assert db.query(models.OrderDetail).count() == 0
    assert db.get(models.Table, table5.id).status == "available"


def test_failed_commit_keeps_previous_status_and_table(db, waiter, table5, dish_a, failing_commit):
    order = _place(db, waiter, table5, (dish_a, 1))
    order_id = order.id

    failing_commit()
    with pytest.raises(SQLAlchemyError):
        order_service.update_order_status(db, order_id, "completed", "admin")

    assert db.get(models.Order, order_id).status == "pending"
    assert db.get(models.Table, table5.id).status == "occupied"


def test_failed_commit_keeps_deleted_order(db, waiter, table5, dish_a, dish_b, failing_commit):
    order = _place(db, waiter, table5, (dish_a, 1), (dish_b, 1))
    order_id = order.id

    failing_commit()
    with pytest.raises(SQLAlchemyError):
        order_service.delete_order(db, order_id, "admin")

    assert db.query(models.Order).count() == 1
    assert db.query(models.OrderDetail).filter(models.OrderDetail.order_id == order_id).count() == 2
    assert db.get(models.Table, table5.id).status == "occupied"
