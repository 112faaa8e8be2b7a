import itertools

import pytest

from constants import VALID_ORDER_STATUSES
from order_service import is_valid_status_transition

ALL_PAIRS = list(itertools.product(VALID_ORDER_STATUSES, VALID_ORDER_STATUSES))

COOK_ALLOWED = {("pending", "in_progress"), ("in_progress", "completed")}


@pytest.mark.parametrize("current,new", ALL_PAIRS)
def test_cook_only_moves_orders_forward_through_the_kitchen(current, new):
    assert is_valid_status_transition(current, new, "cook") is ((current, new) in COOK_ALLOWED)


@pytest.mark.parametrize("current,new", ALL_PAIRS)
def test_waiter_can_cancel_or_start_pending_orders(current, new):
    expected = new == "cancelled" or (current, new) == ("pending", "in_progress")
    assert is_valid_status_transition(current, new, "waiter") is expected


@pytest.mark.parametrize("current,new", ALL_PAIRS)
def test_admin_can_make_any_transition(current, new):
    assert is_valid_status_transition(current, new, "admin") is True


def test_unknown_role_is_never_allowed():
    assert is_valid_status_transition("pending", "in_progress", "manager") is False


def test_waiter_cannot_complete_orders():
    assert is_valid_status_transition("in_progress", "completed", "waiter") is False
