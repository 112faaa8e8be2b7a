"""
Shared vocabulary: roles, statuses, validation limits and the per-role
order status transition rules.
"""

ROLE_ADMIN = "admin"
ROLE_COOK = "cook"
ROLE_WAITER = "waiter"
VALID_ROLES = (ROLE_ADMIN, ROLE_COOK, ROLE_WAITER)
DEFAULT_ROLE = ROLE_WAITER

ORDER_PENDING = "pending"
ORDER_IN_PROGRESS = "in_progress"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"
VALID_ORDER_STATUSES = (ORDER_PENDING, ORDER_IN_PROGRESS, ORDER_COMPLETED, ORDER_CANCELLED)
ACTIVE_ORDER_STATUSES = (ORDER_PENDING, ORDER_IN_PROGRESS)
CLOSED_ORDER_STATUSES = (ORDER_COMPLETED, ORDER_CANCELLED)

# Kitchen staff only ever see orders they still have to cook.
KITCHEN_VISIBLE_STATUSES = ACTIVE_ORDER_STATUSES

TABLE_AVAILABLE = "available"
TABLE_OCCUPIED = "occupied"
TABLE_RESERVED = "reserved"
VALID_TABLE_STATUSES = (TABLE_AVAILABLE, TABLE_OCCUPIED, TABLE_RESERVED)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 6
EMAIL_REGEX = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

# Numeric(10, 2): at most 99999999.99
PRICE_MAX_DIGITS = 10
PRICE_DECIMAL_PLACES = 2
QUANTITY_MAX = 100
TABLE_CAPACITY_MAX = 100
# upper bound of a 32-bit INTEGER column
INT_MAX = 2_147_483_647

# Each role maps either to an explicit table {current: allowed next statuses}
# or to a predicate (current, new) -> bool.
ORDER_STATUS_TRANSITIONS = {
    ROLE_COOK: {
        ORDER_PENDING: frozenset({ORDER_IN_PROGRESS}),
        ORDER_IN_PROGRESS: frozenset({ORDER_COMPLETED}),
        ORDER_COMPLETED: frozenset(),
        ORDER_CANCELLED: frozenset(),
    },
    ROLE_WAITER: lambda current, new: (
        new == ORDER_CANCELLED
        or (current == ORDER_PENDING and new == ORDER_IN_PROGRESS)
    ),
    ROLE_ADMIN: lambda current, new: True,
}
