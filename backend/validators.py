"""
Request validation.

Every function is pure: it inspects the raw request data and returns
``(is_valid, errors)`` where ``errors`` is an ordered list of messages.
Field rules live on the pydantic request models in ``schemas``; this
module runs them, phrases their errors and adds the checks that span
several fields. Existence and uniqueness checks belong to the services.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from constants import (
    DESCRIPTION_MAX_LENGTH,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    PASSWORD_MIN_LENGTH,
    QUANTITY_MAX,
    TABLE_CAPACITY_MAX,
)
from schemas import (
    DishCreate,
    DishFilters,
    DishUpdate,
    ForgotPassword,
    OrderCreate,
    OrderFilters,
    OrderStatusUpdate,
    PasswordReset,
    TableCreate,
    TableFilters,
    TableUpdate,
    UserCreate,
    UserLogin,
)

ValidationResult = Tuple[bool, List[str]]

FIELD_MESSAGES = {
    "username": f"username must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
    "email": "email must be a valid email address",
    "password": f"password must be at least {PASSWORD_MIN_LENGTH} characters",
    "token": "token is required",
    "name": f"name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
    "description": f"description must be text of at most {DESCRIPTION_MAX_LENGTH} characters",
    "price": "price must be a positive amount below 100000000 with at most 2 decimal places",
    "available": "available must be a boolean (true/false)",
    "number": "number must be a positive integer",
    "capacity": f"capacity must be an integer between 1 and {TABLE_CAPACITY_MAX}",
    "min_capacity": "min_capacity must be a positive integer",
    "max_capacity": "max_capacity must be a positive integer",
    "table_id": "table_id must be a positive integer",
    "items": "items must be a non-empty list",
    "search": "search must be a string",
}

_LOCATIONS = ("body", "query", "path")


def _result(errors: List[str]) -> ValidationResult:
    return len(errors) == 0, errors


def _item_message(position: int, field: Optional[str]) -> str:
    if field == "dish_id":
        return f"item {position} must have a dish_id"
    if field == "quantity":
        return f"item {position} must have a quantity between 1 and {QUANTITY_MAX}"
    return f"item {position} must be an object with dish_id and quantity"


def _message(error: Dict[str, Any]) -> str:
    loc = list(error.get("loc", ()))
    if loc and loc[0] in _LOCATIONS:
        loc = loc[1:]

    if error.get("type") == "json_invalid":
        return "request body must be valid JSON"
    if not loc:
        if error.get("type") == "missing":
            return "request body is required"
        if error.get("type") in ("model_attributes_type", "dict_type", "model_type"):
            return "request body must be a JSON object"
        return str(error.get("msg"))

    field = str(loc[0])
    if field == "items" and len(loc) > 1 and isinstance(loc[1], int):
        return _item_message(loc[1] + 1, loc[2] if len(loc) > 2 else None)
    if error.get("type") == "missing":
        return f"{field} is required"
    if error.get("type") == "literal_error":
        return f"{field} must be one of: {error.get('ctx', {}).get('expected')}"
    return FIELD_MESSAGES.get(field, f"{field}: {error.get('msg')}")


def error_messages(errors: Iterable[Dict[str, Any]]) -> List[str]:
    """Phrase pydantic/FastAPI error dicts as one message per problem, in order."""
    messages = []
    for error in errors:
        message = _message(error)
        if message not in messages:
            messages.append(message)
    return messages


def _parse(model: Type[BaseModel], data: Any) -> Tuple[Optional[BaseModel], List[str]]:
    try:
        return model.model_validate(data), []
    except PydanticValidationError as e:
        return None, error_messages(e.errors())


def _check(model: Type[BaseModel], data: Any) -> ValidationResult:
    return _result(_parse(model, data)[1])


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime string, ``None`` when unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


# ========== Auth ==========

def validate_registration(data: Dict[str, Any]) -> ValidationResult:
    return _check(UserCreate, data)


def validate_login(data: Dict[str, Any]) -> ValidationResult:
    return _check(UserLogin, data)


def validate_forgot_password(data: Dict[str, Any]) -> ValidationResult:
    return _check(ForgotPassword, data)


def validate_reset_password(data: Dict[str, Any]) -> ValidationResult:
    return _check(PasswordReset, data)


# ========== Dishes ==========

def validate_dish_creation(data: Dict[str, Any]) -> ValidationResult:
    return _check(DishCreate, data)


def validate_dish_update(data: Dict[str, Any]) -> ValidationResult:
    return _check(DishUpdate, data)


def validate_dish_filters(filters: Dict[str, Any]) -> ValidationResult:
    return _check(DishFilters, filters)


# ========== Tables ==========

def validate_table_creation(data: Dict[str, Any]) -> ValidationResult:
    return _check(TableCreate, data)


def validate_table_update(data: Dict[str, Any]) -> ValidationResult:
    return _check(TableUpdate, data)


def validate_table_filters(filters: Dict[str, Any]) -> ValidationResult:
    parsed, errors = _parse(TableFilters, filters)
    if parsed is not None and parsed.min_capacity is not None and parsed.max_capacity is not None:
        if parsed.min_capacity > parsed.max_capacity:
            errors.append("min_capacity cannot be greater than max_capacity")
    return _result(errors)


# ========== Orders ==========

def validate_order_creation(data: Dict[str, Any]) -> ValidationResult:
    return _check(OrderCreate, data)


def validate_order_status(status: Any) -> ValidationResult:
    return _check(OrderStatusUpdate, {} if status is None else {"status": status})


def validate_order_filters(filters: Dict[str, Any]) -> ValidationResult:
    _, errors = _parse(OrderFilters, filters)

    start_raw = filters.get("start_date")
    end_raw = filters.get("end_date")
    start = parse_date(start_raw) if start_raw is not None else None
    end = parse_date(end_raw) if end_raw is not None else None
    if start_raw is not None and start is None:
        errors.append("start_date must be a valid date")
    if end_raw is not None and end is None:
        errors.append("end_date must be a valid date")
    if start is not None and end is not None:
        try:
            if start > end:
                errors.append("start_date cannot be later than end_date")
        except TypeError:
            errors.append("start_date and end_date must both include or both omit a timezone")

    return _result(errors)
