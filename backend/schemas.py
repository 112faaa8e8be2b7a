import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, field_validator

from constants import (
    DESCRIPTION_MAX_LENGTH,
    EMAIL_REGEX,
    INT_MAX,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    PASSWORD_MIN_LENGTH,
    PRICE_DECIMAL_PLACES,
    PRICE_MAX_DIGITS,
    QUANTITY_MAX,
    TABLE_CAPACITY_MAX,
    VALID_ORDER_STATUSES,
    VALID_ROLES,
    VALID_TABLE_STATUSES,
)

_email_re = re.compile(EMAIL_REGEX)


def _reject_bool(v):
    # lax int/decimal parsing would turn true into 1
    if isinstance(v, bool):
        raise ValueError("must be a number, not a boolean")
    return v


PositiveInt = Annotated[int, BeforeValidator(_reject_bool), Field(gt=0, le=INT_MAX)]
Quantity = Annotated[int, BeforeValidator(_reject_bool), Field(gt=0, le=QUANTITY_MAX)]
Capacity = Annotated[int, BeforeValidator(_reject_bool), Field(gt=0, le=TABLE_CAPACITY_MAX)]
Price = Annotated[
    Decimal,
    BeforeValidator(_reject_bool),
    Field(gt=0, max_digits=PRICE_MAX_DIGITS, decimal_places=PRICE_DECIMAL_PLACES, allow_inf_nan=False),
]

Role = Literal[VALID_ROLES]
TableStatus = Literal[VALID_TABLE_STATUSES]
OrderStatus = Literal[VALID_ORDER_STATUSES]
BoolString = Literal["true", "false"]


def _check_name(v: str) -> str:
    v = v.strip()
    if not NAME_MIN_LENGTH <= len(v) <= NAME_MAX_LENGTH:
        raise ValueError(f"must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")
    return v


# ========== Requests ==========

class UserCreate(BaseModel):
    username: str
    email: str
    password: str
    role: Optional[Role] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not _email_re.match(v):
            raise ValueError("must be a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"must be at least {PASSWORD_MIN_LENGTH} characters")
        return v


class UserLogin(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ForgotPassword(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not _email_re.match(v):
            raise ValueError("must be a valid email address")
        return v


class PasswordReset(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH)


class DishCreate(BaseModel):
    name: str
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    price: Price
    available: StrictBool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_name(v)


class DishUpdate(BaseModel):
    """Partial update: omitted fields are left alone, explicit nulls are rejected except for description."""
    name: str = None
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    price: Price = None
    available: StrictBool = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _check_name(v)


class TableCreate(BaseModel):
    number: PositiveInt
    capacity: Capacity
    status: Optional[TableStatus] = None


class TableUpdate(BaseModel):
    number: PositiveInt = None
    capacity: Capacity = None
    status: Optional[TableStatus] = None


class OrderItemCreate(BaseModel):
    dish_id: PositiveInt
    quantity: Quantity


class OrderCreate(BaseModel):
    table_id: PositiveInt
    items: List[OrderItemCreate] = Field(min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# ========== Query filters ==========

class DishFilters(BaseModel):
    available: Optional[BoolString] = None
    search: Optional[str] = None


class TableFilters(BaseModel):
    number: Optional[PositiveInt] = None
    status: Optional[TableStatus] = None
    disponible: Optional[BoolString] = None
    min_capacity: Optional[PositiveInt] = None
    max_capacity: Optional[PositiveInt] = None


class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    table_id: Optional[PositiveInt] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


# ========== Responses ==========


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


def _to_float(v):
    if isinstance(v, Decimal):
        return float(v)
    return v


class UserResponse(ORMModel):
    id: int
    username: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(id=user.id, username=user.name, email=user.email, role=user.role)


class ProfileResponse(UserResponse):
    is_active: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "ProfileResponse":
        return cls(
            id=user.id,
            username=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at,
        )


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class DishResponse(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    available: bool

    @field_validator("price", mode="before")
    @classmethod
    def price_as_float(cls, v):
        return _to_float(v)


class DishSummary(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float

    @field_validator("price", mode="before")
    @classmethod
    def price_as_float(cls, v):
        return _to_float(v)


class TableResponse(ORMModel):
    id: int
    number: int
    capacity: int
    status: str


class OrderUserResponse(ORMModel):
    id: int
    name: str
    email: str
    role: str


class OrderDetailResponse(ORMModel):
    id: int
    order_id: int
    dish_id: int
    quantity: int
    price: float
    subtotal: float
    dish: Optional[DishSummary] = None

    @field_validator("price", mode="before")
    @classmethod
    def price_as_float(cls, v):
        return _to_float(v)

    @classmethod
    def from_detail(cls, detail) -> "OrderDetailResponse":
        return cls(
            id=detail.id,
            order_id=detail.order_id,
            dish_id=detail.dish_id,
            quantity=detail.quantity,
            price=detail.price,
            subtotal=float(detail.price * detail.quantity),
            dish=DishSummary.model_validate(detail.dish) if detail.dish else None,
        )


class OrderResponse(ORMModel):
    id: int
    status: str
    total: float
    user_id: int
    table_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[OrderUserResponse] = None
    table: Optional[TableResponse] = None
    details: List[OrderDetailResponse]

    @field_validator("total", mode="before")
    @classmethod
    def total_as_float(cls, v):
        return _to_float(v)

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=order.id,
            status=order.status,
            total=order.total,
            user_id=order.user_id,
            table_id=order.table_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
            user=OrderUserResponse.model_validate(order.user) if order.user else None,
            table=TableResponse.model_validate(order.table) if order.table else None,
            details=[OrderDetailResponse.from_detail(d) for d in order.details],
        )
