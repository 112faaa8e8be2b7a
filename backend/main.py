from fastapi import FastAPI, Depends, HTTPException, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional, Type
import logging
import traceback
import uvicorn

import auth
import auth_service
import catalog_service
import config
import models
import order_service
import validators
from constants import ROLE_ADMIN, ROLE_COOK, ROLE_WAITER
from database import check_database, get_db, init_db, wait_for_db
from errors import AppError, ValidationError
from redis_client import RateLimiter, redis_client
from pydantic import BaseModel
from schemas import (
    AuthResponse,
    DishCreate,
    DishFilters,
    DishResponse,
    DishUpdate,
    ForgotPassword,
    OrderCreate,
    OrderDetailResponse,
    OrderFilters,
    OrderResponse,
    OrderStatusUpdate,
    PasswordReset,
    ProfileResponse,
    TableCreate,
    TableFilters,
    TableResponse,
    TableUpdate,
    UserCreate,
    UserLogin,
    UserResponse,
)
from ticket_pdf import render_order_ticket

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("restaurant_api")


app = FastAPI(title="Restaurant Floor API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    if wait_for_db():
        try:
            init_db()
            logger.info("Database tables are ready")
        except Exception as e:
            logger.error(f"Could not create database tables: {e}")
    else:
        logger.error("Database did not become ready during startup")

    if redis_client.is_available():
        logger.info("Redis available, caching enabled")
    else:
        logger.warning("Redis unavailable, caching disabled")


# ========== Response envelope & error handlers ==========

def envelope(data: Any = None, message: Optional[str] = None, count: Optional[int] = None,
             status_code: int = 200) -> JSONResponse:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if count is not None:
        body["count"] = count
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def ensure_valid(result) -> None:
    is_valid, errors = result
    if not is_valid:
        raise ValidationError.from_errors(errors)


def parse_filters(model: Type[BaseModel], filters: Dict[str, Any], result) -> Dict[str, Any]:
    """Reject bad query parameters with a 400, then hand the services typed values."""
    ensure_valid(result)
    return model.model_validate(filters).model_dump()


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(validators.error_messages(exc.errors()))
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"success": False, "message": "Internal server error"}
    if config.ENVIRONMENT != "production":
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


# ========== Auth dependencies ==========

def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = auth.user_id_from_token(authorization[len("Bearer "):])
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User is inactive. Contact the administrator")

    return user


def require_roles(*roles: str):
    def role_checker(current_user: models.User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Required roles: {', '.join(roles)}; your role: {current_user.role}"
            )
        return current_user
    return role_checker


# ========== Service routes ==========

@app.get("/")
def read_root():
    return {"message": "Restaurant API is working!", "status": "running"}


@app.get("/health")
def health_check():
    db_ok = check_database()
    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": "ok" if db_ok else "degraded",
            "database": "ok" if db_ok else "unavailable",
            "cache": redis_client.get_cache_info(),
        },
    )


# ========== Auth ==========

@app.post("/api/auth/register")
def register(user: UserCreate, db: Session = Depends(get_db)):
    new_user, token = auth_service.register_user(db, user.model_dump())
    return envelope(
        AuthResponse(user=UserResponse.from_user(new_user), token=token),
        message="User registered successfully",
        status_code=201,
    )


@app.post("/api/auth/login", dependencies=[Depends(RateLimiter(10, 60, "rate_limit:login"))])
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user, token = auth_service.login_user(db, credentials.model_dump())
    return envelope(
        AuthResponse(user=UserResponse.from_user(user), token=token),
        message="Login successful",
    )


@app.post("/api/auth/forgot-password", dependencies=[Depends(RateLimiter(5, 300, "rate_limit:forgot"))])
def forgot_password(data: ForgotPassword, db: Session = Depends(get_db)):
    auth_service.initiate_password_reset(db, data.email)
    return envelope(message="If the email is registered, you will receive password reset instructions")


@app.post("/api/auth/reset-password")
def reset_password(data: PasswordReset, db: Session = Depends(get_db)):
    auth_service.reset_password(db, data.token, data.password)
    return envelope(message="Password updated successfully")


# ========== Users ==========

@app.get("/api/users/profile")
def get_profile(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    user = auth_service.get_profile(db, current_user.id)
    return envelope(ProfileResponse.from_user(user))


# ========== Dishes ==========

@app.get("/api/dishes")
def get_dishes(available: Optional[str] = None, search: Optional[str] = None, db: Session = Depends(get_db)):
    raw = {"available": available, "search": search}
    filters = parse_filters(DishFilters, raw, validators.validate_dish_filters(raw))

    unfiltered = available is None and not search
    if unfiltered:
        cached = redis_client.get_cached_dishes()
        if cached is not None:
            return envelope(cached, count=len(cached))

    dishes = [DishResponse.model_validate(d).model_dump() for d in catalog_service.list_dishes(db, filters)]
    if unfiltered:
        redis_client.cache_dishes(dishes)
    return envelope(dishes, count=len(dishes))


@app.get("/api/dishes/{dish_id}")
def get_dish(dish_id: int, db: Session = Depends(get_db)):
    return envelope(DishResponse.model_validate(catalog_service.get_dish(db, dish_id)))


@app.post("/api/dishes")
def create_dish(dish: DishCreate, db: Session = Depends(get_db),
                current_user: models.User = Depends(require_roles(ROLE_ADMIN))):
    new_dish = catalog_service.create_dish(db, dish.model_dump())
    redis_client.invalidate_dishes_cache()
    return envelope(DishResponse.model_validate(new_dish), message="Dish created successfully", status_code=201)


@app.put("/api/dishes/{dish_id}")
def update_dish(dish_id: int, dish: DishUpdate, db: Session = Depends(get_db),
                current_user: models.User = Depends(require_roles(ROLE_ADMIN))):
    updated = catalog_service.update_dish(db, dish_id, dish.model_dump(exclude_unset=True))
    redis_client.invalidate_dishes_cache()
    return envelope(DishResponse.model_validate(updated), message="Dish updated successfully")


@app.delete("/api/dishes/{dish_id}")
def delete_dish(dish_id: int, db: Session = Depends(get_db),
                current_user: models.User = Depends(require_roles(ROLE_ADMIN))):
    catalog_service.delete_dish(db, dish_id)
    redis_client.invalidate_dishes_cache()
    return envelope(message="Dish deleted successfully")


# ========== Tables ==========

@app.get("/api/tables")
def get_tables(number: Optional[str] = None, status: Optional[str] = None, disponible: Optional[str] = None,
               min_capacity: Optional[str] = None, max_capacity: Optional[str] = None,
               db: Session = Depends(get_db)):
    raw = {
        "number": number,
        "status": status,
        "disponible": disponible,
        "min_capacity": min_capacity,
        "max_capacity": max_capacity,
    }
    filters = parse_filters(TableFilters, raw, validators.validate_table_filters(raw))

    unfiltered = all(value is None for value in raw.values())
    if unfiltered:
        cached = redis_client.get_cached_tables()
        if cached is not None:
            return envelope(cached, count=len(cached))

    tables = [TableResponse.model_validate(t).model_dump() for t in catalog_service.list_tables(db, filters)]
    if unfiltered:
        redis_client.cache_tables(tables)
    return envelope(tables, count=len(tables))


@app.get("/api/tables/{table_id}")
def get_table(table_id: int, db: Session = Depends(get_db)):
    return envelope(TableResponse.model_validate(catalog_service.get_table(db, table_id)))


@app.post("/api/tables")
def create_table(table: TableCreate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(require_roles(ROLE_ADMIN))):
    new_table = catalog_service.create_table(db, table.model_dump())
    redis_client.invalidate_tables_cache()
    return envelope(TableResponse.model_validate(new_table), message="Table created", status_code=201)


@app.put("/api/tables/{table_id}")
def update_table(table_id: int, table: TableUpdate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(require_roles(ROLE_ADMIN))):
    updated = catalog_service.update_table(db, table_id, table.model_dump(exclude_unset=True))
    redis_client.invalidate_tables_cache()
    return envelope(TableResponse.model_validate(updated), message="Table updated")


@app.delete("/api/tables/{table_id}")
def delete_table(table_id: int, db: Session = Depends(get_db),
                 current_user: models.User = Depends(require_roles(ROLE_ADMIN))):
    catalog_service.delete_table(db, table_id)
    redis_client.invalidate_tables_cache()
    return envelope(message="Table deleted")


# ========== Orders ==========

@app.post("/api/orders")
def create_order(order: OrderCreate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(require_roles(ROLE_WAITER, ROLE_ADMIN))):
    items = [item.model_dump() for item in order.items]
    new_order = order_service.create_order(db, order.table_id, items, current_user)
    redis_client.invalidate_tables_cache()
    return envelope(OrderResponse.from_order(new_order), message="Order created successfully", status_code=201)


@app.get("/api/orders")
def get_orders(status: Optional[str] = None, table_id: Optional[str] = None,
               start_date: Optional[str] = None, end_date: Optional[str] = None,
               db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    raw = {"status": status, "table_id": table_id, "start_date": start_date, "end_date": end_date}
    filters = parse_filters(OrderFilters, raw, validators.validate_order_filters(raw))
    orders = order_service.list_orders(db, filters, current_user.role)
    return envelope([OrderResponse.from_order(o) for o in orders], count=len(orders))


@app.get("/api/orders/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db),
              current_user: models.User = Depends(get_current_user)):
    order = order_service.get_order(db, order_id, current_user.role)
    return envelope(OrderResponse.from_order(order))


@app.put("/api/orders/{order_id}")
def update_order_status(order_id: int, update: OrderStatusUpdate, db: Session = Depends(get_db),
                        current_user: models.User = Depends(require_roles(ROLE_COOK, ROLE_WAITER, ROLE_ADMIN))):
    order = order_service.update_order_status(db, order_id, update.status, current_user.role)
    redis_client.invalidate_tables_cache()
    return envelope(OrderResponse.from_order(order), message="Order status updated successfully")


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: int, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    order_service.delete_order(db, order_id, current_user.role)
    redis_client.invalidate_tables_cache()
    return envelope(message="Order deleted successfully")


@app.get("/api/orders/{order_id}/ticket")
def get_order_ticket(order_id: int, db: Session = Depends(get_db),
                     current_user: models.User = Depends(get_current_user)):
    order = order_service.get_order(db, order_id)
    pdf = render_order_ticket(order)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="order-ticket-{order.id}.pdf"'},
    )


@app.get("/api/order_details/{order_id}")
def get_order_details(order_id: int, db: Session = Depends(get_db),
                      current_user: models.User = Depends(get_current_user)):
    details = order_service.list_order_details(db, order_id)
    return envelope([OrderDetailResponse.from_detail(d) for d in details], count=len(details))


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
