import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import assistant
import auth
import catalog
import config
import orders
from database import ensure_indexes, get_db
from errors import StoreError
from schemas import (
    AskPayload,
    AskResponse,
    AuthResponse,
    CategoryListResponse,
    LoginPayload,
    MessageResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    ProductIn,
    ProductListResponse,
    ProductResponse,
    RegisterPayload,
    StatusChange,
    UserResponse,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.setup_logging()
    config.ensure_env()
    db = get_db()
    ensure_indexes(db)
    auth.ensure_admin(db)
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CLIENT_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error responses

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Submitted values are not echoed back; they may be non-finite floats or secrets.
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    message = "Validation failed"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message, "errors": errors},
    )


@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/api/health")
def health(db=Depends(get_db)):
    try:
        collections = db.list_collection_names()
        return {"success": True, "database": "ok", "collections": collections[:10]}
    except Exception as e:
        return {"success": False, "database": f"error: {str(e)[:80]}"}


# Auth endpoints

@app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db=Depends(get_db)):
    user, token = auth.register(db, payload.name, payload.email, payload.password)
    return {"user": user, "token": token}


@app.post("/api/auth/login", response_model=AuthResponse)
def login(payload: LoginPayload, db=Depends(get_db)):
    user, token = auth.login(db, payload.email, payload.password)
    return {"user": user, "token": token}


@app.get("/api/auth/me", response_model=UserResponse)
def me(user=Depends(auth.get_current_user)):
    return {"user": auth.sanitize_user(user)}


# Products

@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db=Depends(get_db),
):
    products, pagination = catalog.list_products(db, search, category, page, limit)
    return {"products": products, "pagination": pagination}


@app.get("/api/products/categories", response_model=CategoryListResponse)
def list_categories(db=Depends(get_db)):
    return {"categories": catalog.list_categories(db)}


@app.get("/api/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, db=Depends(get_db)):
    return {"product": catalog.get_product(db, product_id)}


@app.post("/api/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(product: ProductIn, admin=Depends(auth.can_manage_products), db=Depends(get_db)):
    return {"product": catalog.create_product(db, product)}


@app.put("/api/products/{product_id}", response_model=ProductResponse)
def update_product(product_id: str, product: ProductIn, admin=Depends(auth.can_manage_products), db=Depends(get_db)):
    return {"product": catalog.update_product(db, product_id, product)}


@app.delete("/api/products/{product_id}", response_model=MessageResponse)
def delete_product(product_id: str, admin=Depends(auth.can_manage_products), db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted successfully"}


# Orders

@app.post("/api/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate, user=Depends(auth.get_current_user), db=Depends(get_db)):
    order = orders.place_order(db, user["_id"], payload.items, payload.shipping_address)
    return {"order": order}


@app.get("/api/orders/my-orders", response_model=OrderListResponse)
def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(auth.get_current_user),
    db=Depends(get_db),
):
    docs, pagination = orders.list_user_orders(db, user["_id"], page, limit)
    return {"orders": docs, "pagination": pagination}


@app.get("/api/orders/admin/all", response_model=OrderListResponse)
def all_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    admin=Depends(auth.can_manage_orders),
    db=Depends(get_db),
):
    docs, pagination = orders.list_all_orders(db, page, limit, status)
    return {"orders": docs, "pagination": pagination}


@app.get("/api/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, user=Depends(auth.get_current_user), db=Depends(get_db)):
    return {"order": orders.get_order(db, order_id, user)}


@app.put("/api/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: str, payload: StatusChange, admin=Depends(auth.can_manage_orders), db=Depends(get_db)):
    return {"order": orders.update_status(db, order_id, payload.status)}


# AI assistant

@app.post("/api/ai/ask", response_model=AskResponse)
def ask_assistant(payload: AskPayload, user=Depends(auth.get_current_user), db=Depends(get_db)):
    return {"response": assistant.ask(db, payload.question, payload.product_id)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
