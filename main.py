import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import cart as cart_service
import catalog
import orders as order_service
import wishlist as wishlist_service
from config import Settings, get_app_settings, get_settings
from database import Database, get_db
from errors import AuthenticationError, ConflictError, DatabaseUnavailableError, StoreError
from models import Product, User
from schemas import (
    CartItemIn,
    CartItemUpdate,
    OrderCreate,
    ProductIn,
    TokenIdentity,
    UserCreate,
    UserLogin,
    UserOut,
    WishlistItemIn,
)
from security import (
    create_access_token,
    get_current_identity,
    get_current_user,
    get_password_hash,
    require_admin,
    verify_password,
)

log = logging.getLogger("storefront")


def setup_logging(level: str = "INFO") -> None:
    """Configures the root logger."""
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
        root.addHandler(handler)


def ok(message: str, data: Optional[dict] = None) -> dict:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


router = APIRouter()


# Routes
@router.get("/")
def root():
    return ok("Storefront API is running")


@router.get("/test")
def test_database(request: Request):
    database: Database = request.app.state.database
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_backend": database.url.get_backend_name(),
        "connection_status": "Not Connected",
    }

    try:
        database.ping()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        log.warning("Database ping failed: %s", e)
        response["database"] = f"❌ Error: {type(e).__name__}"

    return response


# Auth endpoints
@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: UserCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    if db.scalar(select(User.id).where(User.email == payload.email)) is not None:
        raise ConflictError("User with this email already exists")

    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=get_password_hash(payload.password, rounds=settings.bcrypt_rounds),
        phone=payload.phone,
        address=payload.address,
        role="admin" if payload.email in settings.admin_emails else "customer",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("Registered user %s (%s)", user.id, user.role)

    token = create_access_token(user.id, user.email, settings)
    return ok("User registered successfully", {"user": UserOut.from_model(user), "token": token})


@router.post("/auth/login")
def login(
    payload: UserLogin,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user = db.scalar(select(User).where(User.email == payload.email))
    if not user or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")

    log.info("User %s logged in", user.id)
    token = create_access_token(user.id, user.email, settings)
    return ok("Login successful", {"user": UserOut.from_model(user), "token": token})


@router.post("/auth/logout")
def logout():
    # tokens are stateless; the client drops its copy
    return ok("Logout successful. Please remove token from client storage.")


@router.get("/auth/profile")
def profile(user: User = Depends(get_current_user)):
    return ok("Profile retrieved successfully", {"user": UserOut.from_model(user)})


# Product endpoints
@router.get("/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    products, total = catalog.list_products(db, category=category, search=search, limit=limit, offset=offset)
    return ok(
        "Products retrieved successfully",
        {"products": products, "pagination": catalog.pagination(total, limit, offset)},
    )


@router.get("/products/meta/categories")
def list_categories(db: Session = Depends(get_db)):
    return ok("Categories retrieved successfully", {"categories": catalog.list_categories(db)})


@router.get("/products/category/{category}")
def list_products_by_category(category: str, limit: int = 20, offset: int = 0, db: Session = Depends(get_db)):
    products, total = catalog.list_by_category(db, category, limit=limit, offset=offset)
    return ok(
        f"Products in {category} category retrieved successfully",
        {"products": products, "category": category, "pagination": catalog.pagination(total, limit, offset)},
    )


@router.get("/products/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    return ok("Product retrieved successfully", {"product": catalog.get_product(db, product_id)})


@router.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductIn, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    product = catalog.create_product(db, payload)
    return ok("Product created successfully", {"product": product})


# Cart endpoints (per-user)
@router.get("/cart")
def get_cart(identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return ok("Cart items retrieved successfully", cart_service.get_cart(db, identity.user_id).model_dump())


@router.post("/cart", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartItemIn,
    response: Response,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    item, created = cart_service.add_to_cart(db, identity.user_id, payload.product_id, payload.quantity)
    data = {"id": item.id, "product_id": item.product_id, "quantity": item.quantity}
    if created:
        return ok("Item added to cart successfully", data)
    response.status_code = status.HTTP_200_OK
    return ok("Cart item quantity updated successfully", data)


@router.put("/cart/{item_id}")
def update_cart_item(
    item_id: int,
    payload: CartItemUpdate,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    item = cart_service.update_cart_item(db, identity.user_id, item_id, payload.quantity)
    return ok("Cart item updated successfully", {"id": item.id, "quantity": item.quantity})


@router.delete("/cart/{item_id}")
def remove_cart_item(item_id: int, identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    cart_service.remove_cart_item(db, identity.user_id, item_id)
    return ok("Item removed from cart successfully")


@router.delete("/cart")
def clear_cart(identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    cart_service.clear_cart(db, identity.user_id)
    return ok("Cart cleared successfully")


# Wishlist endpoints
@router.get("/wishlist")
def get_wishlist(identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return ok("Wishlist items retrieved successfully", wishlist_service.get_wishlist(db, identity.user_id).model_dump())


@router.post("/wishlist", status_code=status.HTTP_201_CREATED)
def add_to_wishlist(
    payload: WishlistItemIn,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    item = wishlist_service.add_to_wishlist(db, identity.user_id, payload.product_id)
    return ok("Item added to wishlist successfully", {"id": item.id, "product_id": item.product_id})


@router.delete("/wishlist/product/{product_id}")
def remove_wishlist_product(
    product_id: int,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    wishlist_service.remove_wishlist_product(db, identity.user_id, product_id)
    return ok("Item removed from wishlist successfully")


@router.delete("/wishlist/{item_id}")
def remove_wishlist_item(item_id: int, identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    wishlist_service.remove_wishlist_item(db, identity.user_id, item_id)
    return ok("Item removed from wishlist successfully")


# Checkout / Orders
@router.get("/orders")
def list_orders(identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return ok("Orders retrieved successfully", {"orders": order_service.list_orders(db, identity.user_id)})


@router.get("/orders/{order_id}")
def get_order(order_id: int, identity: TokenIdentity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return ok("Order retrieved successfully", {"order": order_service.get_order(db, identity.user_id, order_id)})


@router.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    order = order_service.place_order(db, identity.user_id, payload)
    return ok("Order placed successfully", {"order": order})


# Demo catalog (admin only); skips products that already exist by name
DEMO_PRODUCTS = [
    {"name": "Classic Cotton Kurta", "category": "men", "price": 39.99, "stock": 25,
     "description": "Breathable hand-loomed cotton kurta for everyday wear.",
     "image": "https://images.unsplash.com/photo-1597983073493-88cd35cf93b0"},
    {"name": "Silk Banarasi Saree", "category": "women", "price": 149.00, "stock": 8,
     "description": "Woven silk saree with zari border, blouse piece included.",
     "image": "https://images.unsplash.com/photo-1610030469983-98e550d6193c"},
    {"name": "Denim Trucker Jacket", "category": "men", "price": 79.50, "stock": 15,
     "description": "Mid-wash denim jacket with button front and chest pockets.",
     "image": "https://images.unsplash.com/photo-1576871337622-98d48d1cf531"},
    {"name": "Linen Palazzo Pants", "category": "women", "price": 45.00, "stock": 20,
     "description": "Relaxed wide-leg linen pants with an elastic waist.",
     "image": "https://images.unsplash.com/photo-1594633312681-425c7b97ccd1"},
    {"name": "Embroidered Kids Sherwani", "category": "kids", "price": 59.99, "stock": 10,
     "description": "Festive sherwani set for kids with matching churidar.",
     "image": "https://images.unsplash.com/photo-1503944583220-79d8926ad5e2"},
    {"name": "Leather Kolhapuri Sandals", "category": "accessories", "price": 34.99, "stock": 30,
     "description": "Handcrafted leather sandals with a cushioned sole.",
     "image": "https://images.unsplash.com/photo-1603487742131-4160ec999306"},
]


@router.post("/seed")
def seed(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    existing = set(db.scalars(select(Product.name).where(Product.name.in_([p["name"] for p in DEMO_PRODUCTS]))))
    created = 0
    for p in DEMO_PRODUCTS:
        if p["name"] in existing:
            continue
        catalog.create_product(db, ProductIn(**p))
        created += 1
    return ok("Demo catalog seeded", {"created": created, "products": db.scalar(select(func.count(Product.id)))})


# Error handling
def _error(status_code: int, message: str, errors=None, headers=None) -> JSONResponse:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _store_error_response(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        log.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    headers = {"Retry-After": "1"} if isinstance(exc, DatabaseUnavailableError) else None
    return _error(exc.status_code, exc.message, exc.errors, headers)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        return _store_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]), "message": err["msg"]}
            for err in exc.errors()
        ]
        log.info("%s %s -> 400: %d validation errors", request.method, request.url.path, len(errors))
        return _error(status.HTTP_400_BAD_REQUEST, "Validation failed", errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    # pool exhausted, or the server/file could not be reached or locked
    @app.exception_handler(PoolTimeoutError)
    @app.exception_handler(OperationalError)
    async def database_unavailable_handler(request: Request, exc: Exception):
        log.warning("Database unavailable: %s", type(exc).__name__)
        return _store_error_response(request, DatabaseUnavailableError("Database unavailable, please retry"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception("%s %s: unhandled error", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    database: Database = app.state.database
    database.create_all()
    log.info("Storefront API ready")
    yield
    database.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = Database.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    register_error_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
