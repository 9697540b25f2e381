"""
Request and response schemas for the Storefront API

Request models carry the validation rules for each route body. Response models
are built from ORM rows (see ``models``) so routes never hand raw rows to the
client.
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, HttpUrl, StringConstraints, field_validator

PHONE_RE = re.compile(r"^\+?[0-9][0-9\s\-()]{6,18}$")


# leading/trailing whitespace is dropped before length checks
Trimmed = Annotated[str, StringConstraints(strip_whitespace=True)]


# -------- Users / auth --------
class UserCreate(BaseModel):
    name: Trimmed = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    phone: Optional[Trimmed] = None
    address: Optional[Trimmed] = Field(None, max_length=200)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        if v and not PHONE_RE.match(v):
            raise ValueError("Please provide a valid phone number")
        return v or None


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Literal["customer", "admin"] = "customer"

    @classmethod
    def from_model(cls, user) -> "UserOut":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            address=user.address,
            role=user.role,
        )


class TokenIdentity(BaseModel):
    """Authenticated caller, as carried in a verified access token."""

    user_id: int
    email: str


# -------- Products --------
class ProductIn(BaseModel):
    name: Trimmed = Field(..., min_length=2, max_length=100)
    description: Trimmed = Field(..., min_length=10, max_length=500)
    price: float = Field(..., ge=0.01)
    category: Trimmed = Field(..., min_length=2, max_length=50)
    image: HttpUrl
    stock: int = Field(..., ge=0)

    def price_decimal(self) -> Decimal:
        return Decimal(str(self.price)).quantize(Decimal("0.01"))


class ProductOut(BaseModel):
    id: int
    name: str
    description: str
    price: float
    category: str
    image: str
    stock: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, p) -> "ProductOut":
        return cls(
            id=p.id,
            name=p.name,
            description=p.description,
            price=float(p.price),
            category=p.category,
            image=p.image,
            stock=p.stock,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class CategoryCount(BaseModel):
    category: str
    count: int


# -------- Cart --------
class CartItemIn(BaseModel):
    product_id: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1, le=10)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1, le=10)


class CartItemOut(BaseModel):
    id: int
    user_id: int
    product_id: int
    quantity: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    name: str
    description: str
    price: float
    category: str
    image: str
    stock: int

    @classmethod
    def from_model(cls, item, product) -> "CartItemOut":
        return cls(
            id=item.id,
            user_id=item.user_id,
            product_id=item.product_id,
            quantity=item.quantity,
            created_at=item.created_at,
            updated_at=item.updated_at,
            name=product.name,
            description=product.description,
            price=float(product.price),
            category=product.category,
            image=product.image,
            stock=product.stock,
        )


class CartOut(BaseModel):
    items: List[CartItemOut]
    total: float
    count: int


# -------- Wishlist --------
class WishlistItemIn(BaseModel):
    product_id: int = Field(..., ge=1)


class WishlistItemOut(BaseModel):
    id: int
    user_id: int
    product_id: int
    created_at: Optional[datetime] = None
    name: str
    description: str
    price: float
    category: str
    image: str
    stock: int

    @classmethod
    def from_model(cls, item, product) -> "WishlistItemOut":
        return cls(
            id=item.id,
            user_id=item.user_id,
            product_id=item.product_id,
            created_at=item.created_at,
            name=product.name,
            description=product.description,
            price=float(product.price),
            category=product.category,
            image=product.image,
            stock=product.stock,
        )


class WishlistOut(BaseModel):
    items: List[WishlistItemOut]
    count: int


# -------- Orders --------
class OrderItemIn(BaseModel):
    product_id: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1, le=10)
    # checked for shape only; the stored product price is what gets charged
    price: float = Field(..., ge=0.01)


class OrderCreate(BaseModel):
    shipping_address: Trimmed = Field(..., min_length=10, max_length=200)
    items: List[OrderItemIn] = Field(..., min_length=1, max_length=50)


class OrderItemOut(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    price: float
    created_at: Optional[datetime] = None
    name: str
    image: str
    category: str

    @classmethod
    def from_model(cls, item) -> "OrderItemOut":
        return cls(
            id=item.id,
            order_id=item.order_id,
            product_id=item.product_id,
            quantity=item.quantity,
            price=float(item.price),
            created_at=item.created_at,
            name=item.product.name,
            image=item.product.image,
            category=item.product.category,
        )


class OrderOut(BaseModel):
    id: int
    user_id: int
    total_amount: float
    status: Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]
    shipping_address: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut]

    @classmethod
    def from_model(cls, order) -> "OrderOut":
        return cls(
            id=order.id,
            user_id=order.user_id,
            total_amount=float(order.total_amount),
            status=order.status,
            shipping_address=order.shipping_address,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemOut.from_model(i) for i in order.items],
        )
