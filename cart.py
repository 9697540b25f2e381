"""Per-user shopping cart."""
import logging
from decimal import Decimal
from typing import Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from models import CartItem, Product
from schemas import CartItemOut, CartOut

log = logging.getLogger(__name__)

MAX_QUANTITY = 10


def get_cart(db: Session, user_id: int) -> CartOut:
    rows = db.execute(
        select(CartItem, Product)
        .join(Product, CartItem.product_id == Product.id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.desc(), CartItem.id.desc())
    ).all()

    items = [CartItemOut.from_model(item, product) for item, product in rows]
    total = sum((product.price * item.quantity for item, product in rows), Decimal("0"))
    return CartOut(items=items, total=float(total.quantize(Decimal("0.01"))), count=len(items))


def add_to_cart(db: Session, user_id: int, product_id: int, quantity: int) -> Tuple[CartItem, bool]:
    """Add ``quantity`` of a product, merging into an existing row.

    Returns the row and whether it was newly created.
    """
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    if product.stock < quantity:
        raise InsufficientStockError(f"Only {product.stock} items available in stock")

    existing = db.scalar(
        select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    )
    if existing is not None:
        new_quantity = existing.quantity + quantity
        if new_quantity > product.stock:
            raise InsufficientStockError(
                f"Cannot add more items. Only {product.stock} available in stock"
            )
        if new_quantity > MAX_QUANTITY:
            raise ValidationError(f"Cart quantity for a product cannot exceed {MAX_QUANTITY}")
        existing.quantity = new_quantity
        db.commit()
        return existing, False

    item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request inserted the same pair first
        db.rollback()
        raise ConflictError("Item is already in the cart, please retry")
    log.debug("User %s added product %s x%s to cart", user_id, product_id, quantity)
    return item, True


def update_cart_item(db: Session, user_id: int, item_id: int, quantity: int) -> CartItem:
    row = db.execute(
        select(CartItem, Product.stock)
        .join(Product, CartItem.product_id == Product.id)
        .where(CartItem.id == item_id, CartItem.user_id == user_id)
    ).first()
    if row is None:
        raise NotFoundError("Cart item not found")

    item, stock = row
    if quantity > stock:
        raise InsufficientStockError(f"Only {stock} items available in stock")
    item.quantity = quantity
    db.commit()
    return item


def remove_cart_item(db: Session, user_id: int, item_id: int) -> None:
    result = db.execute(delete(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id))
    if result.rowcount == 0:
        db.rollback()
        raise NotFoundError("Cart item not found")
    db.commit()


def clear_cart(db: Session, user_id: int) -> int:
    result = db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    db.commit()
    return result.rowcount
