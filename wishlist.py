"""Per-user wishlist of saved products."""
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError
from models import Product, WishlistItem
from schemas import WishlistItemOut, WishlistOut


def get_wishlist(db: Session, user_id: int) -> WishlistOut:
    rows = db.execute(
        select(WishlistItem, Product)
        .join(Product, WishlistItem.product_id == Product.id)
        .where(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
    ).all()
    items = [WishlistItemOut.from_model(item, product) for item, product in rows]
    return WishlistOut(items=items, count=len(items))


def add_to_wishlist(db: Session, user_id: int, product_id: int) -> WishlistItem:
    if db.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    existing = db.scalar(
        select(WishlistItem.id).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
    )
    if existing is not None:
        raise ConflictError("Item already exists in wishlist")

    item = WishlistItem(user_id=user_id, product_id=product_id)
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Item already exists in wishlist")
    return item


def remove_wishlist_item(db: Session, user_id: int, item_id: int) -> None:
    result = db.execute(
        delete(WishlistItem).where(WishlistItem.id == item_id, WishlistItem.user_id == user_id)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFoundError("Wishlist item not found")
    db.commit()


def remove_wishlist_product(db: Session, user_id: int, product_id: int) -> None:
    result = db.execute(
        delete(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFoundError("Item not found in wishlist")
    db.commit()
