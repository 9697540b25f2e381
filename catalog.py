"""Product catalog: read-only browsing plus admin product creation."""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from errors import NotFoundError, ValidationError
from models import Product
from schemas import CategoryCount, Pagination, ProductIn, ProductOut

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _check_page(limit: int, offset: int) -> None:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must be a non-negative integer")


def pagination(total: int, limit: int, offset: int) -> Pagination:
    return Pagination(total=total, limit=limit, offset=offset, hasMore=offset + limit < total)


def list_products(
    db: Session,
    category: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[ProductOut], int]:
    """Return one page of products and the size of the whole filtered set.

    ``category`` is an exact match; ``None`` or ``"all"`` means any category.
    ``search`` is a case-insensitive substring match on name or description.
    """
    _check_page(limit, offset)

    filters = []
    if category and category != "all":
        filters.append(Product.category == category)
    if search:
        filters.append(
            or_(
                Product.name.icontains(search, autoescape=True),
                Product.description.icontains(search, autoescape=True),
            )
        )

    stmt = (
        select(Product)
        .where(*filters)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .offset(offset)
    )
    products = db.scalars(stmt).all()
    total = db.scalar(select(func.count()).select_from(Product).where(*filters))
    return [ProductOut.from_model(p) for p in products], total


def list_by_category(db: Session, category: str, limit: int = 20, offset: int = 0) -> Tuple[List[ProductOut], int]:
    return list_products(db, category=category, limit=limit, offset=offset)


def get_product(db: Session, product_id: int) -> ProductOut:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return ProductOut.from_model(product)


def list_categories(db: Session) -> List[CategoryCount]:
    rows = db.execute(
        select(Product.category, func.count(Product.id))
        .group_by(Product.category)
        .order_by(Product.category)
    ).all()
    return [CategoryCount(category=category, count=count) for category, count in rows]


def create_product(db: Session, payload: ProductIn) -> ProductOut:
    product = Product(
        name=payload.name,
        description=payload.description,
        price=payload.price_decimal(),
        category=payload.category,
        image=str(payload.image),
        stock=payload.stock,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    log.info("Created product %s (%s)", product.id, product.name)
    return ProductOut.from_model(product)
