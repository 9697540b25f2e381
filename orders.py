"""
Order placement and history.

``place_order`` is the only multi-step write in the service. It prices every
line from the stored product row (the client's ``price`` is ignored), then in
one transaction inserts the order and its items, decrements stock and empties
the cart. Stock is decremented with a conditional relative update, so two
checkouts racing for the last unit cannot both succeed: the loser's UPDATE
matches no row and the whole transaction is rolled back.
"""
import logging
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from errors import InsufficientStockError, NotFoundError
from models import CartItem, Order, OrderItem, Product, utcnow
from schemas import OrderCreate, OrderOut

log = logging.getLogger(__name__)


def _order_query(user_id: int):
    return (
        select(Order)
        .where(Order.user_id == user_id)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
    )


def list_orders(db: Session, user_id: int) -> List[OrderOut]:
    orders = db.scalars(_order_query(user_id).order_by(Order.created_at.desc(), Order.id.desc())).all()
    return [OrderOut.from_model(o) for o in orders]


def get_order(db: Session, user_id: int, order_id: int) -> OrderOut:
    # other users' orders look exactly like missing ones
    order = db.scalar(_order_query(user_id).where(Order.id == order_id))
    if order is None:
        raise NotFoundError("Order not found")
    return OrderOut.from_model(order)


def _insufficient(product: Product, available: int) -> InsufficientStockError:
    return InsufficientStockError(
        f"Insufficient stock for product {product.name}. Only {available} available."
    )


def place_order(db: Session, user_id: int, payload: OrderCreate) -> OrderOut:
    # resolve prices and check stock before writing anything
    requested: Dict[int, int] = {}
    for line in payload.items:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    products: Dict[int, Product] = {}
    total_amount = Decimal("0")
    for line in payload.items:
        product = products.get(line.product_id)
        if product is None:
            product = db.get(Product, line.product_id)
            if product is None:
                raise NotFoundError(f"Product with ID {line.product_id} not found")
            if product.stock < requested[line.product_id]:
                raise _insufficient(product, product.stock)
            products[line.product_id] = product
        total_amount += product.price * line.quantity

    try:
        order = Order(
            user_id=user_id,
            total_amount=total_amount,
            status="pending",
            shipping_address=payload.shipping_address,
        )
        db.add(order)
        db.flush()

        for line in payload.items:
            product = products[line.product_id]
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    quantity=line.quantity,
                    price=product.price,
                )
            )
            db.flush()
            result = db.execute(
                update(Product)
                .where(Product.id == product.id, Product.stock >= line.quantity)
                .values(stock=Product.stock - line.quantity, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                available = db.scalar(select(Product.stock).where(Product.id == product.id))
                raise _insufficient(product, available)

        db.execute(delete(CartItem).where(CartItem.user_id == user_id))
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info("User %s placed order %s (total %s, %d lines)", user_id, order.id, total_amount, len(payload.items))

    # the stock values cached on these rows are stale now
    db.expire_all()
    return get_order(db, user_id, order.id)
