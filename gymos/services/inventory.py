import logging
from typing import Dict, Iterable, Tuple
from sqlalchemy import update, select
from sqlalchemy.orm import Session
from gymos.core.errors import InsufficientStockError, ValidationError
from gymos.db.models import Product

log = logging.getLogger(__name__)

def reserve(db: Session, gym_id: int, quantities: Dict[int, int]):
    """Decrement stock for {product_id: qty}, each only if enough is left.

    The sufficiency test is part of the UPDATE itself, so a concurrent order
    that got there first makes this one fail instead of overselling.
    """
    # fixed lock order across concurrent reservations
    for product_id in sorted(quantities):
        qty = quantities[product_id]
        res = db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.gym_id == gym_id,
                Product.deleted_at.is_(None),
                Product.is_active.is_(True),
                Product.stock_quantity >= qty,
            )
            .values(stock_quantity=Product.stock_quantity - qty)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            row = db.execute(
                select(Product.name, Product.stock_quantity, Product.is_active, Product.deleted_at)
                .where(Product.id == product_id, Product.gym_id == gym_id)
            ).one_or_none()
            # retired or removed since the order was checked
            if row is None or not row.is_active or row.deleted_at is not None:
                log.info(f"reservation rejected: product={product_id} no longer available")
                raise ValidationError('One or more products not found or inactive')
            name, available = row.name, row.stock_quantity
            log.info(f"reservation rejected: product={product_id} requested={qty} available={available}")
            raise InsufficientStockError(product_id, name, qty, available)

def restock(db: Session, items: Iterable[Tuple[int, int]]):
    """Give back (product_id, qty) pairs, e.g. the lines of a cancelled order."""
    for product_id, qty in items:
        db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + qty)
            .execution_options(synchronize_session=False)
        )
