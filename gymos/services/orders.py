"""Order placement, status transitions and cancellation.

All stock changes happen in the same transaction as the order change that
causes them; any failure rolls the whole unit back.
"""
import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session, selectinload
from gymos.api.deps import Identity, Page, TRAINER_ROLE
from gymos.core.errors import ValidationError, ForbiddenError, NotFoundError, ConflictError, InsufficientStockError
from gymos.db.models import Order, OrderItem, OrderStatus, Product, User, utcnow
from gymos.schemas import OrderCreate
from gymos.services import inventory, matches
from gymos.services.order_numbers import allocate_order_number

log = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in OrderStatus]

def _with_details(stmt):
    return stmt.options(
        selectinload(Order.user),
        selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.category),
    )

def _live_order(db: Session, gym_id: int, order_id: int, **filters) -> Optional[Order]:
    stmt = select(Order).where(Order.id == order_id, Order.gym_id == gym_id, Order.deleted_at.is_(None))
    for attr, value in filters.items():
        stmt = stmt.where(getattr(Order, attr) == value)
    return db.execute(_with_details(stmt)).scalar_one_or_none()

def _resolve_target_user(db: Session, identity: Identity, user_id: Optional[int]) -> int:
    target = user_id or identity.user_id
    if identity.is_student and target != identity.user_id:
        raise ForbiddenError('Students can only create orders for themselves')
    if target != identity.user_id:
        user = db.execute(
            select(User).where(User.id == target, User.gym_id == identity.gym_id, User.deleted_at.is_(None))
        ).scalar_one_or_none()
        if not user:
            raise NotFoundError('Target user not found')
    return target

def create_order(db: Session, identity: Identity, payload: OrderCreate, today: Optional[date] = None) -> Order:
    target_user_id = _resolve_target_user(db, identity, payload.user_id)

    if not payload.items:
        raise ValidationError('Order must contain at least one item')

    product_ids = list(OrderedDict.fromkeys(it.product_id for it in payload.items))
    products = {
        p.id: p for p in db.execute(
            select(Product).where(
                Product.id.in_(product_ids),
                Product.gym_id == identity.gym_id,
                Product.deleted_at.is_(None),
                Product.is_active.is_(True),
            )
        ).scalars()
    }
    if len(products) != len(product_ids):
        raise ValidationError('One or more products not found or inactive')

    if any(it.quantity <= 0 for it in payload.items):
        raise ValidationError('Quantity must be greater than 0')

    # same product may appear on several lines
    requested: Dict[int, int] = {}
    for it in payload.items:
        requested[it.product_id] = requested.get(it.product_id, 0) + it.quantity
    for product_id, qty in requested.items():
        product = products[product_id]
        if product.stock_quantity < qty:
            raise InsufficientStockError(product.id, product.name, qty, product.stock_quantity)

    total = Decimal('0')
    lines = []
    for it in payload.items:
        unit_price = products[it.product_id].price
        total += unit_price * it.quantity
        lines.append(OrderItem(product_id=it.product_id, quantity=it.quantity, unit_price=unit_price))

    meta: Dict[str, Any] = dict(payload.metadata or {})
    if payload.notes:
        meta['notes'] = payload.notes

    try:
        order = Order(
            gym_id=identity.gym_id,
            user_id=target_user_id,
            order_number=allocate_order_number(db, identity.gym_id, today),
            total_amount=total,
            status=OrderStatus.PENDING_APPROVAL.value,
            meta=meta or None,
            items=lines,
        )
        db.add(order)
        db.flush()
        inventory.reserve(db, identity.gym_id, requested)
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info(f"order created: {order.order_number} gym={identity.gym_id} user={target_user_id} total={total}")
    return get_order(db, identity, order.id)

def get_order(db: Session, identity: Identity, order_id: int) -> Order:
    filters = {'user_id': identity.user_id} if identity.is_student else {}
    order = _live_order(db, identity.gym_id, order_id, **filters)
    if not order:
        raise NotFoundError('Order not found')
    return order

def list_orders(db: Session, identity: Identity, page: Page, status: Optional[str] = None,
                user_id: Optional[int] = None, search: Optional[str] = None) -> Tuple[List[Order], int]:
    stmt = select(Order).where(Order.gym_id == identity.gym_id, Order.deleted_at.is_(None))
    if identity.is_student:
        stmt = stmt.where(Order.user_id == identity.user_id)
    elif identity.role == TRAINER_ROLE:
        # trainers only see their actively matched students
        students = matches.active_student_ids(db, identity.gym_id, identity.user_id)
        if user_id is not None:
            if user_id not in students:
                raise ForbiddenError('You can only view orders of your students')
            stmt = stmt.where(Order.user_id == user_id)
        else:
            stmt = stmt.where(Order.user_id.in_(students))
    elif user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError('Invalid status')
        stmt = stmt.where(Order.status == status)
    if search:
        like = f"%{search}%"
        stmt = stmt.join(User, User.id == Order.user_id).where(or_(
            Order.order_number.ilike(like),
            User.first_name.ilike(like),
            User.last_name.ilike(like),
            User.email.ilike(like),
        ))
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        _with_details(stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset(page.offset).limit(page.limit))
    ).scalars().all()
    return rows, total

def reconcile_stock_on_cancellation(db: Session, order: Order) -> bool:
    """Mark `order` cancelled and return its items to stock, at most once.

    The status flip is conditional on the order not already being cancelled,
    so two racing cancellations restore stock a single time. Returns whether
    stock was restored. Caller commits.
    """
    res = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status != OrderStatus.CANCELLED.value)
        .values(status=OrderStatus.CANCELLED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.expire(order, ['status', 'updated_at'])
    if res.rowcount == 0:
        return False
    inventory.restock(db, [(it.product_id, it.quantity) for it in order.items])
    log.info(f"stock restored for cancelled order {order.order_number}")
    return True

def update_status(db: Session, identity: Identity, order_id: int, status: str,
                  metadata: Optional[Dict[str, Any]] = None) -> Order:
    if identity.is_student:
        raise ForbiddenError('Students cannot update order status')
    if status not in VALID_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(VALID_STATUSES)}")

    order = _live_order(db, identity.gym_id, order_id)
    if not order:
        raise NotFoundError('Order not found')

    previous = order.status
    if previous == OrderStatus.COMPLETED and status != OrderStatus.COMPLETED:
        raise ConflictError('Completed orders cannot change status')
    if previous == OrderStatus.CANCELLED and status != OrderStatus.CANCELLED:
        raise ConflictError('Cancelled orders cannot be reopened')

    try:
        if status == OrderStatus.CANCELLED:
            reconcile_stock_on_cancellation(db, order)
        else:
            order.status = status
        if metadata is not None:
            order.meta = metadata
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info(f"order {order.order_number}: {previous} -> {status}")
    return get_order(db, identity, order_id)

def delete_order(db: Session, identity: Identity, order_id: int):
    """Soft-delete an order; anything not yet cancelled is cancelled first."""
    if identity.is_student:
        order = _live_order(db, identity.gym_id, order_id, user_id=identity.user_id,
                            status=OrderStatus.PENDING_APPROVAL.value)
        if not order:
            raise NotFoundError('Order not found or cannot be cancelled')
    else:
        order = _live_order(db, identity.gym_id, order_id)
        if not order:
            raise NotFoundError('Order not found')

    if order.status == OrderStatus.COMPLETED:
        raise ValidationError('Cannot delete completed orders')

    try:
        reconcile_stock_on_cancellation(db, order)
        order.deleted_at = utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise
    log.info(f"order {order.order_number} deleted by user {identity.user_id}")

def order_stats(db: Session, identity: Identity) -> dict:
    scope = [Order.gym_id == identity.gym_id, Order.deleted_at.is_(None)]
    if identity.is_student:
        scope.append(Order.user_id == identity.user_id)

    counts = dict(db.execute(select(Order.status, func.count()).where(*scope).group_by(Order.status)).all())
    revenue = db.execute(
        select(func.sum(Order.total_amount)).where(*scope, Order.status == OrderStatus.COMPLETED.value)
    ).scalar_one()
    return {
        'total_orders': sum(counts.values()),
        'by_status': {
            'pending': counts.get(OrderStatus.PENDING_APPROVAL.value, 0),
            'prepared': counts.get(OrderStatus.PREPARED.value, 0),
            'completed': counts.get(OrderStatus.COMPLETED.value, 0),
            'cancelled': counts.get(OrderStatus.CANCELLED.value, 0),
        },
        'total_revenue': revenue or Decimal('0.00'),
    }
