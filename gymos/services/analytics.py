"""Dashboard figures for gym staff.

Everything is scoped to one gym and ignores soft-deleted rows. Date buckets
are computed in Python from naive UTC timestamps so the queries stay
portable across database backends.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from gymos.api.deps import STUDENT_ROLE
from gymos.db.models import MatchStatus, Order, OrderItem, OrderStatus, Product, Role, TrainerMatch, User, utcnow

log = logging.getLogger(__name__)

TREND_DAYS = 30
ACTIVE_DAYS = 7
LOW_STOCK_THRESHOLD = 10

def revenue_trend(db: Session, gym_id: int, now: Optional[datetime] = None) -> List[dict]:
    """Completed-order revenue per day over the last TREND_DAYS days."""
    since = (now or utcnow()) - timedelta(days=TREND_DAYS)
    rows = db.execute(
        select(Order.created_at, Order.total_amount).where(
            Order.gym_id == gym_id,
            Order.deleted_at.is_(None),
            Order.status == OrderStatus.COMPLETED.value,
            Order.created_at >= since,
        )
    ).all()
    buckets = defaultdict(lambda: Decimal('0'))
    for created_at, amount in rows:
        buckets[created_at.date().isoformat()] += amount
    return [{'date': day, 'revenue': buckets[day]} for day in sorted(buckets)]

def order_status_distribution(db: Session, gym_id: int) -> List[dict]:
    rows = db.execute(
        select(Order.status, func.count()).where(Order.gym_id == gym_id, Order.deleted_at.is_(None))
        .group_by(Order.status).order_by(Order.status)
    ).all()
    return [{'status': status, 'count': count} for status, count in rows]

def top_products(db: Session, gym_id: int, limit: int = 10) -> List[dict]:
    """Best sellers by quantity across completed orders."""
    sold = func.sum(OrderItem.quantity).label('total_sold')
    rows = db.execute(
        select(Product.id, Product.name, sold)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(
            Order.gym_id == gym_id,
            Order.deleted_at.is_(None),
            Order.status == OrderStatus.COMPLETED.value,
        )
        .group_by(Product.id, Product.name)
        .order_by(sold.desc(), Product.id)
        .limit(limit)
    ).all()
    return [{'product_id': pid, 'name': name, 'total_sold': int(total)} for pid, name, total in rows]

def active_students_trend(db: Session, gym_id: int, now: Optional[datetime] = None) -> List[dict]:
    """Matches created per day over the last TREND_DAYS days, split by recent activity.

    A match counts as active when it was touched within ACTIVE_DAYS of `now`.
    """
    now = now or utcnow()
    since = now - timedelta(days=TREND_DAYS)
    recent = now - timedelta(days=ACTIVE_DAYS)
    rows = db.execute(
        select(TrainerMatch.created_at, TrainerMatch.updated_at).where(
            TrainerMatch.gym_id == gym_id,
            TrainerMatch.deleted_at.is_(None),
            TrainerMatch.created_at >= since,
        )
    ).all()
    buckets = defaultdict(lambda: {'active': 0, 'inactive': 0})
    for created_at, updated_at in rows:
        key = 'active' if updated_at >= recent else 'inactive'
        buckets[created_at.date().isoformat()][key] += 1
    return [{'date': day, **buckets[day]} for day in sorted(buckets)]

def summary(db: Session, gym_id: int, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    live_orders = [Order.gym_id == gym_id, Order.deleted_at.is_(None)]
    live_products = [Product.gym_id == gym_id, Product.deleted_at.is_(None), Product.is_active.is_(True)]

    revenue = db.execute(
        select(func.sum(Order.total_amount)).where(*live_orders, Order.status == OrderStatus.COMPLETED.value)
    ).scalar_one()
    pending = db.execute(
        select(func.count()).select_from(Order)
        .where(*live_orders, Order.status == OrderStatus.PENDING_APPROVAL.value)
    ).scalar_one()
    products = db.execute(select(func.count()).select_from(Product).where(*live_products)).scalar_one()
    low_stock = db.execute(
        select(func.count()).select_from(Product)
        .where(*live_products, Product.stock_quantity < LOW_STOCK_THRESHOLD)
    ).scalar_one()
    students = db.execute(
        select(func.count()).select_from(User).join(Role, Role.id == User.role_id)
        .where(User.gym_id == gym_id, User.deleted_at.is_(None), Role.name == STUDENT_ROLE)
    ).scalar_one()
    active = db.execute(
        select(func.count()).select_from(TrainerMatch).where(
            TrainerMatch.gym_id == gym_id,
            TrainerMatch.deleted_at.is_(None),
            TrainerMatch.status == MatchStatus.ACTIVE.value,
            TrainerMatch.updated_at >= now - timedelta(days=ACTIVE_DAYS),
        )
    ).scalar_one()

    out = {
        'total_revenue': revenue or Decimal('0.00'),
        'pending_orders': pending,
        'total_products': products,
        'low_stock_products': low_stock,
        'active_students': active,
        'total_users': students,
    }
    log.debug(f"dashboard summary for gym {gym_id}: {out}")
    return out
