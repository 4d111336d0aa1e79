"""
Per-gym, per-day order numbers of the form ``ORD-YYYYMMDD-NNNNN``.

The sequence lives in a counter row (``order_sequences``) bumped with a single
``UPDATE ... RETURNING`` in the caller's transaction, so two concurrent
checkouts for the same gym and day can never read the same value. The row is
created lazily on the first order of the day and seeded from the highest order
number already stored for that day.
"""
import logging
import re
from datetime import date
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from gymos.db.models import Order, OrderSequence, utcnow

log = logging.getLogger(__name__)

PREFIX = "ORD"
SEQUENCE_WIDTH = 5
ORDER_NUMBER_RE = re.compile(r"^ORD-(\d{8})-(\d{5})$")


def day_key(day: date) -> str:
    return day.strftime("%Y%m%d")


def format_order_number(day: date, sequence: int) -> str:
    return f"{PREFIX}-{day_key(day)}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(order_number: str) -> Optional[int]:
    m = ORDER_NUMBER_RE.match(order_number or "")
    return int(m.group(2)) if m else None


def _bump(db: Session, gym_id: int, key: str) -> Optional[int]:
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.gym_id == gym_id, OrderSequence.day == key)
        .values(last_value=OrderSequence.last_value + 1)
        .returning(OrderSequence.last_value)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).scalar_one_or_none()


def _highest_existing(db: Session, gym_id: int, key: str) -> int:
    numbers = db.execute(
        select(Order.order_number)
        .where(Order.gym_id == gym_id, Order.order_number.startswith(f"{PREFIX}-{key}-"))
        .order_by(Order.order_number.desc())
    ).scalars()
    for number in numbers:
        seq = parse_sequence(number)
        if seq is not None:
            return seq
        log.warning(f"ignoring malformed order number {number!r} for gym {gym_id}")
    return 0


def allocate_order_number(db: Session, gym_id: int, day: Optional[date] = None) -> str:
    """Reserve the next order number for `gym_id` on `day` (UTC today by default).

    Runs inside the caller's transaction: if the order insert that follows is
    rolled back, the counter bump is rolled back with it.
    """
    day = day or utcnow().date()
    key = day_key(day)

    seq = _bump(db, gym_id, key)
    if seq is None:
        start = _highest_existing(db, gym_id, key) + 1
        try:
            with db.begin_nested():
                db.add(OrderSequence(gym_id=gym_id, day=key, last_value=start))
            seq = start
        except IntegrityError:
            # another transaction created today's row first
            seq = _bump(db, gym_id, key)
            if seq is None:
                raise
    return format_order_number(day, seq)
