import re
from datetime import date
from decimal import Decimal

from sqlalchemy import insert, select

from gymos.db.models import Order, OrderSequence
from gymos.services import order_numbers
from gymos.services.order_numbers import allocate_order_number, format_order_number, parse_sequence

DAY = date(2026, 10, 17)


def _order(gym_id, user_id, number):
    return Order(gym_id=gym_id, user_id=user_id, order_number=number, total_amount=Decimal("1.00"))


def test_format_and_parse():
    assert format_order_number(DAY, 7) == "ORD-20261017-00007"
    assert parse_sequence("ORD-20261017-00042") == 42
    assert parse_sequence("ORD-20261017-42") is None
    assert parse_sequence("") is None


def test_sequential_numbers_for_same_day(db, world):
    first = allocate_order_number(db, world.gym_id, DAY)
    second = allocate_order_number(db, world.gym_id, DAY)
    db.commit()
    assert first == "ORD-20261017-00001"
    assert second == "ORD-20261017-00002"
    assert re.fullmatch(r"ORD-\d{8}-\d{5}", second)


def test_new_day_restarts_at_one(db, world):
    allocate_order_number(db, world.gym_id, DAY)
    assert allocate_order_number(db, world.gym_id, date(2026, 10, 18)) == "ORD-20261018-00001"


def test_gyms_have_independent_sequences(db, world):
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00001"
    assert allocate_order_number(db, world.other_gym_id, DAY) == "ORD-20261017-00001"
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00002"


def test_continues_after_existing_orders(db, world):
    user_id = world.users["student"]
    db.add_all([
        _order(world.gym_id, user_id, "ORD-20261017-00041"),
        _order(world.gym_id, user_id, "ORD-20261016-00090"),
    ])
    db.commit()
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00042"


def test_malformed_existing_numbers_are_skipped(db, world):
    user_id = world.users["student"]
    db.add_all([
        _order(world.gym_id, user_id, "ORD-20261017-00003"),
        _order(world.gym_id, user_id, "ORD-20261017-XYZ"),
    ])
    db.commit()
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00004"


def test_rollback_releases_the_number(db, world):
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00001"
    db.rollback()
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00001"


def test_counter_row_created_concurrently_is_reused(db, world, monkeypatch):
    highest = order_numbers._highest_existing

    def racing(session, gym_id, key):
        # another checkout inserts today's row between our bump and our insert
        session.execute(insert(OrderSequence).values(gym_id=gym_id, day=key, last_value=7))
        return highest(session, gym_id, key)

    monkeypatch.setattr(order_numbers, "_highest_existing", racing)
    assert allocate_order_number(db, world.gym_id, DAY) == "ORD-20261017-00008"
    db.commit()

    rows = db.execute(select(OrderSequence.day, OrderSequence.last_value)).all()
    assert [tuple(r) for r in rows] == [("20261017", 8)]
