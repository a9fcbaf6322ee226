import asyncio
from datetime import datetime, timezone

import pytest

from store import models
from store.database import create_engine_from_url, reset_schema, session_factory
from store.models import Activity, Collective, Expense, Transaction


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# Reference 2024-03-06 => window 2024-02-26 14:00Z .. 2024-03-04 14:00Z
IN_WINDOW = utc(2024, 2, 28, 12)
BEFORE_WINDOW = utc(2023, 6, 1)
AFTER_WINDOW = utc(2024, 3, 5, 12)


async def _seed(url, rows):
    engine = create_engine_from_url(url)
    try:
        await reset_schema(engine)
        async with session_factory(engine)() as session:
            session.add_all(rows)
            await session.commit()
    finally:
        await engine.dispose()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'test.sqlite'}"


@pytest.fixture
def seed(db_url):
    def _run(rows):
        asyncio.run(_seed(db_url, rows))
        return db_url
    return _run


@pytest.fixture
def weekly_rows():
    def tx(id, amount, currency, collective_id, type=models.CREDIT, fee=-100, order_id=None, created_at=IN_WINDOW):
        return Transaction(
            id=id, type=type, amount=amount, currency=currency, collective_id=collective_id,
            platform_fee_in_host_currency=fee, order_id=order_id if order_id is not None else id,
            created_at=created_at, updated_at=created_at,
        )

    def expense(id, status, amount, currency, collective_id, updated_at=IN_WINDOW):
        return Expense(
            id=id, status=status, amount=amount, currency=currency, collective_id=collective_id,
            created_at=BEFORE_WINDOW, updated_at=updated_at,
        )

    no_order = tx(7, 800, "USD", 2)
    no_order.order_id = None

    return [
        Collective(id=1, slug="opencollective", type=models.COLLECTIVE, tags=[], created_at=BEFORE_WINDOW),
        Collective(id=2, slug="slug1", type=models.COLLECTIVE, tags=["open source"], created_at=IN_WINDOW),
        Collective(id=3, slug="slug2", type=models.COLLECTIVE, tags=[], created_at=IN_WINDOW),
        Collective(id=4, slug="old", type=models.COLLECTIVE, tags=["meetup", "brussels"], created_at=BEFORE_WINDOW),
        Collective(id=5, slug="acme", type=models.ORGANIZATION, tags=None, created_at=IN_WINDOW),

        # donations: 3, 5000 USD + 2000 EUR
        tx(1, 2000, "USD", 2),
        tx(2, 3000, "USD", 3),
        tx(3, 2000, "EUR", 4),
        # not donations
        tx(4, 9999, "USD", 1),
        tx(5, -500, "USD", 2, type=models.DEBIT),
        tx(6, 700, "USD", 2, fee=0),
        no_order,
        tx(8, 1000, "USD", 2, created_at=AFTER_WINDOW),
        tx(9, 100, "USD", 5, fee=0),

        expense(1, models.PENDING, -1500, "USD", 2),
        expense(2, models.PAID, -3000, "EUR", 4),
        expense(3, models.PENDING, -500, "USD", 1),
        expense(4, models.APPROVED, -200, "USD", 3, updated_at=AFTER_WINDOW),

        Activity(id=1, type=models.WEBHOOK_STRIPE_RECEIVED, created_at=IN_WINDOW),
        Activity(id=2, type=models.WEBHOOK_STRIPE_RECEIVED, created_at=IN_WINDOW),
        Activity(id=3, type=models.WEBHOOK_STRIPE_RECEIVED, created_at=AFTER_WINDOW),
        Activity(id=4, type=models.WEBHOOK_PAYPAL_RECEIVED, created_at=IN_WINDOW),
    ]
