from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, select
from sqlalchemy.types import TypeDecorator
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Transaction types
CREDIT = "CREDIT"
DEBIT = "DEBIT"

# Expense statuses
PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
PAID = "PAID"
EXPENSE_STATUSES = (PENDING, APPROVED, REJECTED, PAID)

# Collective types
COLLECTIVE = "COLLECTIVE"
ORGANIZATION = "ORGANIZATION"
USER = "USER"

# Activity types
WEBHOOK_STRIPE_RECEIVED = "webhook.stripe.received"
WEBHOOK_PAYPAL_RECEIVED = "webhook.paypal.received"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored as UTC.

    SQLite keeps only the wall-clock part of a datetime, so values are
    converted to UTC on the way in and tagged as UTC on the way out.
    Naive values are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    type_annotation_map = {
        datetime: UTCDateTime(timezone=True),
        Dict[str, Any]: JSON,
    }


class Collective(Base):
    __tablename__ = "collectives"

    id: Mapped[int] = mapped_column(primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(32), default=COLLECTIVE)
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    transactions: Mapped[List["Transaction"]] = relationship(back_populates="collective")
    expenses: Mapped[List["Expense"]] = relationship(back_populates="collective")


class Transaction(Base):
    """
    Ledger entry. ``amount`` is in minor units (cents) of ``currency``.

    Donations are CREDIT entries tied to an order that charged a platform fee
    (stored as a negative ``platform_fee_in_host_currency``).
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(16))
    amount: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3))
    platform_fee_in_host_currency: Mapped[Optional[int]] = mapped_column(Integer)
    order_id: Mapped[Optional[int]] = mapped_column(Integer)
    collective_id: Mapped[Optional[int]] = mapped_column(ForeignKey("collectives.id"))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    collective: Mapped[Optional[Collective]] = relationship(back_populates="transactions")


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(primary_key=True)
    status: Mapped[str] = mapped_column(String(16), default=PENDING)
    amount: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3))
    description: Mapped[Optional[str]] = mapped_column(String(255))
    collective_id: Mapped[Optional[int]] = mapped_column(ForeignKey("collectives.id"))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    collective: Mapped[Optional[Collective]] = relationship(back_populates="expenses")


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(64))
    data: Mapped[Optional[Dict[str, Any]]]
    collective_id: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    collective_id: Mapped[int] = mapped_column(ForeignKey("collectives.id"))
    role: Mapped[str] = mapped_column(String(32))


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)

    # Not persisted; filled by populate_roles().
    roles_by_collective_id = None

    async def populate_roles(self, session: AsyncSession) -> Dict[int, List[str]]:
        if self.roles_by_collective_id is not None:
            return self.roles_by_collective_id
        rows = await session.execute(
            select(Member.collective_id, Member.role).where(Member.user_id == self.id)
        )
        roles: Dict[int, List[str]] = {}
        for collective_id, role in rows:
            roles.setdefault(collective_id, []).append(role)
        self.roles_by_collective_id = roles
        return roles

    def has_role(self, roles: List[str], collective_id: int) -> bool:
        if not self.roles_by_collective_id:
            return False
        return any(r in roles for r in self.roles_by_collective_id.get(collective_id, []))
