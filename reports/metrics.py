from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from reports.filters import EMPTY, MetricFilter
from reports.timeframe import TimeWindow
from store import models
from store.models import Activity, Collective, Expense, Transaction


@dataclass(frozen=True)
class MoneyTotal:
    amount: int  # minor units
    currency: str


@dataclass(frozen=True)
class NewCollective:
    slug: str
    tags: Optional[List[str]]

    @property
    def is_open_source(self) -> bool:
        return bool(self.tags) and "open source" in self.tags


@dataclass
class ExpenseStats:
    count: int
    totals: List[MoneyTotal]


@dataclass
class ReportResult:
    """
    Metrics for one reporting window.

    Invariants:
      - every money list holds one entry per currency, ordered by currency code
      - max(len(a), len(b)) <= active_collective_count <= len(a) + len(b)
        where a/b are the two active-collective id sets
    """

    window: TimeWindow
    donation_count: int
    donation_totals: List[MoneyTotal]
    stripe_received_count: int
    paypal_received_count: int
    expenses: Dict[str, ExpenseStats]
    collectives_with_transactions: Set[int]
    collectives_with_expenses: Set[int]
    new_collectives: List[NewCollective] = field(default_factory=list)

    @property
    def active_collective_count(self) -> int:
        return len(self.collectives_with_transactions | self.collectives_with_expenses)


def build_filters(window: TimeWindow, excluded_collective_id: int) -> Dict[str, MetricFilter]:
    created = EMPTY.with_time_window("created_at", window)
    updated = EMPTY.with_time_window("updated_at", window)
    exclude_operator = EMPTY.excluding(excluded_collective_id)

    donation = (
        EMPTY.not_null("order_id")
        .where("platform_fee_in_host_currency", "lt", 0)
        .with_type(models.CREDIT)
    )

    filters = {
        "created": created,
        "updated": updated,
        "exclude_operator": exclude_operator,
        "donations": created.merge(donation, exclude_operator),
        "expenses": updated.merge(exclude_operator),
        "stripe_received": created.with_type(models.WEBHOOK_STRIPE_RECEIVED),
        "paypal_received": created.with_type(models.WEBHOOK_PAYPAL_RECEIVED),
        "new_collectives": created.with_type(models.COLLECTIVE),
        "active_transactions": created.merge(exclude_operator).with_collective_type(models.COLLECTIVE),
    }
    for status in models.EXPENSE_STATUSES:
        filters[f"expenses_{status.lower()}"] = filters["expenses"].with_status(status)
    return filters


class MetricsCollector:
    """
    Runs the weekly aggregate queries. Each query uses its own session so they
    can be awaited concurrently; the first failure propagates.
    """

    def __init__(self, sessionmaker: async_sessionmaker, excluded_collective_id: int) -> None:
        self.sessionmaker = sessionmaker
        self.excluded_collective_id = excluded_collective_id

    async def _scalar(self, stmt: Any) -> Any:
        async with self.sessionmaker() as session:
            return await session.scalar(stmt)

    async def _rows(self, stmt: Any) -> List[Tuple[Any, ...]]:
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return [tuple(row) for row in result.all()]

    async def count(self, model: Any, flt: MetricFilter) -> int:
        stmt = flt.apply(select(func.count()).select_from(model), model)
        return int(await self._scalar(stmt) or 0)

    async def sum_by_currency(self, model: Any, flt: MetricFilter) -> List[MoneyTotal]:
        stmt = select(model.currency, func.sum(model.amount)).select_from(model)
        stmt = flt.apply(stmt, model).group_by(model.currency).order_by(model.currency)
        return [MoneyTotal(int(total or 0), currency) for currency, total in await self._rows(stmt)]

    async def distinct_collective_ids(self, model: Any, flt: MetricFilter) -> Set[int]:
        stmt = flt.apply(select(model.collective_id).select_from(model).distinct(), model)
        return {collective_id for (collective_id,) in await self._rows(stmt) if collective_id is not None}

    async def new_collectives(self, flt: MetricFilter) -> List[NewCollective]:
        stmt = flt.apply(select(Collective.slug, Collective.tags), Collective).order_by(Collective.id)
        return [NewCollective(slug, tags) for slug, tags in await self._rows(stmt)]

    async def collect(self, window: TimeWindow) -> ReportResult:
        f = build_filters(window, self.excluded_collective_id)
        statuses = models.EXPENSE_STATUSES

        (
            donation_count,
            donation_totals,
            stripe_count,
            paypal_count,
            expense_counts,
            expense_totals,
            with_transactions,
            with_expenses,
            new_collectives,
        ) = await asyncio.gather(
            self.count(Transaction, f["donations"]),
            self.sum_by_currency(Transaction, f["donations"]),
            self.count(Activity, f["stripe_received"]),
            self.count(Activity, f["paypal_received"]),
            asyncio.gather(*(self.count(Expense, f[f"expenses_{s.lower()}"]) for s in statuses)),
            asyncio.gather(*(self.sum_by_currency(Expense, f[f"expenses_{s.lower()}"]) for s in statuses)),
            self.distinct_collective_ids(Transaction, f["active_transactions"]),
            self.distinct_collective_ids(Expense, f["expenses"]),
            self.new_collectives(f["new_collectives"]),
        )

        return ReportResult(
            window=window,
            donation_count=donation_count,
            donation_totals=donation_totals,
            stripe_received_count=stripe_count,
            paypal_received_count=paypal_count,
            expenses={
                status: ExpenseStats(count, totals)
                for status, count, totals in zip(statuses, expense_counts, expense_totals)
            },
            collectives_with_transactions=with_transactions,
            collectives_with_expenses=with_expenses,
            new_collectives=new_collectives,
        )
