from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from store.models import Collective, Transaction


class SerializedSession:
    """
    AsyncSession wrapper for resolvers. GraphQL resolves sibling fields
    concurrently and an AsyncSession allows one operation at a time.
    """

    def __init__(self, session: Optional[AsyncSession]) -> None:
        self.session = session
        self._lock = asyncio.Lock()

    async def scalars(self, stmt: Any) -> List[Any]:
        if self.session is None:
            raise RuntimeError("No database session attached to this request")
        async with self._lock:
            return list(await self.session.scalars(stmt))

    async def scalar(self, stmt: Any) -> Any:
        if self.session is None:
            raise RuntimeError("No database session attached to this request")
        async with self._lock:
            return await self.session.scalar(stmt)


class CollectiveLoader:
    """Collectives by id, cached for the lifetime of one request."""

    def __init__(self, db: SerializedSession) -> None:
        self.db = db
        self._cache: Dict[int, Optional[Collective]] = {}

    async def load_many(self, ids: Iterable[int]) -> List[Optional[Collective]]:
        ids = list(ids)
        missing = [i for i in dict.fromkeys(ids) if i not in self._cache]
        if missing:
            rows = await self.db.scalars(select(Collective).where(Collective.id.in_(missing)))
            found = {c.id: c for c in rows}
            for i in missing:
                self._cache[i] = found.get(i)
        return [self._cache[i] for i in ids]

    async def load(self, collective_id: int) -> Optional[Collective]:
        (collective,) = await self.load_many([collective_id])
        return collective


class TransactionsByCollectiveLoader:
    def __init__(self, db: SerializedSession) -> None:
        self.db = db
        self._cache: Dict[int, List[Transaction]] = {}

    async def load(self, collective_id: int) -> List[Transaction]:
        if collective_id not in self._cache:
            self._cache[collective_id] = await self.db.scalars(
                select(Transaction)
                .where(Transaction.collective_id == collective_id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            )
        return self._cache[collective_id]


class Loaders:
    def __init__(self, db: SerializedSession, remote_user: Any = None) -> None:
        self.remote_user = remote_user
        self.collective = CollectiveLoader(db)
        self.transactions_by_collective = TransactionsByCollectiveLoader(db)


def loaders(db: SerializedSession, remote_user: Any = None) -> Loaders:
    return Loaders(db, remote_user=remote_user)
