from __future__ import annotations

from typing import Any, List, Optional

from graphql import (
    GraphQLArgument,
    GraphQLField,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLString,
)
from sqlalchemy import select

from store.models import Collective, Expense, Transaction, User


def _iso(attr: str):
    def resolve(obj: Any, info: Any) -> Optional[str]:
        value = getattr(obj, attr)
        return value.isoformat() if value is not None else None
    return resolve


def _attr(attr: str):
    return lambda obj, info: getattr(obj, attr)


async def _resolve_transaction_collective(transaction: Transaction, info: Any) -> Optional[Collective]:
    if transaction.collective_id is None:
        return None
    return await info.context.loaders.collective.load(transaction.collective_id)


async def _resolve_collective_transactions(collective: Collective, info: Any) -> List[Transaction]:
    return await info.context.loaders.transactions_by_collective.load(collective.id)


async def _resolve_collective_expenses(collective: Collective, info: Any, status: Optional[str] = None) -> List[Expense]:
    stmt = select(Expense).where(Expense.collective_id == collective.id).order_by(Expense.id)
    if status:
        stmt = stmt.where(Expense.status == status)
    return await info.context.db.scalars(stmt)


def _resolve_roles(user: User, info: Any) -> List[str]:
    roles = user.roles_by_collective_id or {}
    return [f"{collective_id}:{role}" for collective_id, names in sorted(roles.items()) for role in names]


TransactionType = GraphQLObjectType(
    "Transaction",
    lambda: {
        "id": GraphQLField(GraphQLNonNull(GraphQLInt)),
        "type": GraphQLField(GraphQLString),
        "amount": GraphQLField(GraphQLInt),
        "currency": GraphQLField(GraphQLString),
        "createdAt": GraphQLField(GraphQLString, resolve=_iso("created_at")),
        "collective": GraphQLField(CollectiveType, resolve=_resolve_transaction_collective),
    },
)

ExpenseType = GraphQLObjectType(
    "Expense",
    {
        "id": GraphQLField(GraphQLNonNull(GraphQLInt)),
        "status": GraphQLField(GraphQLString),
        "amount": GraphQLField(GraphQLInt),
        "currency": GraphQLField(GraphQLString),
        "description": GraphQLField(GraphQLString),
        "updatedAt": GraphQLField(GraphQLString, resolve=_iso("updated_at")),
    },
)

CollectiveType = GraphQLObjectType(
    "Collective",
    lambda: {
        "id": GraphQLField(GraphQLNonNull(GraphQLInt)),
        "slug": GraphQLField(GraphQLString),
        "name": GraphQLField(GraphQLString),
        "type": GraphQLField(GraphQLString),
        "tags": GraphQLField(GraphQLList(GraphQLString)),
        "currency": GraphQLField(GraphQLString),
        "createdAt": GraphQLField(GraphQLString, resolve=_iso("created_at")),
        "transactions": GraphQLField(GraphQLList(TransactionType), resolve=_resolve_collective_transactions),
        "expenses": GraphQLField(
            GraphQLList(ExpenseType),
            args={"status": GraphQLArgument(GraphQLString)},
            resolve=_resolve_collective_expenses,
        ),
    },
)

UserType = GraphQLObjectType(
    "User",
    {
        "id": GraphQLField(GraphQLNonNull(GraphQLInt)),
        "email": GraphQLField(GraphQLString),
        "firstName": GraphQLField(GraphQLString, resolve=_attr("first_name")),
        "lastName": GraphQLField(GraphQLString, resolve=_attr("last_name")),
        "roles": GraphQLField(GraphQLList(GraphQLString), resolve=_resolve_roles),
    },
)


async def _resolve_collective(root: Any, info: Any, slug: str) -> Optional[Collective]:
    return await info.context.db.scalar(select(Collective).where(Collective.slug == slug))


async def _resolve_collectives(root: Any, info: Any, type: Optional[str] = None) -> List[Collective]:
    stmt = select(Collective).order_by(Collective.id)
    if type:
        stmt = stmt.where(Collective.type == type)
    return await info.context.db.scalars(stmt)


def _resolve_me(root: Any, info: Any) -> Optional[User]:
    return info.context.remote_user


QueryType = GraphQLObjectType(
    "Query",
    {
        "collective": GraphQLField(
            CollectiveType,
            args={"slug": GraphQLArgument(GraphQLNonNull(GraphQLString))},
            resolve=_resolve_collective,
        ),
        "collectives": GraphQLField(
            GraphQLList(CollectiveType),
            args={"type": GraphQLArgument(GraphQLString)},
            resolve=_resolve_collectives,
        ),
        "me": GraphQLField(UserType, resolve=_resolve_me),
    },
)

schema = GraphQLSchema(query=QueryType)
