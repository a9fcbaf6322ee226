"""
Helpers shared by the test suite.

Usage:
    from harness import utils

    await utils.reset_database(engine)
    result = await utils.graphql_query(query, {"slug": "webpack"}, user, session=session)
    await utils.wait_for_condition(lambda: spy.call_count == 1, timeout=2)

Environment variables:
    DEBUG: pattern; GraphQL queries are logged when it matches "graphql"
    API_KEY: application key injected into the "application" fixture
    STRIPE_SECRET_KEY: sandbox key used by create_stripe_token()
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import re
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import stripe
from graphql import ExecutionResult, graphql
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from api.context import RequestContext, make_request
from api.schema import schema
from store.database import reset_schema, restore_snapshot

logger = logging.getLogger("harness.graphql")

MOCKS_PATH = Path(__file__).parent / "mocks" / "data.json"
SNAPSHOTS_DIR = Path(__file__).parent / "snapshots"

TEST_CARD = {
    "number": "4242424242424242",
    "exp_month": 12,
    "exp_year": 2028,
    "cvc": "222",
}


class ConditionTimeoutError(TimeoutError):
    pass


def _load_mocks() -> Dict[str, Any]:
    with open(MOCKS_PATH, encoding="utf-8") as f:
        mocks = json.load(f)
    mocks["application"] = {"name": "client", "api_key": os.environ.get("API_KEY", "")}
    return mocks


_json_data = _load_mocks()


def data(key: str) -> Any:
    """
    Copy of a named mock fixture; callers may mutate it freely.

    List fixtures, and mappings keyed "0", "1", ..., come back as a new list
    of their values; other mappings as a new dict.

    Raises:
        KeyError: If no fixture has that name
    """
    item = copy.deepcopy(_json_data[key])
    if isinstance(item, list):
        return item
    if isinstance(item, dict) and item and all(k.isdigit() for k in item):
        return [item[k] for k in sorted(item, key=int)]
    return item


async def reset_database(engine: AsyncEngine) -> None:
    """Recreate the schema from scratch. Aborts the run if that fails."""
    try:
        await reset_schema(engine)
    except Exception as e:
        print(f"[harness] SQLAlchemy Error: Couldn't recreate the schema: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)


def load_database(name: str, target_path: str, snapshots_dir: Optional[Path] = None) -> Path:
    """Restore snapshot ``<snapshots_dir>/<name>.sqlite`` over ``target_path``."""
    snapshots_dir = SNAPSHOTS_DIR if snapshots_dir is None else Path(snapshots_dir)
    return restore_snapshot(str(snapshots_dir / f"{name}.sqlite"), target_path, force=True)


def stringify(obj: Any) -> str:
    """
    Compact, single-line JSON for text snapshot comparisons.

    Strings that start a line (keys and array items) lose their quotes.
    Key order is preserved, not sorted.
    """
    text = json.dumps(obj, indent=">>>>", ensure_ascii=False)
    text = re.sub(r'\n>>>>+"([^"]+)"', r"\1", text)
    return re.sub(r"\n|>>>>+", "", text)


def inspect_spy(spy: Any, args_count: int) -> None:
    """Print the first ``args_count`` positional args of each recorded call."""
    for i, call in enumerate(spy.call_args_list):
        print(f">>> spy.call_args_list[{i}]", dict(enumerate(call.args[:args_count])))


async def wait_for_condition(
    cond: Callable[[], Any],
    timeout: float = 10.0,
    delay: float = 0.0,
    step: float = 0.1,
    tag: Optional[str] = None,
) -> None:
    """
    Poll ``cond`` every ``step`` seconds until it is truthy, then sleep
    ``delay`` seconds.

    E.g. await wait_for_condition(lambda: send_message.call_count == 1)

    Raises:
        ConditionTimeoutError: If ``cond`` is still falsy after ``timeout`` seconds
    """

    async def poll() -> None:
        while True:
            met = bool(cond())
            if tag:
                print(f"{int(time.time() * 1000)} >>> {tag} is condition met? {met}")
            if met:
                return
            await asyncio.sleep(step)

    try:
        await asyncio.wait_for(poll(), timeout)
    except asyncio.TimeoutError as e:
        print(">>> wait_for_condition Timeout Error", file=sys.stderr)
        raise ConditionTimeoutError(f"Timeout waiting for condition {cond!r}") from e

    if delay:
        await asyncio.sleep(delay)


def _debug_graphql() -> bool:
    return bool(re.search("graphql", os.environ.get("DEBUG", "")))


async def graphql_query(
    query: str,
    variables: Optional[Dict[str, Any]] = None,
    remote_user: Any = None,
    session: Optional[AsyncSession] = None,
) -> ExecutionResult:
    """
    Execute ``query`` against the API schema as ``remote_user``.

    The user's roles are always refetched first. Returns the raw
    ExecutionResult; GraphQL errors are in ``result.errors``, not raised.

    Raises:
        RuntimeError: If ``remote_user`` is given without a ``session``
    """
    if remote_user is not None:
        if session is None:
            raise RuntimeError("graphql_query needs a session to refresh the roles of remote_user")
        remote_user.roles_by_collective_id = None
        await remote_user.populate_roles(session)

    if _debug_graphql():
        logger.debug("query %s", query)
        logger.debug("variables %s", variables)
        logger.debug("context %s", remote_user)

    context: RequestContext = make_request(remote_user, query, session=session)
    return await graphql(
        schema,
        query,
        root_value=None,
        context_value=context,
        variable_values=variables,
    )


def create_stripe_token(api_key: Optional[str] = None) -> str:
    """Tokenize the Stripe test card in sandbox mode and return the token id."""
    token = stripe.Token.create(
        card=dict(TEST_CARD),
        api_key=api_key or os.environ.get("STRIPE_SECRET_KEY"),
    )
    return token.id
