import asyncio
import time
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest import mock

import pytest
import stripe
from sqlalchemy import inspect, select

from harness import utils
from store import models
from store.database import create_engine_from_url, session_factory
from store.models import Collective, Member, Transaction, User


def test_data_returns_independent_copies():
    first = utils.data("collective1")
    first["slug"] = "changed"
    assert utils.data("collective1")["slug"] == "webpack"


def test_data_list_fixture():
    transactions = utils.data("transactions")
    assert isinstance(transactions, list)
    assert len(transactions) == 3
    transactions.pop()
    assert len(utils.data("transactions")) == 3


def test_data_index_keyed_fixture_becomes_list():
    expenses = utils.data("expenses")
    assert [e["description"] for e in expenses] == ["Team lunch", "Meetup venue"]


def test_data_application_fixture():
    assert utils.data("application")["name"] == "client"


def test_data_unknown_key():
    with pytest.raises(KeyError):
        utils.data("nope")


def test_stringify_single_line():
    assert utils.stringify({"a": [1, 2]}) == "{a: [1,2]}"
    assert utils.stringify({"tags": ["open source", "js"], "n": None}) == "{tags: [open source,js],n: null}"
    assert "\n" not in utils.stringify({"a": {"b": [{"c": 1}]}})


def test_stringify_is_stable_and_order_sensitive():
    assert utils.stringify({"a": [1, 2]}) == utils.stringify({"a": [1, 2]})
    assert utils.stringify({"a": 1, "b": 2}) != utils.stringify({"b": 2, "a": 1})


def test_wait_for_condition_true_resolves_within_one_step():
    t0 = time.monotonic()
    asyncio.run(utils.wait_for_condition(lambda: True, step=0.1))
    assert time.monotonic() - t0 < 0.1


def test_wait_for_condition_times_out():
    t0 = time.monotonic()
    with pytest.raises(utils.ConditionTimeoutError):
        asyncio.run(utils.wait_for_condition(lambda: False, timeout=0.05, step=0.01))
    assert time.monotonic() - t0 < 0.5


def test_wait_for_condition_polls_until_met():
    calls = []

    def cond():
        calls.append(1)
        return len(calls) >= 3

    asyncio.run(utils.wait_for_condition(cond, timeout=1, step=0.01))
    assert len(calls) == 3


def test_wait_for_condition_delay_after_success_does_not_time_out():
    t0 = time.monotonic()
    asyncio.run(utils.wait_for_condition(lambda: True, timeout=0.05, delay=0.1))
    assert time.monotonic() - t0 >= 0.1


def test_wait_for_condition_tag_logs_each_check(capsys):
    asyncio.run(utils.wait_for_condition(lambda: True, tag="email sent"))
    assert "email sent is condition met? True" in capsys.readouterr().out


def test_make_request_builds_fresh_loaders():
    user = SimpleNamespace(id=1)
    a = utils.make_request(user, "{ me { id } }")
    b = utils.make_request(user, "{ me { id } }")
    assert a.remote_user is user
    assert a.body == {"query": "{ me { id } }"}
    assert a.loaders is not b.loaders


def _graph_rows():
    created = datetime(2024, 2, 28, tzinfo=timezone.utc)
    return [
        Collective(id=2, slug="webpack", type=models.COLLECTIVE, tags=["open source"], created_at=created),
        Collective(id=3, slug="brusselstogether", type=models.COLLECTIVE, tags=["meetup"], created_at=created),
        Transaction(id=1, type=models.CREDIT, amount=1000, currency="USD", collective_id=2, created_at=created),
        Transaction(id=2, type=models.CREDIT, amount=2500, currency="USD", collective_id=2, created_at=created),
        User(id=1, email="xavier+test@example.com", first_name="Xavier"),
        Member(id=1, user_id=1, collective_id=2, role="ADMIN"),
    ]


async def _query(url, query, variables=None, as_user=True):
    engine = create_engine_from_url(url)
    try:
        async with session_factory(engine)() as session:
            user = None
            if as_user:
                user = await session.scalar(select(User).where(User.id == 1))
                user.roles_by_collective_id = {99: ["HOST"]}  # stale
            return await utils.graphql_query(query, variables, user, session=session)
    finally:
        await engine.dispose()


def test_graphql_query_collective(seed):
    url = seed(_graph_rows())
    result = asyncio.run(_query(
        url,
        "query ($slug: String!) { collective(slug: $slug) { slug tags transactions { amount collective { slug } } } }",
        {"slug": "webpack"},
    ))
    assert result.errors is None
    collective = result.data["collective"]
    assert collective["slug"] == "webpack"
    assert collective["tags"] == ["open source"]
    assert sorted(t["amount"] for t in collective["transactions"]) == [1000, 2500]
    assert {t["collective"]["slug"] for t in collective["transactions"]} == {"webpack"}


def test_graphql_query_refreshes_roles(seed):
    url = seed(_graph_rows())
    result = asyncio.run(_query(url, "{ me { email firstName roles } }"))
    assert result.errors is None
    assert result.data["me"] == {"email": "xavier+test@example.com", "firstName": "Xavier", "roles": ["2:ADMIN"]}


def test_graphql_query_anonymous(seed):
    url = seed(_graph_rows())
    result = asyncio.run(_query(url, "{ me { email } collectives { slug } }", as_user=False))
    assert result.data["me"] is None
    assert [c["slug"] for c in result.data["collectives"]] == ["webpack", "brusselstogether"]


def test_graphql_query_returns_errors(seed):
    url = seed(_graph_rows())
    result = asyncio.run(_query(url, "{ nope }", as_user=False))
    assert result.data is None
    assert result.errors


def test_graphql_query_debug_logging(seed, monkeypatch, caplog):
    url = seed(_graph_rows())
    monkeypatch.setenv("DEBUG", "app:*,graphql")
    with caplog.at_level("DEBUG", logger="harness.graphql"):
        asyncio.run(_query(url, "{ me { email } }"))
    assert "query { me { email } }" in caplog.text


def test_reset_database(db_url):
    async def run():
        engine = create_engine_from_url(db_url)
        try:
            await utils.reset_database(engine)
            async with engine.connect() as conn:
                return await conn.run_sync(lambda c: inspect(c).get_table_names())
        finally:
            await engine.dispose()

    assert {"collectives", "transactions", "expenses", "activities", "users", "members"} <= set(asyncio.run(run()))


def test_reset_database_failure_aborts(monkeypatch, capsys):
    async def broken(engine):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(utils, "reset_schema", broken)
    with pytest.raises(SystemExit) as exc:
        asyncio.run(utils.reset_database(object()))
    assert exc.value.code == 1
    assert "Couldn't recreate the schema" in capsys.readouterr().err


def test_load_database_overwrites_target(tmp_path):
    snapshots = tmp_path / "snapshots"
    snapshots.mkdir()
    (snapshots / "opencollective_dvl.sqlite").write_bytes(b"snapshot")
    target = tmp_path / "db" / "test.sqlite"
    target.parent.mkdir()
    target.write_bytes(b"old")

    utils.load_database("opencollective_dvl", str(target), snapshots_dir=snapshots)
    assert target.read_bytes() == b"snapshot"


def test_load_database_missing_snapshot(tmp_path):
    with pytest.raises(FileNotFoundError):
        utils.load_database("missing", str(tmp_path / "x.sqlite"), snapshots_dir=tmp_path)


def test_create_stripe_token(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="tok_123")

    monkeypatch.setattr(stripe.Token, "create", fake_create)
    assert utils.create_stripe_token("sk_test_abc") == "tok_123"
    assert captured["card"]["number"] == "4242424242424242"
    assert (captured["card"]["exp_month"], captured["card"]["exp_year"]) == (12, 2028)
    assert captured["api_key"] == "sk_test_abc"


def test_inspect_spy(capsys):
    spy = mock.Mock()
    spy("a", "b", "c")
    spy("d")
    utils.inspect_spy(spy, 2)
    out = capsys.readouterr().out
    assert ">>> spy.call_args_list[0] {0: 'a', 1: 'b'}" in out
    assert ">>> spy.call_args_list[1] {0: 'd'}" in out


def test_graphql_query_with_user_requires_session():
    user = SimpleNamespace(id=1, roles_by_collective_id=None)
    with pytest.raises(RuntimeError, match="needs a session"):
        asyncio.run(utils.graphql_query("{ me { email } }", None, user))
