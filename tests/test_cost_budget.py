import logging
from datetime import datetime, timedelta, timezone

from culture_interpreter.boundaries import SQLiteCostBudget
from culture_interpreter.models import apply_migrations, create_interpretation, get_connection


def _conn_with_costs(costs):
    conn = get_connection(":memory:")
    apply_migrations(conn)
    for user_id, cost in costs:
        create_interpretation(
            conn,
            user_id=user_id,
            culture_sender="british",
            culture_receiver="german",
            character_count=30,
            interpretation_type="inbound",
            llm_provider="anthropic",
            model="m",
            cost_usd=cost,
            response_time_ms=500,
            tokens_input=100,
            tokens_output=50,
            tokens_cached=0,
        )
    return conn


def test_global_hourly_limit_refuses_everyone():
    conn = _conn_with_costs([("a", 0.006), ("b", 0.006)])
    budget = SQLiteCostBudget(conn, daily_usd=10.0, hourly_usd=0.01)

    decision = budget.check("c")

    assert decision.allowed is False
    assert decision.code == "SERVICE_OVERLOADED"


def test_user_daily_limit_only_refuses_that_user():
    conn = _conn_with_costs([("heavy", 0.006)])
    budget = SQLiteCostBudget(conn, user_daily_usd=0.005)

    assert budget.check("heavy").allowed is False
    assert budget.check("light").allowed is True


def test_spend_from_an_earlier_day_does_not_count():
    conn = _conn_with_costs([("a", 5.0)])
    tomorrow = lambda: datetime.now(timezone.utc) + timedelta(days=1)
    budget = SQLiteCostBudget(conn, daily_usd=1.0, hourly_usd=1.0, user_daily_usd=1.0, clock=tomorrow)

    assert budget.check("a").allowed is True


def test_near_limit_warns_and_disabled_layers_are_skipped(caplog):
    conn = _conn_with_costs([("a", 0.9)])
    with caplog.at_level(logging.WARNING):
        assert SQLiteCostBudget(conn, daily_usd=1.0).check("a").allowed is True
    assert "warning threshold" in caplog.text

    assert SQLiteCostBudget(conn).check("a").allowed is True


def test_database_failure_lets_request_through(caplog):
    conn = _conn_with_costs([])
    budget = SQLiteCostBudget(conn, daily_usd=0.0)
    conn.close()

    with caplog.at_level(logging.ERROR):
        assert budget.check("a").allowed is True
    assert "Cost budget check failed" in caplog.text


def test_limits_from_config():
    conn = _conn_with_costs([])
    budget = SQLiteCostBudget.from_config(conn, {"cost_limits": {"daily_usd": 20, "hourly_usd": None}})

    assert budget.daily_usd == 20.0
    assert budget.hourly_usd is None
    assert budget.user_daily_usd is None
