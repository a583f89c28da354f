from culture_interpreter.models import (
    MIGRATIONS,
    apply_migrations,
    create_interpretation,
    get_connection,
    get_cost_summary,
    get_user_usage,
    increment_user_usage,
)


REQUIRED_TABLES = {"schema_migrations", "interpretations", "usage_counters"}


def test_db_migrations_are_idempotent(tmp_path):
    db_path = str(tmp_path / "nested" / "app.db")

    with get_connection(db_path) as conn:
        apply_migrations(conn)
        apply_migrations(conn)
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        tables = {row["name"] for row in rows}
        versions = conn.execute("SELECT COUNT(*) AS n FROM schema_migrations").fetchone()["n"]

    assert REQUIRED_TABLES.issubset(tables)
    assert versions == len(MIGRATIONS)


def test_usage_counters_and_cost_summary():
    conn = get_connection(":memory:")
    apply_migrations(conn)

    assert get_user_usage(conn, "u") == 0
    assert increment_user_usage(conn, "u") == 1
    assert increment_user_usage(conn, "u") == 2

    create_interpretation(
        conn,
        user_id="u",
        culture_sender="dutch",
        culture_receiver="korean",
        character_count=42,
        interpretation_type="outbound",
        llm_provider="anthropic",
        model="m",
        cost_usd=0.01,
        response_time_ms=900,
        tokens_input=1000,
        tokens_output=100,
        tokens_cached=800,
        streaming=True,
    )
    summary = get_cost_summary(conn)
    assert summary["calls"] == 1
    assert summary["tokens_cached"] == 800
    assert summary["cost_usd"] == 0.01
