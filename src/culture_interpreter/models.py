"""SQLite schema, migrations, and data access helpers.

Only interpretation metadata is stored; message text never is.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict

from .utils import new_id, utc_now_iso

MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS interpretations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            culture_sender TEXT NOT NULL,
            culture_receiver TEXT NOT NULL,
            character_count INTEGER NOT NULL,
            interpretation_type TEXT NOT NULL,
            llm_provider TEXT NOT NULL,
            model TEXT NOT NULL,
            cost_usd REAL NOT NULL DEFAULT 0,
            response_time_ms INTEGER NOT NULL DEFAULT 0,
            tokens_input INTEGER NOT NULL DEFAULT 0,
            tokens_output INTEGER NOT NULL DEFAULT 0,
            tokens_cached INTEGER NOT NULL DEFAULT 0,
            streaming INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS usage_counters (
            user_id TEXT PRIMARY KEY,
            messages_used INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_interpretations_user_created ON interpretations(user_id, created_at);
        """,
    ),
    (
        2,
        """
        CREATE INDEX IF NOT EXISTS idx_interpretations_created ON interpretations(created_at);
        """,
    ),
]


def get_connection(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = {
        row["version"]
        for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
    }
    for version, sql in MIGRATIONS:
        if version in applied:
            continue
        conn.executescript(sql)
        conn.execute(
            "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
            (version, utc_now_iso()),
        )
    conn.commit()


def create_interpretation(
    conn: sqlite3.Connection,
    user_id: str,
    culture_sender: str,
    culture_receiver: str,
    character_count: int,
    interpretation_type: str,
    llm_provider: str,
    model: str,
    cost_usd: float,
    response_time_ms: int,
    tokens_input: int,
    tokens_output: int,
    tokens_cached: int,
    streaming: bool = False,
) -> Dict[str, Any]:
    interpretation_id = new_id()
    conn.execute(
        """
        INSERT INTO interpretations(
            id, user_id, created_at, culture_sender, culture_receiver, character_count,
            interpretation_type, llm_provider, model, cost_usd, response_time_ms,
            tokens_input, tokens_output, tokens_cached, streaming
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            interpretation_id,
            user_id,
            utc_now_iso(),
            culture_sender,
            culture_receiver,
            character_count,
            interpretation_type,
            llm_provider,
            model,
            cost_usd,
            response_time_ms,
            tokens_input,
            tokens_output,
            tokens_cached,
            1 if streaming else 0,
        ),
    )
    conn.commit()
    row = conn.execute("SELECT * FROM interpretations WHERE id = ?", (interpretation_id,)).fetchone()
    return dict(row)


def get_user_usage(conn: sqlite3.Connection, user_id: str) -> int:
    row = conn.execute("SELECT messages_used FROM usage_counters WHERE user_id = ?", (user_id,)).fetchone()
    return int(row["messages_used"]) if row else 0


def increment_user_usage(conn: sqlite3.Connection, user_id: str) -> int:
    conn.execute(
        """
        INSERT INTO usage_counters(user_id, messages_used, updated_at) VALUES (?, 1, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            messages_used = messages_used + 1,
            updated_at = excluded.updated_at
        """,
        (user_id, utc_now_iso()),
    )
    conn.commit()
    return get_user_usage(conn, user_id)


def get_cost_summary(conn: sqlite3.Connection) -> Dict[str, Any]:
    row = conn.execute(
        """
        SELECT
          COUNT(*) AS calls,
          COALESCE(SUM(tokens_input), 0) AS tokens_input,
          COALESCE(SUM(tokens_output), 0) AS tokens_output,
          COALESCE(SUM(tokens_cached), 0) AS tokens_cached,
          COALESCE(SUM(cost_usd), 0) AS cost_usd
        FROM interpretations
        """
    ).fetchone()
    return dict(row)


def sum_cost_since(conn: sqlite3.Connection, since_iso: str, user_id: str | None = None) -> float:
    query = "SELECT COALESCE(SUM(cost_usd), 0) AS cost_usd FROM interpretations WHERE created_at >= ?"
    params: list[Any] = [since_iso]
    if user_id is not None:
        query += " AND user_id = ?"
        params.append(user_id)
    row = conn.execute(query, params).fetchone()
    return float(row["cost_usd"])
