# db_schema/core.py
"""SQLite schema: saves, teams and players.

This module contains *only* DDL and schema migrations.
It must not import LeagueRepo (to avoid circular imports).
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Mapping


# Signature compatible with LeagueRepo._ensure_table_columns(cur, table, columns)
EnsureColumnsFn = Callable[[sqlite3.Cursor, str, Mapping[str, str]], None]


def ddl(*, now: str, schema_version: str) -> str:
    """Return DDL SQL for core tables (as a single executescript string)."""
    return f"""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );

                INSERT INTO meta(key, value) VALUES ('schema_version', '{schema_version}')
                ON CONFLICT(key) DO UPDATE SET value=excluded.value;
                INSERT OR IGNORE INTO meta(key, value) VALUES ('created_at', '{now}');

                CREATE TABLE IF NOT EXISTS saves (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    player_team_id TEXT,
                    current_season INTEGER NOT NULL DEFAULT 1,
                    current_round INTEGER NOT NULL DEFAULT 1,
                    transfer_preset TEXT NOT NULL DEFAULT 'normal',
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS teams (
                    id TEXT PRIMARY KEY,
                    save_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    reputation INTEGER NOT NULL DEFAULT 50,
                    budget INTEGER NOT NULL DEFAULT 0,
                    wage_budget INTEGER NOT NULL DEFAULT 0,
                    balance INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(save_id) REFERENCES saves(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_teams_save ON teams(save_id);

                CREATE TABLE IF NOT EXISTS players (
                    id TEXT PRIMARY KEY,
                    save_id TEXT NOT NULL,
                    team_id TEXT,
                    name TEXT NOT NULL,
                    age INTEGER NOT NULL,
                    position TEXT NOT NULL,
                    attributes_json TEXT NOT NULL DEFAULT '{{}}',
                    potential INTEGER NOT NULL DEFAULT 0,
                    morale INTEGER NOT NULL DEFAULT 70,
                    contract_end_season INTEGER NOT NULL DEFAULT 0,
                    wage INTEGER NOT NULL DEFAULT 0,
                    market_value INTEGER NOT NULL DEFAULT 0,
                    season_minutes INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'active',
                    FOREIGN KEY(save_id) REFERENCES saves(id) ON DELETE CASCADE,
                    FOREIGN KEY(team_id) REFERENCES teams(id) ON DELETE SET NULL
                );

                CREATE INDEX IF NOT EXISTS idx_players_save_team ON players(save_id, team_id);
"""


def migrate(cur: sqlite3.Cursor, *, ensure_columns: EnsureColumnsFn) -> None:
    """Add columns introduced after the first schema version."""
    ensure_columns(
        cur,
        "saves",
        {
            "transfer_preset": "TEXT NOT NULL DEFAULT 'normal'",
        },
    )
    ensure_columns(
        cur,
        "players",
        {
            "season_minutes": "INTEGER NOT NULL DEFAULT 0",
        },
    )
