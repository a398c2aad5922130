# db_schema/transfers.py
"""SQLite schema: transfer market tables.

Listings, offers, completed transfers and the money ledger.
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Mapping


EnsureColumnsFn = Callable[[sqlite3.Cursor, str, Mapping[str, str]], None]


def ddl(*, now: str, schema_version: str) -> str:
    _ = (now, schema_version)
    return """
                CREATE TABLE IF NOT EXISTS transfer_listings (
                    id TEXT PRIMARY KEY,
                    save_id TEXT NOT NULL,
                    player_id TEXT NOT NULL,
                    team_id TEXT NOT NULL,
                    asking_price INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'available',
                    listed_round INTEGER NOT NULL,
                    FOREIGN KEY(save_id) REFERENCES saves(id) ON DELETE CASCADE,
                    FOREIGN KEY(player_id) REFERENCES players(id) ON DELETE CASCADE,
                    FOREIGN KEY(team_id) REFERENCES teams(id) ON DELETE CASCADE
                );

                -- At most one active listing per (save, player).
                CREATE UNIQUE INDEX IF NOT EXISTS uq_transfer_listings_save_player
                    ON transfer_listings(save_id, player_id);

                CREATE TABLE IF NOT EXISTS transfer_offers (
                    id TEXT PRIMARY KEY,
                    save_id TEXT NOT NULL,
                    player_id TEXT NOT NULL,
                    from_team_id TEXT,
                    to_team_id TEXT NOT NULL,
                    fee INTEGER NOT NULL DEFAULT 0,
                    wage INTEGER NOT NULL DEFAULT 0,
                    contract_years INTEGER NOT NULL DEFAULT 1,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending','counter','accepted','rejected','expired','completed','cancelled')),
                    counter_fee INTEGER,
                    counter_wage INTEGER,
                    created_round INTEGER NOT NULL,
                    expires_round INTEGER NOT NULL,
                    responded_round INTEGER,
                    FOREIGN KEY(save_id) REFERENCES saves(id) ON DELETE CASCADE,
                    FOREIGN KEY(player_id) REFERENCES players(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_transfer_offers_save_status
                    ON transfer_offers(save_id, status);

                -- At most one open offer per (player, buyer).
                CREATE UNIQUE INDEX IF NOT EXISTS uq_transfer_offers_open_pair
                    ON transfer_offers(save_id, player_id, to_team_id)
                    WHERE status IN ('pending','counter');

                CREATE TABLE IF NOT EXISTS transfers (
                    id TEXT PRIMARY KEY,
                    save_id TEXT NOT NULL,
                    player_id TEXT NOT NULL,
                    from_team_id TEXT,
                    to_team_id TEXT NOT NULL,
                    fee INTEGER NOT NULL DEFAULT 0,
                    wage INTEGER NOT NULL DEFAULT 0,
                    season INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    FOREIGN KEY(save_id) REFERENCES saves(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_transfers_save_season ON transfers(save_id, season);

                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    save_id TEXT NOT NULL,
                    team_id TEXT NOT NULL,
                    type TEXT NOT NULL CHECK (type IN ('income','expense')),
                    category TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    description TEXT,
                    season INTEGER NOT NULL,
                    round INTEGER NOT NULL,
                    FOREIGN KEY(save_id) REFERENCES saves(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_transactions_team ON transactions(save_id, team_id);
"""
