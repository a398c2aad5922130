# league_repo.py
# Developer note:
# - SQLite DB is the single source of truth (SSOT) for persisted market data (tables managed here).
# - All writes go through tagged mutation intents (transfer_market.mutations); no ad-hoc UPDATEs
#   from service code.
# - player_id, team_id, offer_id are opaque strings (uuid4 for rows created at runtime).
"""
LeagueRepository: persisted-data SSOT (SQLite)

Usage (CLI):
  python league_repo.py init --db <db_path>
  python league_repo.py seed-demo --db <db_path> [--save demo]

Python:
  from league_repo import LeagueRepo
  with LeagueRepo("<db_path>") as repo:
      repo.init_db()
      squad = repo.get_squad("demo", "T01")
"""

from __future__ import annotations

import argparse
import contextlib
import datetime as _dt
import json
import logging
import random
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from transfer_market.config import MAX_BOUND_VALUES_PER_CALL
from transfer_market.errors import BATCH_CHUNK_FAILED, ChunkedBatchError, ConflictError
from transfer_market.mutations import MutationIntent, Statement, chunk_statements, render
from transfer_market.types import OPEN_OFFER_STATUSES, Listing, Offer, PlayerView, TeamView

SCHEMA_VERSION = "1.2"

logger = logging.getLogger(__name__)
_WARN_COUNTS: Dict[str, int] = {}


def _warn_limited(code: str, msg: str, *, limit: int = 5) -> None:
    n = _WARN_COUNTS.get(code, 0)
    if n < limit:
        logger.warning("%s %s", code, msg, exc_info=True)
    _WARN_COUNTS[code] = n + 1


def _utc_now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).replace(microsecond=0).isoformat()


def _json_dumps(obj: Any) -> str:
    return json.dumps(
        obj,
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
        default=str,
    )


def _dedupe(ids: Iterable[str]) -> List[str]:
    out: List[str] = []
    seen: Set[str] = set()
    for x in ids:
        s = str(x)
        if s in seen:
            continue
        seen.add(s)
        out.append(s)
    return out


# SQLite default variable limit is often 999; chunk IN (...) lookups defensively.
_IN_CHUNK = 900


# ----------------------------
# Repository
# ----------------------------

class LeagueRepo:
    def __init__(self, db_path: str | Path, *, max_bound_values: int = MAX_BOUND_VALUES_PER_CALL):
        self.db_path = str(db_path)
        self.max_bound_values = int(max_bound_values)
        # check_same_thread=False: FastAPI runs sync routes on a worker pool; each request still
        # owns its own LeagueRepo instance.
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        self._conn.execute("PRAGMA journal_mode = WAL;")
        # Nested transaction support (SAVEPOINT) for callers that compose repo methods.
        self._savepoint_seq = 0

    def close(self) -> None:
        try:
            self._conn.close()
        except Exception:
            pass

    @contextlib.contextmanager
    def transaction(self):
        """
        Atomic transaction helper.

        Supports nesting via SAVEPOINT:
        - outermost: BEGIN ... COMMIT/ROLLBACK
        - nested: SAVEPOINT ... RELEASE (or ROLLBACK TO + RELEASE on error)
        """
        cur = self._conn.cursor()
        nested = bool(getattr(self._conn, "in_transaction", False))
        sp_name = None
        try:
            if nested:
                self._savepoint_seq += 1
                sp_name = f"sp_{self._savepoint_seq}"
                cur.execute(f"SAVEPOINT {sp_name};")
            else:
                self._conn.execute("BEGIN;")

            yield cur

            if nested and sp_name:
                cur.execute(f"RELEASE SAVEPOINT {sp_name};")
            else:
                self._conn.commit()
        except Exception:
            if nested and sp_name:
                # Roll back to the savepoint only; the outer transaction decides for itself.
                try:
                    cur.execute(f"ROLLBACK TO SAVEPOINT {sp_name};")
                finally:
                    cur.execute(f"RELEASE SAVEPOINT {sp_name};")
            else:
                self._conn.rollback()
            raise
        finally:
            try:
                cur.close()
            except Exception:
                pass

    # ------------------------
    # Schema
    # ------------------------

    def _ensure_table_columns(self, cur: sqlite3.Cursor, table: str, columns: Mapping[str, str]) -> None:
        """SQLite has no ADD COLUMN IF NOT EXISTS; check PRAGMA table_info first."""
        rows = cur.execute(f"PRAGMA table_info({table});").fetchall()
        existing = {r["name"] for r in rows}
        for col, ddl in columns.items():
            if col in existing:
                continue
            cur.execute(f"ALTER TABLE {table} ADD COLUMN {col} {ddl};")

    def init_db(self) -> None:
        """Apply SQLite schema (DDL + migrations) via db_schema."""
        from db_schema import apply_schema

        with self.transaction() as cur:
            apply_schema(
                cur,
                now=_utc_now_iso(),
                schema_version=SCHEMA_VERSION,
                ensure_columns=self._ensure_table_columns,
            )

    # ------------------------
    # Saves / calendar
    # ------------------------

    def create_save(
        self,
        save_id: str,
        *,
        name: str = "",
        player_team_id: Optional[str] = None,
        season: int = 1,
        round: int = 1,
        transfer_preset: str = "normal",
    ) -> None:
        with self.transaction() as cur:
            cur.execute(
                "INSERT INTO saves(id, name, player_team_id, current_season, current_round, transfer_preset, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                (save_id, name or save_id, player_team_id, int(season), int(round), transfer_preset, _utc_now_iso()),
            )

    def get_save(self, save_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute("SELECT * FROM saves WHERE id=?;", (save_id,)).fetchone()
        return dict(row) if row else None

    def set_calendar(self, save_id: str, *, season: int, round: int) -> None:
        """Written by the round-advance collaborator; the market only reads it."""
        with self.transaction() as cur:
            cur.execute(
                "UPDATE saves SET current_season=?, current_round=? WHERE id=?;",
                (int(season), int(round), save_id),
            )

    # ------------------------
    # Teams
    # ------------------------

    def insert_team(
        self,
        save_id: str,
        team_id: str,
        *,
        name: str,
        reputation: int = 50,
        budget: int = 0,
        wage_budget: int = 0,
        balance: Optional[int] = None,
    ) -> None:
        with self.transaction() as cur:
            cur.execute(
                "INSERT INTO teams(id, save_id, name, reputation, budget, wage_budget, balance) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    team_id,
                    save_id,
                    name,
                    int(reputation),
                    int(budget),
                    int(wage_budget),
                    int(budget if balance is None else balance),
                ),
            )

    def get_team(self, save_id: str, team_id: str) -> Optional[TeamView]:
        row = self._conn.execute("SELECT * FROM teams WHERE save_id=? AND id=?;", (save_id, team_id)).fetchone()
        return TeamView.from_row(row) if row else None

    def list_teams(self, save_id: str) -> List[TeamView]:
        rows = self._conn.execute("SELECT * FROM teams WHERE save_id=? ORDER BY id;", (save_id,)).fetchall()
        return [TeamView.from_row(r) for r in rows]

    def wage_bills(self, save_id: str) -> Dict[str, int]:
        """team_id -> sum of active player wages."""
        rows = self._conn.execute(
            "SELECT team_id, COALESCE(SUM(wage), 0) AS bill FROM players "
            "WHERE save_id=? AND team_id IS NOT NULL AND status='active' GROUP BY team_id;",
            (save_id,),
        ).fetchall()
        return {str(r["team_id"]): int(r["bill"] or 0) for r in rows}

    # ------------------------
    # Players
    # ------------------------

    def insert_player(
        self,
        save_id: str,
        player_id: str,
        *,
        name: str,
        age: int,
        position: str,
        attributes: Mapping[str, int],
        team_id: Optional[str] = None,
        potential: int = 0,
        morale: int = 70,
        contract_end_season: int = 0,
        wage: int = 0,
        market_value: int = 0,
        status: str = "active",
        season_minutes: int = 0,
    ) -> None:
        with self.transaction() as cur:
            cur.execute(
                "INSERT INTO players(id, save_id, team_id, name, age, position, attributes_json, potential, morale, "
                "contract_end_season, wage, market_value, status, season_minutes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    player_id,
                    save_id,
                    team_id,
                    name,
                    int(age),
                    str(position).upper(),
                    _json_dumps(dict(attributes)),
                    int(potential),
                    int(morale),
                    int(contract_end_season),
                    int(wage),
                    int(market_value),
                    status,
                    int(season_minutes),
                ),
            )

    def _player_from_row(self, row: sqlite3.Row) -> PlayerView:
        player = PlayerView.from_row(row)
        if not player.attributes and row["attributes_json"] not in (None, "", "{}"):
            _warn_limited("PLAYER_ATTRIBUTES_DECODE_FAILED", f"player_id={player.player_id}", limit=3)
        return player

    def get_player(self, save_id: str, player_id: str) -> Optional[PlayerView]:
        row = self._conn.execute("SELECT * FROM players WHERE save_id=? AND id=?;", (save_id, player_id)).fetchone()
        return self._player_from_row(row) if row else None

    def get_players(self, save_id: str, player_ids: Iterable[str]) -> Dict[str, PlayerView]:
        """Bulk lookup: player_id -> PlayerView (missing ids are omitted)."""
        ids = _dedupe(player_ids)
        out: Dict[str, PlayerView] = {}
        for i in range(0, len(ids), _IN_CHUNK):
            chunk = ids[i : i + _IN_CHUNK]
            placeholders = ",".join(["?"] * len(chunk))
            rows = self._conn.execute(
                f"SELECT * FROM players WHERE save_id=? AND id IN ({placeholders});",
                (save_id, *chunk),
            ).fetchall()
            for r in rows:
                p = self._player_from_row(r)
                out[p.player_id] = p
        return out

    def get_squad(self, save_id: str, team_id: str) -> List[PlayerView]:
        rows = self._conn.execute(
            "SELECT * FROM players WHERE save_id=? AND team_id=? AND status='active' ORDER BY id;",
            (save_id, team_id),
        ).fetchall()
        return [self._player_from_row(r) for r in rows]

    def get_squads(self, save_id: str) -> Dict[str, List[PlayerView]]:
        """team_id -> active squad, in one query (teams without players map to [])."""
        out: Dict[str, List[PlayerView]] = {t.team_id: [] for t in self.list_teams(save_id)}
        rows = self._conn.execute(
            "SELECT * FROM players WHERE save_id=? AND team_id IS NOT NULL AND status='active' ORDER BY id;",
            (save_id,),
        ).fetchall()
        for r in rows:
            p = self._player_from_row(r)
            out.setdefault(str(p.team_id), []).append(p)
        return out

    def list_free_agents(self, save_id: str) -> List[PlayerView]:
        rows = self._conn.execute(
            "SELECT * FROM players WHERE save_id=? AND team_id IS NULL AND status='active' ORDER BY id;",
            (save_id,),
        ).fetchall()
        return [self._player_from_row(r) for r in rows]

    # ------------------------
    # Listings
    # ------------------------

    def get_listing(self, save_id: str, player_id: str) -> Optional[Listing]:
        row = self._conn.execute(
            "SELECT * FROM transfer_listings WHERE save_id=? AND player_id=?;",
            (save_id, player_id),
        ).fetchone()
        return Listing.from_row(row) if row else None

    def list_listings(
        self,
        save_id: str,
        *,
        team_id: Optional[str] = None,
        exclude_team_id: Optional[str] = None,
    ) -> List[Listing]:
        sql = "SELECT * FROM transfer_listings WHERE save_id=?"
        params: List[Any] = [save_id]
        if team_id is not None:
            sql += " AND team_id=?"
            params.append(team_id)
        if exclude_team_id is not None:
            sql += " AND team_id<>?"
            params.append(exclude_team_id)
        sql += " ORDER BY listed_round, id;"
        return [Listing.from_row(r) for r in self._conn.execute(sql, params).fetchall()]

    def listed_player_ids(self, save_id: str) -> Set[str]:
        rows = self._conn.execute("SELECT player_id FROM transfer_listings WHERE save_id=?;", (save_id,)).fetchall()
        return {str(r["player_id"]) for r in rows}

    def offer_counts_since(self, save_id: str, listings: Sequence[Listing]) -> Dict[str, int]:
        """player_id -> number of offers created at or after the listing's round."""
        out: Dict[str, int] = {l.player_id: 0 for l in listings}
        by_player = {l.player_id: l.listed_round for l in listings}
        ids = list(by_player.keys())
        for i in range(0, len(ids), _IN_CHUNK):
            chunk = ids[i : i + _IN_CHUNK]
            placeholders = ",".join(["?"] * len(chunk))
            rows = self._conn.execute(
                f"SELECT player_id, created_round FROM transfer_offers WHERE save_id=? AND player_id IN ({placeholders});",
                (save_id, *chunk),
            ).fetchall()
            for r in rows:
                pid = str(r["player_id"])
                if int(r["created_round"]) >= by_player.get(pid, 0):
                    out[pid] = out.get(pid, 0) + 1
        return out

    # ------------------------
    # Offers
    # ------------------------

    def get_offer(self, save_id: str, offer_id: str) -> Optional[Offer]:
        row = self._conn.execute(
            "SELECT * FROM transfer_offers WHERE save_id=? AND id=?;",
            (save_id, offer_id),
        ).fetchone()
        return Offer.from_row(row) if row else None

    def list_offers(
        self,
        save_id: str,
        *,
        buyer_team_id: Optional[str] = None,
        seller_team_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Offer]:
        sql = "SELECT * FROM transfer_offers WHERE save_id=?"
        params: List[Any] = [save_id]
        if buyer_team_id is not None:
            sql += " AND to_team_id=?"
            params.append(buyer_team_id)
        if seller_team_id is not None:
            sql += " AND from_team_id=?"
            params.append(seller_team_id)
        if statuses is not None:
            sts = list(statuses)
            sql += f" AND status IN ({','.join(['?'] * len(sts))})"
            params.extend(sts)
        sql += " ORDER BY created_round, id;"
        return [Offer.from_row(r) for r in self._conn.execute(sql, params).fetchall()]

    def find_open_offer(self, save_id: str, player_id: str, buyer_team_id: str) -> Optional[Offer]:
        row = self._conn.execute(
            "SELECT * FROM transfer_offers WHERE save_id=? AND player_id=? AND to_team_id=? "
            "AND status IN ('pending','counter');",
            (save_id, player_id, buyer_team_id),
        ).fetchone()
        return Offer.from_row(row) if row else None

    def count_expirable_offers(self, save_id: str, current_round: int) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM transfer_offers "
            "WHERE save_id=? AND status IN ('pending','counter') AND expires_round < ?;",
            (save_id, int(current_round)),
        ).fetchone()
        return int(row["n"] or 0)

    def open_offer_pairs(self, save_id: str) -> Set[Tuple[str, str]]:
        """{(player_id, buyer_team_id)} for every open offer."""
        rows = self._conn.execute(
            f"SELECT player_id, to_team_id FROM transfer_offers WHERE save_id=? "
            f"AND status IN ({','.join(['?'] * len(OPEN_OFFER_STATUSES))});",
            (save_id, *OPEN_OFFER_STATUSES),
        ).fetchall()
        return {(str(r["player_id"]), str(r["to_team_id"])) for r in rows}

    # ------------------------
    # History
    # ------------------------

    def get_transfer(self, save_id: str, transfer_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute("SELECT * FROM transfers WHERE save_id=? AND id=?;", (save_id, transfer_id)).fetchone()
        return dict(row) if row else None

    def list_transfers(self, save_id: str, *, season: Optional[int] = None) -> List[Dict[str, Any]]:
        if season is None:
            rows = self._conn.execute("SELECT * FROM transfers WHERE save_id=? ORDER BY season, date;", (save_id,))
        else:
            rows = self._conn.execute(
                "SELECT * FROM transfers WHERE save_id=? AND season=? ORDER BY date;", (save_id, int(season))
            )
        return [dict(r) for r in rows.fetchall()]

    def list_transactions(self, save_id: str, *, team_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if team_id is None:
            rows = self._conn.execute("SELECT * FROM transactions WHERE save_id=? ORDER BY rowid;", (save_id,))
        else:
            rows = self._conn.execute(
                "SELECT * FROM transactions WHERE save_id=? AND team_id=? ORDER BY rowid;", (save_id, team_id)
            )
        return [dict(r) for r in rows.fetchall()]

    # ------------------------
    # Writes (mutation intents)
    # ------------------------

    def _execute(self, cur: sqlite3.Cursor, stmt: Statement) -> None:
        cur.execute(stmt.sql, stmt.params)
        if stmt.guard_code and cur.rowcount < 1:
            raise ConflictError(stmt.guard_code, stmt.guard_message or "guarded update matched no rows")

    def apply_intents(self, intents: Sequence[MutationIntent]) -> None:
        """Apply every intent in ONE transaction; any failure rolls the whole batch back."""
        statements = render(intents)
        if not statements:
            return
        with self.transaction() as cur:
            for stmt in statements:
                self._execute(cur, stmt)

    def apply_intents_chunked(
        self,
        intents: Sequence[MutationIntent],
        *,
        max_bound_values: Optional[int] = None,
    ) -> int:
        """Apply intents as sequential chunks bounded by the per-call bound-value limit.

        Each chunk is atomic; the sequence is not. A failure after the first chunk
        raises ChunkedBatchError carrying how many chunks committed.

        Returns:
            number of chunks applied.
        """
        limit = int(max_bound_values or self.max_bound_values)
        chunks = chunk_statements(render(intents), limit)
        for i, chunk in enumerate(chunks):
            try:
                with self.transaction() as cur:
                    for stmt in chunk:
                        self._execute(cur, stmt)
            except Exception as exc:
                logger.error(
                    "BATCH_CHUNK_FAILED chunk=%s/%s committed=%s",
                    i + 1,
                    len(chunks),
                    i,
                    exc_info=True,
                )
                raise ChunkedBatchError(
                    BATCH_CHUNK_FAILED,
                    f"chunk {i + 1}/{len(chunks)} failed: {exc}",
                    committed_chunks=i,
                    total_chunks=len(chunks),
                ) from exc
        return len(chunks)

    # ------------------------
    # Convenience
    # ------------------------

    def __enter__(self) -> "LeagueRepo":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ----------------------------
# Demo seed
# ----------------------------

_DEMO_ATTRS = (
    "reflexes", "handling", "diving", "positioning", "composure", "tackling", "heading",
    "strength", "speed", "passing", "vision", "stamina", "dribbling", "shooting",
)
_DEMO_SQUAD_SHAPE = (("GK", 3), ("DEF", 8), ("MID", 8), ("ATT", 6))


def seed_demo(repo: LeagueRepo, save_id: str = "demo", *, teams: int = 6, free_agents: int = 12, seed: int = 7) -> None:
    """Insert a small deterministic league (team T01 is the human club)."""
    rng = random.Random(seed)
    repo.create_save(save_id, name="Demo league", player_team_id="T01", season=1, round=1)

    def _player(pid: str, team_id: Optional[str], pos: str, quality: int) -> None:
        attrs = {a: max(30, min(95, quality + rng.randint(-8, 8))) for a in _DEMO_ATTRS}
        age = rng.randint(18, 35)
        repo.insert_player(
            save_id,
            pid,
            name=f"Player {pid}",
            age=age,
            position=pos,
            attributes=attrs,
            team_id=team_id,
            potential=min(99, quality + max(0, 26 - age) * 2),
            contract_end_season=1 + rng.randint(1, 4),
            wage=int(((quality / 50.0) ** 3) * 10_000),
            market_value=int(((quality / 50.0) ** 4) * 2_000_000),
        )

    n = 0
    for t in range(1, teams + 1):
        team_id = f"T{t:02d}"
        quality = 55 + t * 3
        repo.insert_team(
            save_id,
            team_id,
            name=f"Club {t:02d}",
            reputation=40 + t * 7,
            budget=5_000_000 * t,
            wage_budget=400_000 + 100_000 * t,
        )
        for pos, count in _DEMO_SQUAD_SHAPE:
            for _ in range(count):
                n += 1
                _player(f"P{n:05d}", team_id, pos, quality)
    for i in range(free_agents):
        n += 1
        pos = _DEMO_SQUAD_SHAPE[i % len(_DEMO_SQUAD_SHAPE)][0]
        _player(f"P{n:05d}", None, pos, 50 + rng.randint(0, 20))


# ----------------------------
# CLI
# ----------------------------

def _cmd_init(args) -> None:
    with LeagueRepo(args.db) as repo:
        repo.init_db()
    print(f"OK: initialized {args.db}")


def _cmd_seed_demo(args) -> None:
    with LeagueRepo(args.db) as repo:
        repo.init_db()
        seed_demo(repo, args.save, teams=args.teams)
    print(f"OK: seeded save={args.save} into {args.db}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    p = argparse.ArgumentParser(description="LeagueRepo (SQLite single source of truth)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="initialize DB schema")
    p_init.add_argument("--db", required=True, help="path to sqlite db file")
    p_init.set_defaults(func=_cmd_init)

    p_seed = sub.add_parser("seed-demo", help="initialize DB and insert a small demo league")
    p_seed.add_argument("--db", required=True, help="path to sqlite db file")
    p_seed.add_argument("--save", default="demo", help="save id to create")
    p_seed.add_argument("--teams", type=int, default=6, help="number of clubs")
    p_seed.set_defaults(func=_cmd_seed_demo)

    args = p.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
