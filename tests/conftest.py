from __future__ import annotations

from pathlib import Path
import sys
from typing import Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from league_repo import LeagueRepo  # noqa: E402
from transfer_market.negotiation.store import InMemorySessionStore  # noqa: E402

SAVE_ID = "s1"
HUMAN = "HUM"
AI_SELLER = "AI1"
AI_BUYER = "AI2"

ATTRS = ("reflexes", "handling", "diving", "positioning", "composure", "tackling", "heading",
         "strength", "speed", "passing", "vision", "stamina", "dribbling", "shooting")


def add_player(
    repo: LeagueRepo,
    player_id: str,
    team_id: Optional[str],
    *,
    position: str = "MID",
    quality: int = 70,
    age: int = 26,
    contract_end_season: int = 4,
    wage: int = 40_000,
    market_value: int = 5_000_000,
    potential: int = 0,
    season_minutes: int = 0,
    save_id: str = SAVE_ID,
) -> None:
    repo.insert_player(
        save_id,
        player_id,
        name=f"Player {player_id}",
        age=age,
        position=position,
        attributes={a: quality for a in ATTRS},
        team_id=team_id,
        potential=potential or quality,
        contract_end_season=contract_end_season,
        wage=wage,
        market_value=market_value,
        season_minutes=season_minutes,
    )


@pytest.fixture()
def repo(tmp_path):
    r = LeagueRepo(tmp_path / "league.sqlite3")
    r.init_db()
    r.create_save(SAVE_ID, name="Test save", player_team_id=HUMAN, season=1, round=1)
    r.insert_team(SAVE_ID, HUMAN, name="Human FC", reputation=60, budget=20_000_000, wage_budget=2_000_000)
    r.insert_team(SAVE_ID, AI_SELLER, name="Seller FC", reputation=55, budget=15_000_000, wage_budget=2_000_000)
    r.insert_team(SAVE_ID, AI_BUYER, name="Buyer FC", reputation=70, budget=30_000_000, wage_budget=3_000_000)
    try:
        yield r
    finally:
        r.close()


@pytest.fixture()
def store():
    return InMemorySessionStore()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


@pytest.fixture()
def clock():
    return FakeClock()
