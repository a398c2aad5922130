from transfer_market.config import DEFAULT_TRANSFER_CONFIG
from transfer_market.policy import (
    PositionNeed,
    buy_decision,
    free_agent_decision,
    position_needs,
    select_player_to_release,
    select_players_to_list,
    sell_decision,
)
from transfer_market.types import PlayerView

MID_ATTRS = {"passing": 70, "vision": 70, "stamina": 70, "dribbling": 70, "positioning": 70, "tackling": 70}


def _player(pid="p1", **kw) -> PlayerView:
    base = dict(
        player_id=pid,
        position="MID",
        age=26,
        potential=70,
        attributes=dict(MID_ATTRS),
        contract_end_season=4,
        wage=30_000,
        market_value=5_000_000,
        team_id="AI1",
    )
    base.update(kw)
    return PlayerView(**base)


def test_sell_decision_accepts_at_asking_price():
    d = sell_decision(1_000_000, 1_000_000, 30_000, 25, _player(), 1)
    assert d.action == "accept"


def test_sell_decision_rejects_far_below_asking():
    d = sell_decision(1_000_000, 500_000, 30_000, 25, _player(), 1)
    assert d.action == "reject"


def test_sell_decision_counters_between_bid_and_asking():
    d = sell_decision(1_000_000, 800_000, 30_000, 25, _player(), 1)
    assert d.action == "counter"
    assert 800_000 < d.amount <= 1_000_000
    assert d.wage >= 33_000


def test_sell_decision_is_eager_for_surplus_players():
    d = sell_decision(1_000_000, 820_000, 30_000, 32, _player(), 1)
    assert d.action == "accept"


def test_sell_decision_treats_unknown_squad_size_as_zero():
    d = sell_decision(1_000_000, 900_000, 30_000, None, _player(), 1)
    assert d.action in ("accept", "counter", "reject")


def test_buy_decision_never_exceeds_budget_or_wage_room():
    needs = {"MID": PositionNeed(count=5, ideal=9, best_overall=65)}
    d = buy_decision(_player(), 4_000_000, 5_000_000, 400_000, 65, needs, 50, DEFAULT_TRANSFER_CONFIG)
    assert d.will_buy
    assert d.offer_amount <= 5_000_000
    assert d.offered_wage <= 400_000
    assert d.contract_years == 3


def test_buy_decision_declines_when_unaffordable():
    needs = {"MID": PositionNeed(count=5, ideal=9, best_overall=65)}
    d = buy_decision(_player(), 4_000_000, 1_000_000, 400_000, 65, needs, 50)
    assert not d.will_buy
    assert d.reason == "FEE_UNAFFORDABLE"


def test_buy_decision_declines_without_need():
    needs = {"MID": PositionNeed(count=9, ideal=9, best_overall=80)}
    d = buy_decision(_player(), 1_000_000, 50_000_000, 400_000, 65, needs, 50)
    assert not d.will_buy
    assert d.reason == "NO_POSITION_NEED"


def test_free_agent_decision_counters_at_midpoint():
    d = free_agent_decision(28_000, 18_000, 50, 0)
    assert d.action == "counter"
    assert d.wage == 23_000


def test_free_agent_decision_resolves_in_final_round():
    assert free_agent_decision(28_000, 20_000, 50, 2).action == "accept"
    assert free_agent_decision(28_000, 19_000, 50, 2).action == "reject"


def test_select_players_to_list_picks_surplus_and_is_capped():
    squad = [_player(pid=f"m{i}", attributes={k: 50 + i for k in MID_ATTRS}) for i in range(31)]
    picked = select_players_to_list(squad, 1)
    assert 0 < len(picked) <= DEFAULT_TRANSFER_CONFIG.max_listings_per_team_per_round
    assert len({p.player_id for p in picked}) == len(picked)
    assert position_needs(squad)["MID"].surplus > 0


def _crowded(n=21):
    return [_player(f"r{i:02d}", season_minutes=1_200) for i in range(n)]


VETERAN_ATTRS = {k: 60 for k in MID_ATTRS}


def test_release_picks_old_declining_player_from_crowded_squad():
    vet = _player("vet", age=35, attributes=dict(VETERAN_ATTRS), wage=20_000)
    pick = select_player_to_release(_crowded() + [vet], 10_000_000, 1, 20)

    assert pick is not None
    player, quote = pick
    assert player.player_id == "vet"
    # 18 + 76 rounds at 20k, outlook 0.1, half settled
    assert quote.fee == 846_000


def test_release_needs_a_crowded_squad():
    vet = _player("vet", age=35, attributes=dict(VETERAN_ATTRS), wage=20_000)
    assert select_player_to_release(_crowded(19) + [vet], 10_000_000, 1, 20) is None


def test_release_keeps_minimum_cover_at_position():
    keeper = _player("g1", position="GK", attributes={"reflexes": 60}, season_minutes=1_200)
    vet = _player("vet", position="GK", age=35, attributes={}, wage=20_000)
    assert select_player_to_release(_crowded() + [keeper, vet], 10_000_000, 1, 20) is None


def test_release_skips_listed_players_and_costly_contracts():
    vet = _player("vet", age=35, attributes=dict(VETERAN_ATTRS), wage=20_000)
    assert select_player_to_release(_crowded() + [vet], 10_000_000, 1, 20, exclude={"vet"}) is None

    long_deal = _player("vet", age=34, attributes=dict(VETERAN_ATTRS), wage=20_000, contract_end_season=6)
    assert select_player_to_release(_crowded() + [long_deal], 10_000_000, 1, 1) is None
