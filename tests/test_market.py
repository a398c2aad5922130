import random

import pytest

from conftest import AI_BUYER, AI_SELLER, HUMAN, SAVE_ID, add_player
from league_repo import LeagueRepo
from transfer_market import service
from transfer_market.config import DEFAULT_TRANSFER_CONFIG
from transfer_market.errors import ChunkedBatchError
from transfer_market.market import process_ai_transfers
from transfer_market.mutations import InsertOffer


def _crowded_seller(repo, n=31):
    for i in range(n):
        add_player(repo, f"m{i:02d}", AI_SELLER, quality=60)


def test_round_expires_answers_lists_and_signs(repo):
    _crowded_seller(repo)
    add_player(repo, "a1", AI_SELLER)
    add_player(repo, "a2", AI_SELLER)
    add_player(repo, "fa1", None, position="GK")
    service.list_player_for_sale(repo, SAVE_ID, "a1", AI_SELLER, 3_000_000)
    repo.apply_intents(
        [
            InsertOffer("o1", SAVE_ID, "a1", AI_SELLER, HUMAN, 3_000_000, 45_000, 3, "pending", 1, 4),
            InsertOffer("old", SAVE_ID, "a2", AI_SELLER, HUMAN, 1_000_000, 45_000, 3, "pending", 1, 1),
        ]
    )

    result = process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(1))

    assert result.expired_offers == 1
    assert repo.get_offer(SAVE_ID, "old").status == "expired"
    assert repo.get_offer(SAVE_ID, "o1").status == "completed"
    assert repo.get_player(SAVE_ID, "a1").team_id == HUMAN
    assert 1 <= result.new_listings <= DEFAULT_TRANSFER_CONFIG.max_listings_per_team_per_round
    assert result.free_agent_signings == 1
    assert repo.get_player(SAVE_ID, "fa1").team_id in (AI_SELLER, AI_BUYER)
    assert len(result.completed_transfers) == 2


def test_ai_offers_respect_per_club_cap_and_skip_open_pairs(repo):
    _crowded_seller(repo, n=40)
    process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(3))
    process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 3, rng=random.Random(4))

    open_offers = repo.list_offers(SAVE_ID, statuses=("pending", "counter"))
    pairs = [(o.player_id, o.buyer_team_id) for o in open_offers]
    assert len(pairs) == len(set(pairs))
    for rnd in (2, 3):
        made = [o for o in repo.list_offers(SAVE_ID, buyer_team_id=AI_BUYER) if o.created_round == rnd]
        assert len(made) <= DEFAULT_TRANSFER_CONFIG.max_offers_per_team_per_round
    assert not repo.list_offers(SAVE_ID, buyer_team_id=HUMAN)


def test_human_players_are_never_sold_by_the_ai(repo):
    add_player(repo, "h1", HUMAN)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 9_000_000, 30_000, 3, "pending", 1, 4)])

    process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(1))

    assert repo.get_offer(SAVE_ID, "in1").status == "pending"
    assert repo.get_player(SAVE_ID, "h1").team_id == HUMAN


def test_ai_buyer_takes_an_affordable_human_counter(repo):
    add_player(repo, "h1", HUMAN)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])
    service.respond_to_offer(repo, SAVE_ID, "in1", "counter", 5_000_000, 35_000, acting_team_id=HUMAN)

    process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(1))

    assert repo.get_offer(SAVE_ID, "in1").status == "completed"
    assert repo.get_player(SAVE_ID, "h1").team_id == AI_BUYER
    assert repo.get_player(SAVE_ID, "h1").wage == 35_000
    assert repo.get_team(SAVE_ID, HUMAN).budget == 25_000_000


def test_stale_listing_is_churned_and_fresh_one_marked_down(repo):
    add_player(repo, "a1", AI_SELLER, market_value=4_000_000)
    add_player(repo, "a2", AI_SELLER, market_value=4_000_000)
    service.list_player_for_sale(repo, SAVE_ID, "a1", AI_SELLER)
    repo.set_calendar(SAVE_ID, season=1, round=4)
    service.list_player_for_sale(repo, SAVE_ID, "a2", AI_SELLER)

    # a1 listed in round 1, a2 in round 4; at round 8 a1 is 7 rounds old, a2 is 4.
    result = process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 8, rng=random.Random(1))

    assert result.removed_listings == 1
    assert repo.get_listing(SAVE_ID, "a1") is None
    a2 = repo.get_listing(SAVE_ID, "a2")
    assert a2 is not None
    assert a2.asking_price == 3_840_000


def test_chunk_failure_aborts_the_round(repo, monkeypatch):
    _crowded_seller(repo)

    def _boom(intents, **kw):
        raise ChunkedBatchError("BATCH_CHUNK_FAILED", "boom", committed_chunks=1, total_chunks=2)

    monkeypatch.setattr(repo, "apply_intents_chunked", _boom)
    with pytest.raises(ChunkedBatchError):
        process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(1))


def test_sale_to_lower_bid_drops_queued_answer_to_higher_bid(repo):
    add_player(repo, "x1", AI_SELLER)
    add_player(repo, "fa1", None, position="GK")
    repo.apply_intents(
        [
            InsertOffer("big", SAVE_ID, "x1", AI_SELLER, AI_BUYER, 40_000_000, 45_000, 3, "pending", 1, 4),
            InsertOffer("ok", SAVE_ID, "x1", AI_SELLER, HUMAN, 6_000_000, 45_000, 3, "pending", 1, 4),
        ]
    )

    result = process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(1))

    assert repo.get_offer(SAVE_ID, "ok").status == "completed"
    assert repo.get_offer(SAVE_ID, "big").status == "cancelled"
    assert repo.get_player(SAVE_ID, "x1").team_id == HUMAN
    assert result.free_agent_signings == 1


def test_ai_buyer_counter_sale_drops_queued_rejection(repo):
    add_player(repo, "x1", AI_SELLER)
    repo.apply_intents(
        [
            InsertOffer("low", SAVE_ID, "x1", AI_SELLER, HUMAN, 1_000_000, 45_000, 3, "pending", 1, 4),
            InsertOffer("ctr", SAVE_ID, "x1", AI_SELLER, AI_BUYER, 4_000_000, 45_000, 3, "counter", 1, 4),
        ]
    )

    process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 2, rng=random.Random(1))

    assert repo.get_offer(SAVE_ID, "ctr").status == "completed"
    assert repo.get_offer(SAVE_ID, "low").status == "cancelled"
    assert repo.get_player(SAVE_ID, "x1").team_id == AI_BUYER


def test_crowded_ai_club_releases_one_veteran_to_free_agency(repo):
    for i in range(21):
        add_player(repo, f"r{i:02d}", AI_SELLER, quality=70, season_minutes=1_200)
    add_player(repo, "vet", AI_SELLER, quality=60, age=35, wage=20_000)
    add_player(repo, "vet2", AI_SELLER, quality=60, age=36, wage=20_000)
    add_player(repo, "h1", HUMAN, quality=50, age=36)

    result = process_ai_transfers(repo, SAVE_ID, HUMAN, 1, 20, rng=random.Random(1))

    assert result.released_players == 1
    free = {p.player_id for p in repo.list_free_agents(SAVE_ID)}
    assert free == {"vet"}
    assert repo.get_player(SAVE_ID, "h1").team_id == HUMAN
    paid = repo.list_transactions(SAVE_ID, team_id=AI_SELLER)
    assert [t["category"] for t in paid] == ["release_compensation"]
    assert paid[0]["amount"] == 846_000
    assert repo.get_team(SAVE_ID, AI_SELLER).budget == 15_000_000 - 846_000


def _first_free_agent_signer(path, round_no):
    with LeagueRepo(path) as repo:
        repo.init_db()
        repo.create_save(SAVE_ID, name="Shuffle", player_team_id=HUMAN, season=1, round=round_no)
        repo.insert_team(SAVE_ID, HUMAN, name="Human FC", reputation=60, budget=20_000_000, wage_budget=2_000_000)
        for i in range(6):
            repo.insert_team(SAVE_ID, f"AI{i}", name=f"Club {i}", reputation=55, budget=15_000_000, wage_budget=2_000_000)
        add_player(repo, "fa1", None, position="GK")

        result = process_ai_transfers(repo, SAVE_ID, HUMAN, 1, round_no)

        assert result.free_agent_signings == 1
        return repo.get_player(SAVE_ID, "fa1").team_id


def test_free_agent_pick_order_replays_within_a_round(tmp_path):
    first = _first_free_agent_signer(tmp_path / "a.sqlite3", 5)
    again = _first_free_agent_signer(tmp_path / "b.sqlite3", 5)
    assert first == again


def test_free_agent_first_pick_rotates_across_rounds(tmp_path):
    signers = {_first_free_agent_signer(tmp_path / f"r{n}.sqlite3", n) for n in range(1, 9)}
    assert len(signers) > 1
    assert HUMAN not in signers
