import pytest

from conftest import AI_BUYER, AI_SELLER, HUMAN, SAVE_ID, add_player
from transfer_market import service
from transfer_market.errors import OFFER_NOT_ACCEPTED, ConflictError
from transfer_market.ledger import complete_transfer
from transfer_market.mutations import InsertOffer


def _accepted_offer(repo, offer_id="o1", player_id="a1", seller=AI_SELLER, buyer=HUMAN, fee=3_000_000):
    repo.apply_intents(
        [
            InsertOffer(
                offer_id=offer_id,
                save_id=SAVE_ID,
                player_id=player_id,
                seller_team_id=seller,
                buyer_team_id=buyer,
                fee=fee,
                wage=45_000,
                contract_years=3,
                status="accepted",
                created_round=1,
                expires_round=4,
            )
        ]
    )


def test_completion_moves_player_money_and_history(repo):
    add_player(repo, "a1", AI_SELLER)
    service.list_player_for_sale(repo, SAVE_ID, "a1", AI_SELLER, 3_000_000)
    _accepted_offer(repo)

    transfer_id = complete_transfer(repo, SAVE_ID, "o1")

    player = repo.get_player(SAVE_ID, "a1")
    assert player.team_id == HUMAN
    assert player.wage == 45_000
    assert player.contract_end_season == 4
    assert player.morale == 80
    assert repo.get_team(SAVE_ID, HUMAN).budget == 17_000_000
    assert repo.get_team(SAVE_ID, AI_SELLER).budget == 18_000_000
    assert repo.get_offer(SAVE_ID, "o1").status == "completed"
    assert repo.get_listing(SAVE_ID, "a1") is None
    assert repo.get_transfer(SAVE_ID, transfer_id)["fee"] == 3_000_000
    kinds = sorted((t["team_id"], t["type"]) for t in repo.list_transactions(SAVE_ID))
    assert kinds == [(AI_SELLER, "income"), (HUMAN, "expense")]


def test_double_completion_fails_and_applies_once(repo):
    add_player(repo, "a1", AI_SELLER)
    _accepted_offer(repo)
    complete_transfer(repo, SAVE_ID, "o1")

    with pytest.raises(ConflictError) as ei:
        complete_transfer(repo, SAVE_ID, "o1")
    assert ei.value.code == OFFER_NOT_ACCEPTED
    assert repo.get_team(SAVE_ID, HUMAN).budget == 17_000_000
    assert len(repo.list_transfers(SAVE_ID)) == 1


def test_completion_cancels_competing_offers(repo):
    add_player(repo, "a1", AI_SELLER)
    repo.apply_intents(
        [
            InsertOffer("o2", SAVE_ID, "a1", AI_SELLER, AI_BUYER, 2_000_000, 30_000, 2, "pending", 1, 4),
        ]
    )
    _accepted_offer(repo)
    complete_transfer(repo, SAVE_ID, "o1", season=1, round=3)

    competing = repo.get_offer(SAVE_ID, "o2")
    assert competing.status == "cancelled"
    assert competing.responded_round == 3


def test_free_agent_completion_writes_no_transactions(repo):
    add_player(repo, "fa1", None)
    _accepted_offer(repo, player_id="fa1", seller=None, fee=0)

    complete_transfer(repo, SAVE_ID, "o1")

    assert repo.get_player(SAVE_ID, "fa1").team_id == HUMAN
    assert repo.list_transactions(SAVE_ID) == []
    assert repo.get_team(SAVE_ID, HUMAN).budget == 20_000_000
    assert repo.list_transfers(SAVE_ID)[0]["from_team_id"] is None


def test_completion_fails_when_player_already_moved(repo):
    add_player(repo, "a1", AI_BUYER)
    _accepted_offer(repo)
    with pytest.raises(ConflictError):
        complete_transfer(repo, SAVE_ID, "o1")
    assert repo.get_offer(SAVE_ID, "o1").status == "accepted"
