from conftest import AI_SELLER, HUMAN, SAVE_ID, add_player
from transfer_market.expiry import sweep_expired_offers
from transfer_market.mutations import InsertOffer


def _offer(repo, offer_id, player_id, expires_round, status="pending"):
    repo.apply_intents(
        [InsertOffer(offer_id, SAVE_ID, player_id, AI_SELLER, HUMAN, 1_000_000, 20_000, 2, status, 1, expires_round)]
    )


def test_offer_expires_only_after_its_expiry_round(repo):
    add_player(repo, "a1", AI_SELLER)
    _offer(repo, "o1", "a1", expires_round=5)

    assert sweep_expired_offers(repo, SAVE_ID, 5) == 0
    assert repo.get_offer(SAVE_ID, "o1").status == "pending"

    assert sweep_expired_offers(repo, SAVE_ID, 6) == 1
    offer = repo.get_offer(SAVE_ID, "o1")
    assert offer.status == "expired"
    assert offer.responded_round == 6


def test_sweep_ignores_closed_offers(repo):
    add_player(repo, "a1", AI_SELLER)
    add_player(repo, "a2", AI_SELLER)
    _offer(repo, "o1", "a1", expires_round=2, status="accepted")
    _offer(repo, "o2", "a2", expires_round=2, status="counter")

    assert sweep_expired_offers(repo, SAVE_ID, 9) == 1
    assert repo.get_offer(SAVE_ID, "o1").status == "accepted"
    assert repo.get_offer(SAVE_ID, "o2").status == "expired"
