from dataclasses import replace
import threading

import pytest

from conftest import AI_BUYER, AI_SELLER, HUMAN, SAVE_ID, add_player
from transfer_market import service
from transfer_market.config import DEFAULT_NEGOTIATION_CONFIG
from transfer_market.errors import (
    NEGOTIATION_BUSY,
    NEGOTIATION_OFFER_NOT_IMPROVED,
    AuthorizationError,
    ConflictError,
)
from transfer_market.mutations import InsertOffer
from transfer_market.negotiation.service import negotiate_incoming_offer, negotiate_transfer


def _listed_target(repo, asking=10_000_000):
    add_player(repo, "a1", AI_SELLER, wage=40_000)
    service.list_player_for_sale(repo, SAVE_ID, "a1", AI_SELLER, asking)


def _bid(repo, store, fee, wage=50_000, nid=None, action=None, player_id="a1", seller=AI_SELLER):
    return negotiate_transfer(
        repo,
        SAVE_ID,
        player_id,
        seller,
        HUMAN,
        {"fee": fee, "wage": wage, "years": 3},
        nid,
        action,
        store=store,
    )


def test_ten_million_listing_resolves_by_round_two(repo, store):
    _listed_target(repo)

    r0 = _bid(repo, store, 6_000_000)
    assert r0.round == 0
    assert r0.ai_response.action == "counter"
    assert r0.ai_response.counter_fee == 8_000_000
    assert r0.can_counter
    assert repo.get_offer(SAVE_ID, r0.offer_id).status == "counter"

    r1 = _bid(repo, store, 6_500_000, nid=r0.negotiation_id)
    assert r1.round == 1
    assert r1.ai_response.action == "counter"
    assert r1.ai_response.counter_fee == 8_500_000
    assert r1.offer_id == r0.offer_id

    r2 = _bid(repo, store, 7_000_000, nid=r0.negotiation_id)
    assert r2.round == 2
    assert r2.ai_response.action in ("accept", "reject")
    assert r2.ai_response.action == "reject"
    assert not r2.can_counter
    assert repo.get_offer(SAVE_ID, r0.offer_id).status == "rejected"
    assert store.get(r0.negotiation_id) is None


def test_final_round_accepts_within_tolerance(repo, store):
    _listed_target(repo)
    r0 = _bid(repo, store, 6_000_000)
    _bid(repo, store, 6_500_000, nid=r0.negotiation_id)
    r2 = _bid(repo, store, 10_000_000, nid=r0.negotiation_id)

    assert r2.ai_response.action == "accept"
    assert r2.completed is not None
    assert r2.completed.final_fee == 10_000_000
    assert repo.get_player(SAVE_ID, "a1").team_id == HUMAN
    assert repo.get_team(SAVE_ID, HUMAN).budget == 10_000_000


def test_offer_that_does_not_improve_by_five_percent_is_refused(repo, store):
    _listed_target(repo)
    r0 = _bid(repo, store, 6_000_000)

    with pytest.raises(ConflictError) as ei:
        _bid(repo, store, 6_200_000, nid=r0.negotiation_id)
    assert ei.value.code == NEGOTIATION_OFFER_NOT_IMPROVED
    assert store.get(r0.negotiation_id).round == 0

    r1 = _bid(repo, store, 6_000_000, wage=53_000, nid=r0.negotiation_id)
    assert r1.round == 1


def test_accepting_the_ai_counter_completes_at_counter_terms(repo, store):
    _listed_target(repo)
    r0 = _bid(repo, store, 6_000_000)
    done = _bid(repo, store, 0, nid=r0.negotiation_id, action="accept")

    assert done.completed.final_fee == 8_000_000
    assert repo.get_offer(SAVE_ID, r0.offer_id).status == "completed"
    assert repo.get_team(SAVE_ID, AI_SELLER).budget == 23_000_000


def test_walkaway_cancels_the_open_offer(repo, store):
    _listed_target(repo)
    r0 = _bid(repo, store, 6_000_000)
    out = _bid(repo, store, 0, nid=r0.negotiation_id, action="walkaway")

    assert out.ai_response.action == "walkaway"
    assert repo.get_offer(SAVE_ID, r0.offer_id).status == "cancelled"
    assert store.get(r0.negotiation_id) is None


def test_lost_session_restarts_and_adopts_open_offer(repo, store):
    _listed_target(repo)
    r0 = _bid(repo, store, 6_000_000)
    store.delete(r0.negotiation_id)

    again = _bid(repo, store, 6_100_000, nid=r0.negotiation_id)
    assert again.round == 0
    assert again.offer_id == r0.offer_id
    assert len(repo.list_offers(SAVE_ID, buyer_team_id=HUMAN)) == 1


def test_free_agent_accepts_wage_at_threshold(repo, store):
    add_player(repo, "fa1", None, wage=40_000)
    res = _bid(repo, store, 5_000_000, wage=23_800, player_id="fa1", seller=None)

    assert res.ai_response.action == "accept"
    assert res.completed.final_fee == 0
    assert repo.get_player(SAVE_ID, "fa1").team_id == HUMAN
    assert repo.list_transactions(SAVE_ID) == []


def test_negotiating_for_another_club_is_not_allowed(repo, store):
    _listed_target(repo)
    with pytest.raises(AuthorizationError):
        negotiate_transfer(
            repo, SAVE_ID, "a1", AI_SELLER, HUMAN, {"fee": 6_000_000, "wage": 50_000, "years": 3},
            store=store, acting_team_id=AI_BUYER,
        )


def test_concurrent_call_with_same_id_is_busy(repo, store):
    _listed_target(repo)
    r0 = _bid(repo, store, 6_000_000)
    holding = threading.Event()
    release = threading.Event()

    def _hold():
        with store.lock(r0.negotiation_id):
            holding.set()
            release.wait(5)

    t = threading.Thread(target=_hold)
    t.start()
    try:
        assert holding.wait(5)
        with pytest.raises(ConflictError) as ei:
            negotiate_transfer(
                repo, SAVE_ID, "a1", AI_SELLER, HUMAN, {"fee": 7_000_000, "wage": 50_000, "years": 3},
                r0.negotiation_id, store=store,
                config=replace(DEFAULT_NEGOTIATION_CONFIG, lock_timeout_seconds=0.05),
            )
        assert ei.value.code == NEGOTIATION_BUSY
    finally:
        release.set()
        t.join()
    assert store.get(r0.negotiation_id).round == 0


def test_incoming_counter_then_accept(repo, store):
    add_player(repo, "h1", HUMAN)
    service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN, 5_000_000)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])

    r0 = negotiate_incoming_offer(repo, SAVE_ID, "in1", "counter", {"fee": 6_000_000}, store=store, acting_team_id=HUMAN)
    assert r0.ai_response.action == "counter"
    assert r0.ai_response.counter_fee == 5_000_000
    offer = repo.get_offer(SAVE_ID, "in1")
    assert (offer.status, offer.fee, offer.counter_fee) == ("counter", 5_000_000, 6_000_000)

    r1 = negotiate_incoming_offer(
        repo, SAVE_ID, "in1", "counter", {"fee": 5_100_000}, r0.negotiation_id, store=store, acting_team_id=HUMAN
    )
    assert r1.ai_response.action == "accept"
    assert r1.completed.final_fee == 5_100_000
    assert repo.get_player(SAVE_ID, "h1").team_id == AI_BUYER
    assert repo.get_team(SAVE_ID, HUMAN).budget == 25_100_000


def test_incoming_demand_far_above_reservation_is_rejected(repo, store):
    add_player(repo, "h1", HUMAN)
    service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN, 5_000_000)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])

    res = negotiate_incoming_offer(repo, SAVE_ID, "in1", "counter", {"fee": 9_000_000}, store=store)
    assert res.ai_response.action == "reject"
    assert repo.get_offer(SAVE_ID, "in1").status == "rejected"


def test_incoming_negotiation_requires_the_selling_club(repo, store):
    add_player(repo, "h1", HUMAN)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])
    with pytest.raises(AuthorizationError):
        negotiate_incoming_offer(repo, SAVE_ID, "in1", "accept", store=store, acting_team_id=AI_SELLER)


def _incoming(repo):
    add_player(repo, "h1", HUMAN)
    service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN, 5_000_000)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])


def _demand(repo, store, fee, nid=None):
    return negotiate_incoming_offer(repo, SAVE_ID, "in1", "counter", {"fee": fee}, nid, store=store, acting_team_id=HUMAN)


def test_incoming_final_round_accepts_demand_within_tolerance(repo, store):
    _incoming(repo)
    r0 = _demand(repo, store, 7_000_000)
    assert (r0.ai_response.action, r0.ai_response.counter_fee) == ("counter", 5_000_000)
    r1 = _demand(repo, store, 6_600_000, r0.negotiation_id)
    assert (r1.round, r1.ai_response.counter_fee) == (1, 5_250_000)

    r2 = _demand(repo, store, 6_000_000, r0.negotiation_id)

    assert r2.round == 2
    assert r2.ai_response.action == "accept"
    assert r2.ai_response.reason == "FINAL_ROUND_WITHIN_TOLERANCE"
    assert r2.completed.final_fee == 6_000_000
    assert repo.get_player(SAVE_ID, "h1").team_id == AI_BUYER
    assert repo.get_team(SAVE_ID, HUMAN).budget == 26_000_000
    assert store.get(r0.negotiation_id) is None


def test_incoming_final_round_rejects_demand_outside_tolerance(repo, store):
    _incoming(repo)
    r0 = _demand(repo, store, 7_000_000)
    _demand(repo, store, 6_600_000, r0.negotiation_id)

    r2 = _demand(repo, store, 6_200_000, r0.negotiation_id)

    assert r2.round == 2
    assert r2.ai_response.action == "reject"
    assert r2.ai_response.reason == "FINAL_ROUND_TOO_HIGH"
    assert not r2.can_counter
    assert repo.get_offer(SAVE_ID, "in1").status == "rejected"
    assert repo.get_player(SAVE_ID, "h1").team_id == HUMAN
    assert store.get(r0.negotiation_id) is None


def test_incoming_demand_must_come_down_five_percent(repo, store):
    _incoming(repo)
    r0 = _demand(repo, store, 7_000_000)

    with pytest.raises(ConflictError) as ei:
        _demand(repo, store, 6_800_000, r0.negotiation_id)
    assert ei.value.code == NEGOTIATION_OFFER_NOT_IMPROVED
    assert store.get(r0.negotiation_id).round == 0
    offer = repo.get_offer(SAVE_ID, "in1")
    assert (offer.status, offer.fee, offer.counter_fee) == ("counter", 5_000_000, 7_000_000)

    r1 = _demand(repo, store, 6_600_000, r0.negotiation_id)
    assert r1.round == 1


def test_free_agent_counters_then_signs_inside_final_wage_band(repo, store):
    add_player(repo, "fa1", None, wage=40_000)
    r0 = _bid(repo, store, 0, wage=16_000, player_id="fa1", seller=None)
    assert (r0.ai_response.action, r0.ai_response.counter_wage) == ("counter", 22_000)
    r1 = _bid(repo, store, 0, wage=17_000, nid=r0.negotiation_id, player_id="fa1", seller=None)
    assert (r1.round, r1.ai_response.counter_wage) == (1, 23_200)

    r2 = _bid(repo, store, 0, wage=22_000, nid=r0.negotiation_id, player_id="fa1", seller=None)

    assert r2.round == 2
    assert r2.ai_response.reason == "FINAL_ROUND_WITHIN_TOLERANCE"
    assert r2.completed.final_wage == 22_000
    player = repo.get_player(SAVE_ID, "fa1")
    assert (player.team_id, player.wage) == (HUMAN, 22_000)


def test_free_agent_walks_when_final_wage_is_below_band(repo, store):
    add_player(repo, "fa1", None, wage=40_000)
    r0 = _bid(repo, store, 0, wage=16_000, player_id="fa1", seller=None)
    _bid(repo, store, 0, wage=17_000, nid=r0.negotiation_id, player_id="fa1", seller=None)

    r2 = _bid(repo, store, 0, wage=21_000, nid=r0.negotiation_id, player_id="fa1", seller=None)

    assert r2.ai_response.action == "reject"
    assert r2.ai_response.reason == "FINAL_ROUND_TOO_LOW"
    assert repo.get_player(SAVE_ID, "fa1").team_id is None
    assert repo.get_offer(SAVE_ID, r0.offer_id).status == "rejected"
