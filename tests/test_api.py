import time

import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient  # noqa: E402

from conftest import AI_BUYER, AI_SELLER, HUMAN, SAVE_ID, add_player  # noqa: E402
from transfer_market.mutations import InsertOffer  # noqa: E402


@pytest.fixture()
def client(repo, monkeypatch):
    monkeypatch.setenv("TRANSFER_DB_PATH", repo.db_path)
    monkeypatch.delenv("TRANSFER_ADMIN_TOKEN", raising=False)
    from app.main import app

    with TestClient(app) as c:
        yield c


def test_market_view(client, repo):
    add_player(repo, "fa1", None)
    res = client.get(f"/api/transfers/{SAVE_ID}/market", params={"exclude_team_id": HUMAN})
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert [p["id"] for p in body["free_agents"]] == ["fa1"]


def test_duplicate_listing_maps_to_409(client, repo):
    add_player(repo, "h1", HUMAN)
    payload = {"player_id": "h1", "team_id": HUMAN, "asking_price": 2_000_000}
    assert client.post(f"/api/transfers/{SAVE_ID}/listings", json=payload).status_code == 200

    res = client.post(f"/api/transfers/{SAVE_ID}/listings", json=payload)
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "PLAYER_ALREADY_LISTED"


def test_unknown_player_maps_to_404(client):
    res = client.post(
        f"/api/transfers/{SAVE_ID}/offers",
        json={"player_id": "ghost", "from_team_id": AI_SELLER, "to_team_id": HUMAN, "fee": 1, "wage": 1, "years": 2},
    )
    assert res.status_code == 404
    assert res.json()["detail"]["code"] == "PLAYER_NOT_FOUND"


def test_counter_without_terms_maps_to_400(client, repo):
    add_player(repo, "h1", HUMAN)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])
    res = client.post(f"/api/transfers/{SAVE_ID}/offers/in1/respond", json={"team_id": HUMAN, "action": "counter"})
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "INVALID_ACTION"


def test_acting_for_another_club_maps_to_403(client, repo):
    add_player(repo, "h1", HUMAN)
    repo.apply_intents([InsertOffer("in1", SAVE_ID, "h1", HUMAN, AI_BUYER, 4_000_000, 30_000, 3, "pending", 1, 4)])
    res = client.post(f"/api/transfers/{SAVE_ID}/offers/in1/respond", json={"team_id": AI_SELLER, "action": "accept"})
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "NOT_OWNER"


def test_out_of_range_wage_is_rejected_before_core(client, repo):
    add_player(repo, "fa1", None)
    res = client.post(
        f"/api/transfers/{SAVE_ID}/offers",
        json={"player_id": "fa1", "to_team_id": HUMAN, "wage": 20_000_000, "years": 2},
    )
    assert res.status_code == 422


def test_free_agent_offer_completes_immediately(client, repo):
    add_player(repo, "fa1", None, wage=40_000)
    res = client.post(
        f"/api/transfers/{SAVE_ID}/offers",
        json={"player_id": "fa1", "to_team_id": HUMAN, "wage": 23_800, "years": 3},
    )
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert repo.get_player(SAVE_ID, "fa1").team_id == HUMAN


def test_process_round_runs_in_background(client, repo):
    add_player(repo, "fa1", None, position="GK")
    res = client.post(f"/api/transfers/{SAVE_ID}/process-round", json={"round": 2})
    assert res.status_code == 200
    assert res.json()["status"] in ("running", "succeeded")

    deadline = time.monotonic() + 5
    status = client.get(f"/api/transfers/{SAVE_ID}/process-round").json()
    while status["status"] == "running" and time.monotonic() < deadline:
        time.sleep(0.05)
        status = client.get(f"/api/transfers/{SAVE_ID}/process-round").json()
    assert status["status"] == "succeeded"
    assert status["result"]["free_agent_signings"] == 1


def test_release_quote_then_release(client, repo):
    add_player(repo, "h1", HUMAN)
    quote = client.get(f"/api/transfers/{SAVE_ID}/teams/{HUMAN}/players/h1/release-quote")
    assert quote.status_code == 200
    assert quote.json()["fee"] == 565_000
    assert quote.json()["remaining_rounds"] == 113

    res = client.post(f"/api/transfers/{SAVE_ID}/release", json={"player_id": "h1", "team_id": HUMAN})
    assert res.status_code == 200
    assert res.json()["fee"] == 565_000
    assert repo.get_player(SAVE_ID, "h1").team_id is None
    assert repo.get_team(SAVE_ID, HUMAN).budget == 20_000_000 - 565_000


def test_admin_token_guards_api_posts(client, repo, monkeypatch):
    monkeypatch.setenv("TRANSFER_ADMIN_TOKEN", "s3cret")
    add_player(repo, "h1", HUMAN)
    payload = {"player_id": "h1", "team_id": HUMAN, "asking_price": 2_000_000}

    res = client.post(f"/api/transfers/{SAVE_ID}/listings", json=payload)
    assert res.status_code == 401
    assert res.json()["detail"] == "Unauthorized: invalid X-Admin-Token"
    wrong = client.post(f"/api/transfers/{SAVE_ID}/listings", json=payload, headers={"X-Admin-Token": "nope"})
    assert wrong.status_code == 401
    assert repo.get_listing(SAVE_ID, "h1") is None

    assert client.get(f"/api/transfers/{SAVE_ID}/market").status_code == 200
    ok = client.post(f"/api/transfers/{SAVE_ID}/listings", json=payload, headers={"X-Admin-Token": "s3cret"})
    assert ok.status_code == 200
    assert repo.get_listing(SAVE_ID, "h1") is not None
