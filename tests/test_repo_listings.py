import pytest

from conftest import AI_BUYER, AI_SELLER, HUMAN, SAVE_ID, add_player
from transfer_market import service
from transfer_market.errors import (
    PLAYER_ALREADY_LISTED,
    AuthorizationError,
    ConflictError,
    NotFoundError,
)


def test_listing_is_unique_per_player(repo):
    add_player(repo, "h1", HUMAN)
    listing_id = service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN, 2_000_000)
    assert repo.get_listing(SAVE_ID, "h1").listing_id == listing_id

    with pytest.raises(ConflictError) as ei:
        service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN, 3_000_000)
    assert ei.value.code == PLAYER_ALREADY_LISTED


def test_listing_defaults_to_valuation_price(repo):
    add_player(repo, "h1", HUMAN, market_value=4_000_000)
    service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN)
    assert repo.get_listing(SAVE_ID, "h1").asking_price == 4_000_000


def test_cannot_list_someone_elses_player(repo):
    add_player(repo, "a1", AI_SELLER)
    with pytest.raises(ConflictError):
        service.list_player_for_sale(repo, SAVE_ID, "a1", HUMAN)
    with pytest.raises(AuthorizationError):
        service.list_player_for_sale(repo, SAVE_ID, "a1", AI_SELLER, acting_team_id=HUMAN)


def test_remove_listing(repo):
    add_player(repo, "h1", HUMAN)
    service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN)
    service.remove_listing(repo, SAVE_ID, "h1", HUMAN, acting_team_id=HUMAN)
    assert repo.get_listing(SAVE_ID, "h1") is None
    with pytest.raises(NotFoundError):
        service.remove_listing(repo, SAVE_ID, "h1", HUMAN)


def test_market_view_excludes_own_listings(repo):
    add_player(repo, "h1", HUMAN)
    add_player(repo, "a1", AI_SELLER)
    add_player(repo, "fa1", None)
    service.list_player_for_sale(repo, SAVE_ID, "h1", HUMAN)
    service.list_player_for_sale(repo, SAVE_ID, "a1", AI_SELLER)

    market = service.get_market(repo, SAVE_ID, exclude_team_id=HUMAN)
    assert [l["player_id"] for l in market["listed"]] == ["a1"]
    assert [p["id"] for p in market["free_agents"]] == ["fa1"]
    assert service.get_team_listings(repo, SAVE_ID, AI_BUYER) == []
