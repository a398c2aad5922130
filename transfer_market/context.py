from __future__ import annotations

"""Lookups shared by the request services (raise the taxonomy errors)."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .config import TransferConfig, get_transfer_config
from .errors import (
    LISTING_NOT_FOUND,
    NOT_OWNER,
    OFFER_NOT_FOUND,
    PLAYER_NOT_FOUND,
    SAVE_NOT_FOUND,
    TEAM_NOT_FOUND,
    AuthorizationError,
    NotFoundError,
)
from .types import Listing, Offer, PlayerView, TeamView
from .utils import safe_int

if TYPE_CHECKING:
    from league_repo import LeagueRepo


@dataclass(frozen=True, slots=True)
class SaveContext:
    save_id: str
    season: int
    round: int
    human_team_id: Optional[str]
    transfer_config: TransferConfig


def load_save(repo: "LeagueRepo", save_id: str, *, config: Optional[TransferConfig] = None) -> SaveContext:
    save = repo.get_save(save_id)
    if save is None:
        raise NotFoundError(SAVE_NOT_FOUND, f"Save not found: {save_id}")
    return SaveContext(
        save_id=str(save_id),
        season=safe_int(save.get("current_season"), 1),
        round=safe_int(save.get("current_round"), 1),
        human_team_id=save.get("player_team_id"),
        transfer_config=config or get_transfer_config(save.get("transfer_preset")),
    )


def require_player(repo: "LeagueRepo", save_id: str, player_id: str) -> PlayerView:
    player = repo.get_player(save_id, player_id)
    if player is None:
        raise NotFoundError(PLAYER_NOT_FOUND, f"Player not found: {player_id}")
    return player


def require_team(repo: "LeagueRepo", save_id: str, team_id: str) -> TeamView:
    team = repo.get_team(save_id, team_id)
    if team is None:
        raise NotFoundError(TEAM_NOT_FOUND, f"Team not found: {team_id}")
    return team


def require_offer(repo: "LeagueRepo", save_id: str, offer_id: str) -> Offer:
    offer = repo.get_offer(save_id, offer_id)
    if offer is None:
        raise NotFoundError(OFFER_NOT_FOUND, f"Offer not found: {offer_id}")
    return offer


def require_listing(repo: "LeagueRepo", save_id: str, player_id: str) -> Listing:
    listing = repo.get_listing(save_id, player_id)
    if listing is None:
        raise NotFoundError(LISTING_NOT_FOUND, f"Player is not listed: {player_id}")
    return listing


def authorize(acting_team_id: Optional[str], owner_team_id: Optional[str], *, what: str) -> None:
    """No-op when the caller identity is not supplied (internal callers)."""
    if acting_team_id is None:
        return
    if owner_team_id is None or str(acting_team_id) != str(owner_team_id):
        raise AuthorizationError(
            NOT_OWNER,
            f"Team {acting_team_id} may not act on this {what}",
            {"acting_team_id": acting_team_id, "owner_team_id": owner_team_id},
        )
