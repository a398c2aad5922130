from __future__ import annotations

"""Request-side transfer operations (market views, listings, plain offers, releases).

Live negotiations live in :mod:`transfer_market.negotiation.service`; the
per-round AI pass lives in :mod:`transfer_market.market`. Everything here is
synchronous and raises the :mod:`transfer_market.errors` taxonomy.
"""

import logging
import sqlite3
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from . import ledger
from .context import (
    authorize,
    load_save,
    require_offer,
    require_player,
    require_team,
)
from .errors import (
    DUPLICATE_OPEN_OFFER,
    INSUFFICIENT_BUDGET,
    INVALID_ACTION,
    INVALID_TEAMS,
    LISTING_NOT_FOUND,
    OFFER_HAS_NO_COUNTER,
    OFFER_INVALID_TRANSITION,
    PLAYER_ALREADY_LISTED,
    PLAYER_NOT_AVAILABLE,
    PLAYER_NOT_WITH_TEAM,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .market import process_ai_transfers
from .mutations import DeleteListing, InsertListing, InsertOffer, SetOfferStatus
from .policy import free_agent_decision, sell_decision
from .types import OfferResponse, PlayerView, ReleaseQuote
from .utils import new_id
from .validation import validate_fee, validate_terms, validate_wage
from .valuation import asking_price as valuation_asking_price
from .valuation import expected_free_agent_wage, listing_status, overall, release_compensation

if TYPE_CHECKING:
    from league_repo import LeagueRepo

logger = logging.getLogger(__name__)

__all__ = [
    "accept_counter_offer",
    "complete_transfer",
    "get_market",
    "get_team_listings",
    "get_release_quote",
    "get_team_offers",
    "get_transfer_history",
    "list_player_for_sale",
    "make_offer",
    "process_ai_transfers",
    "release_player",
    "remove_listing",
    "respond_to_offer",
]


# -----------------------------------------------------------------------------
# Read views
# -----------------------------------------------------------------------------


def _player_payload(player: PlayerView) -> Dict[str, Any]:
    return {**player.to_payload(), "overall": overall(player)}


def get_market(repo: "LeagueRepo", save_id: str, exclude_team_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Open listings (optionally excluding one club's own) plus every free agent."""
    load_save(repo, save_id)
    listings = repo.list_listings(save_id, exclude_team_id=exclude_team_id)
    players = repo.get_players(save_id, [l.player_id for l in listings])

    listed: List[Dict[str, Any]] = []
    for l in listings:
        player = players.get(l.player_id)
        if player is None:
            continue
        listed.append({**l.to_payload(), "player": _player_payload(player)})

    free_agents = [_player_payload(p) for p in repo.list_free_agents(save_id)]
    return {"listed": listed, "free_agents": free_agents}


def get_team_listings(repo: "LeagueRepo", save_id: str, team_id: str) -> List[Dict[str, Any]]:
    require_team(repo, save_id, team_id)
    return [l.to_payload() for l in repo.list_listings(save_id, team_id=team_id)]


def get_team_offers(repo: "LeagueRepo", save_id: str, team_id: str) -> Dict[str, List[Dict[str, Any]]]:
    """Offers for a club's players (``incoming``) and offers it made (``outgoing``)."""
    require_team(repo, save_id, team_id)
    incoming = repo.list_offers(save_id, seller_team_id=team_id)
    outgoing = repo.list_offers(save_id, buyer_team_id=team_id)
    return {
        "incoming": [o.to_payload() for o in incoming],
        "outgoing": [o.to_payload() for o in outgoing],
    }


def get_transfer_history(repo: "LeagueRepo", save_id: str, *, season: Optional[int] = None) -> List[Dict[str, Any]]:
    load_save(repo, save_id)
    return repo.list_transfers(save_id, season=season)


# -----------------------------------------------------------------------------
# Listings
# -----------------------------------------------------------------------------


def list_player_for_sale(
    repo: "LeagueRepo",
    save_id: str,
    player_id: str,
    team_id: str,
    asking_price: Optional[int] = None,
    *,
    acting_team_id: Optional[str] = None,
) -> str:
    """Put a club's player on the market. Returns the listing id."""
    authorize(acting_team_id, team_id, what="listing")
    ctx = load_save(repo, save_id)
    player = require_player(repo, save_id, player_id)
    if player.team_id != team_id:
        raise ConflictError(
            PLAYER_NOT_WITH_TEAM,
            "Player is not owned by this club",
            {"player_id": player_id, "team_id": team_id},
        )

    price = validate_fee(asking_price) if asking_price is not None else valuation_asking_price(player, ctx.season)
    if repo.get_listing(save_id, player_id) is not None:
        raise ConflictError(PLAYER_ALREADY_LISTED, "Player is already listed", {"player_id": player_id})

    listing_id = new_id()
    try:
        repo.apply_intents(
            [
                InsertListing(
                    listing_id=listing_id,
                    save_id=save_id,
                    player_id=player_id,
                    team_id=team_id,
                    asking_price=price,
                    status=listing_status(player, ctx.season),
                    listed_round=ctx.round,
                )
            ]
        )
    except sqlite3.IntegrityError as exc:
        raise ConflictError(PLAYER_ALREADY_LISTED, "Player is already listed", {"player_id": player_id}) from exc

    logger.info("PLAYER_LISTED save=%s player=%s team=%s asking=%s", save_id, player_id, team_id, price)
    return listing_id


def remove_listing(
    repo: "LeagueRepo",
    save_id: str,
    player_id: str,
    team_id: str,
    *,
    acting_team_id: Optional[str] = None,
) -> None:
    authorize(acting_team_id, team_id, what="listing")
    listing = repo.get_listing(save_id, player_id)
    if listing is None:
        raise NotFoundError(LISTING_NOT_FOUND, f"Player is not listed: {player_id}")
    authorize(team_id, listing.team_id, what="listing")
    repo.apply_intents([DeleteListing(save_id, player_id)])


# -----------------------------------------------------------------------------
# Offers
# -----------------------------------------------------------------------------


def make_offer(
    repo: "LeagueRepo",
    save_id: str,
    player_id: str,
    from_team_id: Optional[str],
    to_team_id: str,
    fee: Any,
    wage: Any,
    years: Any,
    *,
    acting_team_id: Optional[str] = None,
) -> OfferResponse:
    """Place a bid. AI sellers and free agents answer at once; human sellers answer later."""
    fee_i, wage_i, years_i = validate_terms(fee, wage, years)
    authorize(acting_team_id, to_team_id, what="offer")
    seller_id = str(from_team_id) if from_team_id else None
    if seller_id is not None and seller_id == str(to_team_id):
        raise ValidationError(INVALID_TEAMS, "A club cannot bid for its own player")

    ctx = load_save(repo, save_id)
    player = require_player(repo, save_id, player_id)
    buyer = require_team(repo, save_id, to_team_id)
    if player.status != "active":
        raise ConflictError(PLAYER_NOT_AVAILABLE, "Player is not available", {"player_id": player_id})
    if player.team_id != seller_id:
        raise ConflictError(
            PLAYER_NOT_WITH_TEAM,
            "Player is not with the selling club",
            {"player_id": player_id, "team_id": player.team_id, "expected": seller_id},
        )
    if seller_id is None:
        fee_i = 0
    if fee_i > buyer.budget:
        raise ConflictError(INSUFFICIENT_BUDGET, "Fee exceeds the transfer budget", {"fee": fee_i, "budget": buyer.budget})
    if repo.find_open_offer(save_id, player_id, to_team_id) is not None:
        raise ConflictError(
            DUPLICATE_OPEN_OFFER,
            "An open offer for this player already exists from this club",
            {"player_id": player_id, "team_id": to_team_id},
        )

    offer_id = new_id()
    try:
        repo.apply_intents(
            [
                InsertOffer(
                    offer_id=offer_id,
                    save_id=save_id,
                    player_id=player_id,
                    seller_team_id=seller_id,
                    buyer_team_id=to_team_id,
                    fee=fee_i,
                    wage=wage_i,
                    contract_years=years_i,
                    status="pending",
                    created_round=ctx.round,
                    expires_round=ctx.round + ctx.transfer_config.offer_expiry_rounds,
                )
            ]
        )
    except sqlite3.IntegrityError as exc:
        raise ConflictError(
            DUPLICATE_OPEN_OFFER,
            "An open offer for this player already exists from this club",
            {"player_id": player_id, "team_id": to_team_id},
        ) from exc
    offer = require_offer(repo, save_id, offer_id)
    logger.info(
        "OFFER_MADE save=%s offer=%s player=%s from=%s to=%s fee=%s wage=%s",
        save_id,
        offer_id,
        player_id,
        seller_id,
        to_team_id,
        fee_i,
        wage_i,
    )

    if seller_id is None:
        decision = free_agent_decision(
            expected_free_agent_wage(player, years_i),
            wage_i,
            buyer.reputation,
            0,
        )
        action, counter_fee, counter_wage = decision.action, 0, decision.wage
    elif seller_id != ctx.human_team_id:
        listing = repo.get_listing(save_id, player_id)
        if listing is None:
            # Unlisted AI player: the club answers during the next round.
            return OfferResponse(offer_id=offer_id, status="pending")
        squad_size = len(repo.get_squad(save_id, seller_id))
        sold = sell_decision(listing.asking_price, fee_i, wage_i, squad_size, player, ctx.season, cfg=ctx.transfer_config)
        action, counter_fee, counter_wage = sold.action, sold.amount, sold.wage
    else:
        return OfferResponse(offer_id=offer_id, status="pending")

    if action == "accept":
        transfer_id = ledger.accept_and_complete(repo, offer, season=ctx.season, round=ctx.round)
        return OfferResponse(offer_id=offer_id, status="completed", transfer_id=transfer_id)
    if action == "counter":
        repo.apply_intents(
            [
                SetOfferStatus(
                    offer_id,
                    "counter",
                    frozenset({"pending"}),
                    responded_round=ctx.round,
                    counter_fee=counter_fee,
                    counter_wage=counter_wage,
                )
            ]
        )
        return OfferResponse(offer_id=offer_id, status="counter", counter_fee=counter_fee, counter_wage=counter_wage)

    repo.apply_intents([SetOfferStatus(offer_id, "rejected", frozenset({"pending"}), responded_round=ctx.round)])
    return OfferResponse(offer_id=offer_id, status="rejected")


def respond_to_offer(
    repo: "LeagueRepo",
    save_id: str,
    offer_id: str,
    action: str,
    counter_fee: Any = None,
    counter_wage: Any = None,
    *,
    acting_team_id: Optional[str] = None,
) -> OfferResponse:
    """Seller-side answer to a bid on one of its players."""
    act = str(action or "").strip().lower()
    if act not in ("accept", "reject", "counter"):
        raise ValidationError(INVALID_ACTION, f"Unknown response: {action!r}")

    ctx = load_save(repo, save_id)
    offer = require_offer(repo, save_id, offer_id)
    authorize(acting_team_id, offer.seller_team_id, what="offer")
    if offer.status != "pending":
        raise ConflictError(
            OFFER_INVALID_TRANSITION,
            f"Offer is {offer.status!r}; only pending offers can be answered",
            {"offer_id": offer_id},
        )

    if act == "accept":
        transfer_id = ledger.accept_and_complete(
            repo, offer, season=ctx.season, round=ctx.round, expected=frozenset({"pending"})
        )
        return OfferResponse(offer_id=offer_id, status="completed", transfer_id=transfer_id)

    if act == "reject":
        repo.apply_intents([SetOfferStatus(offer_id, "rejected", frozenset({"pending"}), responded_round=ctx.round)])
        return OfferResponse(offer_id=offer_id, status="rejected")

    if counter_fee is None or counter_wage is None:
        raise ValidationError(INVALID_ACTION, "A counter needs both counter_fee and counter_wage")
    cf = validate_fee(counter_fee)
    cw = validate_wage(counter_wage)
    repo.apply_intents(
        [
            SetOfferStatus(
                offer_id,
                "counter",
                frozenset({"pending"}),
                responded_round=ctx.round,
                counter_fee=cf,
                counter_wage=cw,
            )
        ]
    )
    return OfferResponse(offer_id=offer_id, status="counter", counter_fee=cf, counter_wage=cw)


def accept_counter_offer(
    repo: "LeagueRepo",
    save_id: str,
    offer_id: str,
    *,
    acting_team_id: Optional[str] = None,
) -> OfferResponse:
    """Buyer takes the seller's counter; the transfer completes on the counter terms."""
    ctx = load_save(repo, save_id)
    offer = require_offer(repo, save_id, offer_id)
    authorize(acting_team_id, offer.buyer_team_id, what="offer")
    if offer.status != "counter" or offer.counter_fee is None or offer.counter_wage is None:
        raise ConflictError(OFFER_HAS_NO_COUNTER, "There is no counter-offer to accept", {"offer_id": offer_id})

    buyer = require_team(repo, save_id, offer.buyer_team_id)
    if offer.counter_fee > buyer.budget:
        raise ConflictError(
            INSUFFICIENT_BUDGET,
            "Budget does not cover the counter fee",
            {"fee": offer.counter_fee, "budget": buyer.budget},
        )
    transfer_id = ledger.accept_and_complete(
        repo,
        offer,
        season=ctx.season,
        round=ctx.round,
        fee=offer.counter_fee,
        wage=offer.counter_wage,
        expected=frozenset({"counter"}),
    )
    return OfferResponse(
        offer_id=offer_id,
        status="completed",
        counter_fee=offer.counter_fee,
        counter_wage=offer.counter_wage,
        transfer_id=transfer_id,
    )


def complete_transfer(
    repo: "LeagueRepo",
    save_id: str,
    offer_id: str,
    *,
    acting_team_id: Optional[str] = None,
) -> str:
    """Complete an ``accepted`` offer. Returns the transfer id."""
    offer = require_offer(repo, save_id, offer_id)
    if acting_team_id is not None and acting_team_id not in (offer.buyer_team_id, offer.seller_team_id):
        authorize(acting_team_id, offer.buyer_team_id, what="offer")
    return ledger.complete_transfer(repo, save_id, offer_id)


# -----------------------------------------------------------------------------
# Releases
# -----------------------------------------------------------------------------


def _owned_player(repo: "LeagueRepo", save_id: str, player_id: str, team_id: str) -> PlayerView:
    player = require_player(repo, save_id, player_id)
    if player.team_id != team_id or player.status != "active":
        raise ConflictError(
            PLAYER_NOT_WITH_TEAM,
            "Player is not under contract with this club",
            {"player_id": player_id, "team_id": team_id},
        )
    return player


def get_release_quote(
    repo: "LeagueRepo",
    save_id: str,
    player_id: str,
    team_id: str,
    *,
    acting_team_id: Optional[str] = None,
) -> ReleaseQuote:
    """What releasing the player to free agency would cost the club right now."""
    authorize(acting_team_id, team_id, what="player")
    ctx = load_save(repo, save_id)
    player = _owned_player(repo, save_id, player_id, team_id)
    return release_compensation(player, ctx.season, ctx.round)


def release_player(
    repo: "LeagueRepo",
    save_id: str,
    player_id: str,
    team_id: str,
    *,
    acting_team_id: Optional[str] = None,
) -> ReleaseQuote:
    """Terminate the player's contract and pay the compensation. Returns the quote paid."""
    authorize(acting_team_id, team_id, what="player")
    ctx = load_save(repo, save_id)
    player = _owned_player(repo, save_id, player_id, team_id)
    team = require_team(repo, save_id, team_id)
    quote = release_compensation(player, ctx.season, ctx.round)
    if quote.fee > team.budget:
        raise ConflictError(
            INSUFFICIENT_BUDGET,
            "Budget does not cover the release compensation",
            {"fee": quote.fee, "budget": team.budget},
        )

    repo.apply_intents(
        ledger.build_release_intents(save_id, player, team_id, quote, season=ctx.season, round=ctx.round)
    )
    logger.info(
        "PLAYER_RELEASED save=%s player=%s team=%s fee=%s mutual=%s",
        save_id,
        player_id,
        team_id,
        quote.fee,
        quote.mutual_termination,
    )
    return quote
