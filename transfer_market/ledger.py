from __future__ import annotations

"""Transfer completion and contract releases.

``complete_transfer`` turns an ``accepted`` offer into a finished transfer in
one transaction. The offer status flip is the first statement of the batch
and is guarded on ``status='accepted'``, so a second completion of the same
offer fails inside the transaction instead of applying twice.
"""

import datetime as _dt
import logging
from typing import TYPE_CHECKING, FrozenSet, List, Optional

from .errors import (
    OFFER_NOT_ACCEPTED,
    OFFER_NOT_FOUND,
    OFFER_STATUS_CHANGED,
    PLAYER_NOT_FOUND,
    SAVE_NOT_FOUND,
    ConflictError,
    NotFoundError,
)
from .mutations import (
    AdjustBalance,
    CancelCompetingOffers,
    DeleteListing,
    InsertTransferRecord,
    MutationIntent,
    ReassignPlayer,
    RecordTransaction,
    ReleasePlayer,
    SetOfferStatus,
)
from .types import Offer, PlayerView, ReleaseQuote
from .utils import new_id

if TYPE_CHECKING:
    from league_repo import LeagueRepo

logger = logging.getLogger(__name__)

POST_TRANSFER_MORALE = 80


def _today_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).date().isoformat()


def build_completion_intents(
    offer: Offer,
    player: PlayerView,
    *,
    season: int,
    round: int,
    transfer_id: str,
    fee: Optional[int] = None,
    wage: Optional[int] = None,
) -> List[MutationIntent]:
    """Intents for completing ``offer`` (which must be ``accepted`` when applied).

    ``fee``/``wage`` override the offer terms (agreed counter values).
    """
    final_fee = int(offer.fee if fee is None else fee)
    final_wage = int(offer.wage if wage is None else wage)
    seller = offer.seller_team_id
    buyer = offer.buyer_team_id

    intents: List[MutationIntent] = [
        SetOfferStatus(offer.offer_id, "completed", frozenset({"accepted"}), responded_round=round),
        ReassignPlayer(
            player_id=player.player_id,
            from_team_id=seller,
            team_id=buyer,
            wage=final_wage,
            contract_end_season=int(season) + int(offer.contract_years),
            morale=POST_TRANSFER_MORALE,
        ),
    ]

    if final_fee > 0 and seller is not None:
        label = player.name or player.player_id
        intents += [
            AdjustBalance(seller, final_fee),
            AdjustBalance(buyer, -final_fee),
            RecordTransaction(
                transaction_id=new_id(),
                save_id=offer.save_id,
                team_id=seller,
                type="income",
                category="player_sale",
                amount=final_fee,
                season=season,
                round=round,
                description=f"Sale of {label}",
            ),
            RecordTransaction(
                transaction_id=new_id(),
                save_id=offer.save_id,
                team_id=buyer,
                type="expense",
                category="player_buy",
                amount=final_fee,
                season=season,
                round=round,
                description=f"Purchase of {label}",
            ),
        ]

    intents += [
        InsertTransferRecord(
            transfer_id=transfer_id,
            save_id=offer.save_id,
            player_id=player.player_id,
            from_team_id=seller,
            to_team_id=buyer,
            fee=final_fee if seller is not None else 0,
            wage=final_wage,
            season=season,
            date=_today_iso(),
        ),
        CancelCompetingOffers(offer.save_id, player.player_id, int(round), except_offer_id=offer.offer_id),
        DeleteListing(offer.save_id, player.player_id),
    ]
    return intents


def complete_transfer(
    repo: "LeagueRepo",
    save_id: str,
    offer_id: str,
    *,
    season: Optional[int] = None,
    round: Optional[int] = None,
    fee: Optional[int] = None,
    wage: Optional[int] = None,
    extra_intents: Optional[List[MutationIntent]] = None,
) -> str:
    """Complete an accepted offer. Returns the transfer id.

    ``extra_intents`` run first, in the same transaction (e.g. the
    ``-> accepted`` flip that precedes completion).

    Raises:
        NotFoundError: unknown save/offer/player.
        ConflictError: the offer is not (or no longer) ``accepted``, or the
            player left the selling club.
    """
    if season is None or round is None:
        save = repo.get_save(save_id)
        if save is None:
            raise NotFoundError(SAVE_NOT_FOUND, f"Save not found: {save_id}")
        season = int(save["current_season"]) if season is None else season
        round = int(save["current_round"]) if round is None else round

    offer = repo.get_offer(save_id, offer_id)
    if offer is None:
        raise NotFoundError(OFFER_NOT_FOUND, f"Offer not found: {offer_id}")
    if offer.status != "accepted" and not extra_intents:
        raise ConflictError(OFFER_NOT_ACCEPTED, f"Offer is {offer.status!r}, not 'accepted'", {"offer_id": offer_id})

    player = repo.get_player(save_id, offer.player_id)
    if player is None:
        raise NotFoundError(PLAYER_NOT_FOUND, f"Player not found: {offer.player_id}")

    transfer_id = new_id()
    intents = list(extra_intents or [])
    intents += build_completion_intents(
        offer, player, season=int(season), round=int(round), transfer_id=transfer_id, fee=fee, wage=wage
    )
    try:
        repo.apply_intents(intents)
    except ConflictError as exc:
        if exc.code == OFFER_STATUS_CHANGED:
            raise ConflictError(
                OFFER_NOT_ACCEPTED,
                "Offer is no longer 'accepted' (already completed or withdrawn)",
                {"offer_id": offer_id},
            ) from exc
        raise

    logger.info(
        "TRANSFER_COMPLETED save=%s transfer=%s player=%s from=%s to=%s fee=%s",
        save_id,
        transfer_id,
        player.player_id,
        offer.seller_team_id,
        offer.buyer_team_id,
        int(offer.fee if fee is None else fee),
    )
    return transfer_id


def accept_and_complete(
    repo: "LeagueRepo",
    offer: Offer,
    *,
    season: int,
    round: int,
    fee: Optional[int] = None,
    wage: Optional[int] = None,
    expected: FrozenSet[str] = frozenset({"pending", "counter"}),
) -> str:
    """Flip an open offer to ``accepted`` and complete it in the same transaction."""
    flip = SetOfferStatus(offer.offer_id, "accepted", expected, responded_round=round)
    return complete_transfer(
        repo,
        offer.save_id,
        offer.offer_id,
        season=season,
        round=round,
        fee=fee,
        wage=wage,
        extra_intents=[flip],
    )


def build_release_intents(
    save_id: str,
    player: PlayerView,
    team_id: str,
    quote: ReleaseQuote,
    *,
    season: int,
    round: int,
) -> List[MutationIntent]:
    """Intents for releasing ``player`` to free agency and paying ``quote``.

    The player's last wage is kept; it anchors what they ask for as a free agent.
    """
    intents: List[MutationIntent] = [
        ReleasePlayer(player.player_id, team_id, contract_end_season=int(season)),
        CancelCompetingOffers(save_id, player.player_id, int(round)),
        DeleteListing(save_id, player.player_id),
    ]
    if quote.fee > 0:
        intents += [
            AdjustBalance(team_id, -int(quote.fee)),
            RecordTransaction(
                transaction_id=new_id(),
                save_id=save_id,
                team_id=team_id,
                type="expense",
                category="release_compensation",
                amount=int(quote.fee),
                season=season,
                round=round,
                description=f"Release of {player.name or player.player_id}",
            ),
        ]
    return intents
