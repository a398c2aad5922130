from __future__ import annotations

"""Live negotiation protocol (human club vs. AI counterpart).

Round 0 is the opening bid. Every resumed offer advances the round; the
AI may counter while ``round < max_rounds`` and must accept or reject at
``round == max_rounds``. A resumed offer that does not move by at least
``min_improvement`` is refused without touching the session.

Each negotiation keeps exactly one open offer row for (player, buyer); the
row's terms are rewritten every round and it reaches a terminal status when
the session does.
"""

import logging
import sqlite3
from contextlib import ExitStack, contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional

from ..config import DEFAULT_NEGOTIATION_CONFIG, NegotiationConfig, TransferConfig
from ..context import (
    SaveContext,
    authorize,
    load_save,
    require_listing,
    require_offer,
    require_player,
    require_team,
)
from ..errors import (
    DUPLICATE_OPEN_OFFER,
    INSUFFICIENT_BUDGET,
    INVALID_ACTION,
    INVALID_TEAMS,
    NEGOTIATION_BUSY,
    NEGOTIATION_NO_COUNTER,
    NEGOTIATION_OFFER_NOT_IMPROVED,
    OFFER_INVALID_TRANSITION,
    PLAYER_NOT_WITH_TEAM,
    ConflictError,
    ValidationError,
)
from ..ledger import accept_and_complete
from ..mutations import InsertOffer, SetOfferStatus, UpdateOfferTerms
from ..types import AIResponse, CompletedTransfer, NegotiationResult, Offer, PlayerView, TeamView
from ..utils import new_id
from ..valuation import asking_price
from ..validation import validate_fee, validate_terms
from . import engine
from .store import NegotiationSession, SessionStore, default_session_store

if TYPE_CHECKING:
    from league_repo import LeagueRepo

logger = logging.getLogger(__name__)

OPEN = frozenset({"pending", "counter"})

_OUTGOING_ACTIONS = {"offer": "offer", "counter": "offer", "accept": "accept", "walkaway": "walkaway"}


@contextmanager
def _single_flight(store: SessionStore, negotiation_id: str, cfg: NegotiationConfig) -> Iterator[None]:
    with ExitStack() as stack:
        try:
            stack.enter_context(store.lock(negotiation_id, timeout_s=cfg.lock_timeout_seconds))
        except TimeoutError as exc:
            raise ConflictError(
                NEGOTIATION_BUSY,
                "Another call for this negotiation is still running",
                {"negotiation_id": negotiation_id},
            ) from exc
        yield


def _result(
    nid: str,
    round_no: int,
    response: AIResponse,
    cfg: NegotiationConfig,
    *,
    offer_id: Optional[str],
    completed: Optional[CompletedTransfer] = None,
) -> NegotiationResult:
    return NegotiationResult(
        negotiation_id=nid,
        round=int(round_no),
        max_rounds=int(cfg.max_rounds),
        ai_response=response,
        can_counter=response.action == "counter" and int(round_no) < int(cfg.max_rounds),
        offer_id=offer_id,
        completed=completed,
    )


def _log_outcome(nid: str, direction: str, round_no: int, response: AIResponse, offer_id: Optional[str]) -> None:
    if response.action == "counter":
        return
    logger.info(
        "NEGOTIATION_CLOSED negotiation=%s direction=%s round=%s outcome=%s reason=%s offer=%s",
        nid,
        direction,
        round_no,
        response.action,
        response.reason,
        offer_id,
    )


# -----------------------------------------------------------------------------
# Outgoing (human club buys)
# -----------------------------------------------------------------------------


def _matches_outgoing(
    session: NegotiationSession,
    save_id: str,
    player_id: str,
    seller_team_id: Optional[str],
    buyer_team_id: str,
) -> bool:
    return (
        session.direction == "outgoing"
        and session.save_id == save_id
        and session.player_id == player_id
        and session.buyer_team_id == buyer_team_id
        and session.seller_team_id == seller_team_id
    )


def _upsert_open_offer(
    repo: "LeagueRepo",
    ctx: SaveContext,
    session: Optional[NegotiationSession],
    player: PlayerView,
    seller_team_id: Optional[str],
    buyer_team_id: str,
    fee: int,
    wage: int,
    years: int,
) -> Offer:
    """Write this round's terms to the pair's open offer, adopting a stray one after a lost session."""
    expires = ctx.round + ctx.transfer_config.offer_expiry_rounds
    existing: Optional[Offer] = None
    if session is not None and session.offer_id:
        existing = repo.get_offer(ctx.save_id, session.offer_id)
        if existing is not None and not existing.is_open:
            existing = None
    if existing is None:
        existing = repo.find_open_offer(ctx.save_id, player.player_id, buyer_team_id)

    if existing is not None:
        repo.apply_intents([UpdateOfferTerms(existing.offer_id, fee, wage, years, expires)])
        return require_offer(repo, ctx.save_id, existing.offer_id)

    offer_id = new_id()
    try:
        repo.apply_intents(
            [
                InsertOffer(
                    offer_id=offer_id,
                    save_id=ctx.save_id,
                    player_id=player.player_id,
                    seller_team_id=seller_team_id,
                    buyer_team_id=buyer_team_id,
                    fee=fee,
                    wage=wage,
                    contract_years=years,
                    status="pending",
                    created_round=ctx.round,
                    expires_round=expires,
                )
            ]
        )
    except sqlite3.IntegrityError as exc:
        raise ConflictError(
            DUPLICATE_OPEN_OFFER,
            "An open offer for this player already exists from this club",
            {"player_id": player.player_id, "team_id": buyer_team_id},
        ) from exc
    return require_offer(repo, ctx.save_id, offer_id)


def _walk_away(
    repo: "LeagueRepo",
    store: SessionStore,
    ctx: SaveContext,
    nid: str,
    session: Optional[NegotiationSession],
    player_id: str,
    buyer_team_id: str,
    cfg: NegotiationConfig,
) -> NegotiationResult:
    offer_id = session.offer_id if session is not None else None
    if offer_id is None:
        stray = repo.find_open_offer(ctx.save_id, player_id, buyer_team_id)
        offer_id = stray.offer_id if stray is not None else None
    if offer_id is not None:
        try:
            repo.apply_intents([SetOfferStatus(offer_id, "cancelled", OPEN, responded_round=ctx.round)])
        except ConflictError:
            logger.info("NEGOTIATION_WALKAWAY_OFFER_CLOSED negotiation=%s offer=%s", nid, offer_id)
    store.delete(nid)
    response = AIResponse(action="walkaway", reason="WALKED_AWAY")
    round_no = session.round if session is not None else 0
    _log_outcome(nid, "outgoing", round_no, response, offer_id)
    return _result(nid, round_no, response, cfg, offer_id=offer_id)


def _accept_ai_counter(
    repo: "LeagueRepo",
    store: SessionStore,
    ctx: SaveContext,
    nid: str,
    session: Optional[NegotiationSession],
    buyer: TeamView,
    cfg: NegotiationConfig,
) -> NegotiationResult:
    if session is None or not session.has_ai_counter or not session.offer_id:
        raise ConflictError(NEGOTIATION_NO_COUNTER, "There is no counter-offer to accept", {"negotiation_id": nid})

    offer_row = require_offer(repo, ctx.save_id, session.offer_id)
    fee = int(session.last_ai_fee or 0) if session.seller_team_id is not None else 0
    wage = int(session.last_ai_wage if session.last_ai_wage is not None else session.last_human_wage)
    if fee > buyer.budget:
        raise ConflictError(INSUFFICIENT_BUDGET, "Budget does not cover the agreed fee", {"fee": fee, "budget": buyer.budget})

    transfer_id = accept_and_complete(repo, offer_row, season=ctx.season, round=ctx.round, fee=fee, wage=wage)
    store.delete(nid)
    response = AIResponse(action="accept", reason="COUNTER_ACCEPTED")
    _log_outcome(nid, "outgoing", session.round, response, offer_row.offer_id)
    return _result(
        nid,
        session.round,
        response,
        cfg,
        offer_id=offer_row.offer_id,
        completed=CompletedTransfer(transfer_id=transfer_id, final_fee=fee, final_wage=wage),
    )


def _close_or_continue(
    repo: "LeagueRepo",
    store: SessionStore,
    ctx: SaveContext,
    nid: str,
    round_no: int,
    offer_row: Offer,
    response: AIResponse,
    next_session: NegotiationSession,
    cfg: NegotiationConfig,
    *,
    final_fee: Optional[int] = None,
) -> NegotiationResult:
    direction = next_session.direction
    if response.action == "accept":
        fee = int(offer_row.fee if final_fee is None else final_fee)
        transfer_id = accept_and_complete(repo, offer_row, season=ctx.season, round=ctx.round, fee=fee)
        store.delete(nid)
        _log_outcome(nid, direction, round_no, response, offer_row.offer_id)
        return _result(
            nid,
            round_no,
            response,
            cfg,
            offer_id=offer_row.offer_id,
            completed=CompletedTransfer(transfer_id=transfer_id, final_fee=fee, final_wage=offer_row.wage),
        )

    if response.action == "reject":
        repo.apply_intents([SetOfferStatus(offer_row.offer_id, "rejected", OPEN, responded_round=ctx.round)])
        store.delete(nid)
        _log_outcome(nid, direction, round_no, response, offer_row.offer_id)
        return _result(nid, round_no, response, cfg, offer_id=offer_row.offer_id)

    store.put(next_session)
    return _result(nid, round_no, response, cfg, offer_id=offer_row.offer_id)


def negotiate_transfer(
    repo: "LeagueRepo",
    save_id: str,
    player_id: str,
    from_team_id: Optional[str],
    to_team_id: str,
    offer: Mapping[str, Any],
    negotiation_id: Optional[str] = None,
    action: Optional[str] = None,
    *,
    store: Optional[SessionStore] = None,
    config: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
    transfer_config: Optional[TransferConfig] = None,
    acting_team_id: Optional[str] = None,
) -> NegotiationResult:
    """One call of the outgoing protocol.

    ``action`` is ``None``/``"offer"`` (submit terms), ``"accept"`` (take the
    AI's last counter) or ``"walkaway"``. ``from_team_id=None`` means the
    player is a free agent: the fee is forced to 0 and the player answers.
    """
    act = _OUTGOING_ACTIONS.get(str(action or "offer").strip().lower())
    if act is None:
        raise ValidationError(INVALID_ACTION, f"Unknown negotiation action: {action!r}")
    authorize(acting_team_id, to_team_id, what="negotiation")
    seller_id = str(from_team_id) if from_team_id else None
    if seller_id is not None and seller_id == str(to_team_id):
        raise ValidationError(INVALID_TEAMS, "A club cannot buy its own player")

    store = store or default_session_store()
    nid = str(negotiation_id or new_id())
    with _single_flight(store, nid, config):
        ctx = load_save(repo, save_id, config=transfer_config)
        session = store.get(nid) if negotiation_id else None
        if session is not None and not _matches_outgoing(session, save_id, player_id, seller_id, to_team_id):
            session = None

        if act == "walkaway":
            return _walk_away(repo, store, ctx, nid, session, player_id, to_team_id, config)

        player = require_player(repo, save_id, player_id)
        if player.team_id != seller_id:
            raise ConflictError(
                PLAYER_NOT_WITH_TEAM,
                "Player is not with the selling club",
                {"player_id": player_id, "team_id": player.team_id, "expected": seller_id},
            )
        buyer = require_team(repo, save_id, to_team_id)

        if act == "accept":
            return _accept_ai_counter(repo, store, ctx, nid, session, buyer, config)

        fee, wage, years = validate_terms(
            offer.get("fee", 0),
            offer.get("wage"),
            offer.get("years", offer.get("contract_years")),
        )
        if seller_id is None:
            fee = 0

        if session is not None:
            if not engine.is_improvement(session.last_human_fee, session.last_human_wage, fee, wage, cfg=config):
                raise ConflictError(
                    NEGOTIATION_OFFER_NOT_IMPROVED,
                    "A new offer must improve the previous one by at least 5% in fee or wage",
                    {
                        "negotiation_id": nid,
                        "round": session.round,
                        **engine.minimum_next_offer(session.last_human_fee, session.last_human_wage, cfg=config),
                    },
                )
            round_no = session.round + 1
        else:
            round_no = 0

        if fee > buyer.budget:
            raise ConflictError(INSUFFICIENT_BUDGET, "Fee exceeds the transfer budget", {"fee": fee, "budget": buyer.budget})

        if seller_id is None:
            response = engine.respond_as_free_agent(player, years, wage, buyer.reputation, round_no, cfg=config)
        else:
            listing = require_listing(repo, save_id, player_id)
            squad_size = len(repo.get_squad(save_id, seller_id))
            response = engine.respond_as_seller(
                listing.asking_price,
                round_no,
                fee,
                wage,
                squad_size,
                player,
                ctx.season,
                cfg=config,
                transfer_cfg=ctx.transfer_config,
            )

        offer_row = _upsert_open_offer(repo, ctx, session, player, seller_id, buyer.team_id, fee, wage, years)
        if response.action == "counter":
            repo.apply_intents(
                [
                    SetOfferStatus(
                        offer_row.offer_id,
                        "counter",
                        OPEN,
                        responded_round=ctx.round,
                        counter_fee=response.counter_fee,
                        counter_wage=response.counter_wage,
                    )
                ]
            )

        next_session = NegotiationSession(
            negotiation_id=nid,
            save_id=save_id,
            direction="outgoing",
            player_id=player_id,
            buyer_team_id=buyer.team_id,
            seller_team_id=seller_id,
            offer_id=offer_row.offer_id,
            round=round_no,
            hardening=engine.hardening_factor(round_no, cfg=config),
            contract_years=years,
            last_human_fee=fee,
            last_human_wage=wage,
            last_ai_fee=response.counter_fee,
            last_ai_wage=response.counter_wage,
            created_at=session.created_at if session is not None else store.now(),
        )
        return _close_or_continue(repo, store, ctx, nid, round_no, offer_row, response, next_session, config)


# -----------------------------------------------------------------------------
# Incoming (AI club bids on a human-owned player)
# -----------------------------------------------------------------------------


def negotiate_incoming_offer(
    repo: "LeagueRepo",
    save_id: str,
    offer_id: str,
    action: str,
    counter_offer: Optional[Mapping[str, Any]] = None,
    negotiation_id: Optional[str] = None,
    *,
    store: Optional[SessionStore] = None,
    config: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
    transfer_config: Optional[TransferConfig] = None,
    acting_team_id: Optional[str] = None,
) -> NegotiationResult:
    """One call of the incoming protocol: the human seller accepts, rejects or names a fee."""
    act = str(action or "").strip().lower()
    if act not in ("accept", "reject", "counter"):
        raise ValidationError(INVALID_ACTION, f"Unknown negotiation action: {action!r}")

    store = store or default_session_store()
    nid = str(negotiation_id or new_id())
    with _single_flight(store, nid, config):
        ctx = load_save(repo, save_id, config=transfer_config)
        offer_row = require_offer(repo, save_id, offer_id)
        authorize(acting_team_id, offer_row.seller_team_id, what="offer")
        if offer_row.seller_team_id is None:
            raise ConflictError(OFFER_INVALID_TRANSITION, "Free-agent offers have no selling club to negotiate with")
        if not offer_row.is_open:
            raise ConflictError(
                OFFER_INVALID_TRANSITION,
                f"Offer is {offer_row.status!r} and can no longer be negotiated",
                {"offer_id": offer_id},
            )

        session = store.get(nid) if negotiation_id else None
        if session is not None and (session.direction != "incoming" or session.offer_id != offer_id):
            session = None
        last_bid = int(session.last_ai_fee) if session is not None and session.last_ai_fee is not None else offer_row.fee
        round_no = session.round if session is not None else 0

        if act == "accept":
            response = AIResponse(action="accept", reason="SELLER_ACCEPTED")
            transfer_id = accept_and_complete(repo, offer_row, season=ctx.season, round=ctx.round, fee=last_bid)
            store.delete(nid)
            _log_outcome(nid, "incoming", round_no, response, offer_id)
            return _result(
                nid,
                round_no,
                response,
                config,
                offer_id=offer_id,
                completed=CompletedTransfer(transfer_id=transfer_id, final_fee=last_bid, final_wage=offer_row.wage),
            )

        if act == "reject":
            repo.apply_intents([SetOfferStatus(offer_id, "rejected", OPEN, responded_round=ctx.round)])
            store.delete(nid)
            response = AIResponse(action="reject", reason="SELLER_REJECTED")
            _log_outcome(nid, "incoming", round_no, response, offer_id)
            return _result(nid, round_no, response, config, offer_id=offer_id)

        if not counter_offer or counter_offer.get("fee") is None:
            raise ValidationError(INVALID_ACTION, "A counter needs counter_offer.fee")
        demand = validate_fee(counter_offer.get("fee"))

        if session is not None:
            if not engine.is_improvement(session.last_human_fee, None, demand, 0, seller=True, cfg=config):
                raise ConflictError(
                    NEGOTIATION_OFFER_NOT_IMPROVED,
                    "A new demand must come down at least 5% from the previous one",
                    {
                        "negotiation_id": nid,
                        "round": session.round,
                        "max_fee": int(session.last_human_fee * (1.0 - config.min_improvement)),
                    },
                )
            round_no = session.round + 1

        player = require_player(repo, save_id, offer_row.player_id)
        buyer = require_team(repo, save_id, offer_row.buyer_team_id)
        listing = repo.get_listing(save_id, offer_row.player_id)
        asking = listing.asking_price if listing is not None else asking_price(player, ctx.season)
        reservation = engine.buyer_reservation(
            asking, buyer.budget, round_no, cfg=config, transfer_cfg=ctx.transfer_config
        )
        response = engine.respond_as_buyer(reservation, demand, last_bid, round_no, cfg=config)

        if response.action == "counter":
            repo.apply_intents(
                [
                    UpdateOfferTerms(
                        offer_id,
                        int(response.counter_fee or 0),
                        offer_row.wage,
                        offer_row.contract_years,
                        ctx.round + ctx.transfer_config.offer_expiry_rounds,
                    ),
                    SetOfferStatus(offer_id, "counter", OPEN, responded_round=ctx.round, counter_fee=demand),
                ]
            )

        next_session = NegotiationSession(
            negotiation_id=nid,
            save_id=save_id,
            direction="incoming",
            player_id=offer_row.player_id,
            buyer_team_id=offer_row.buyer_team_id,
            seller_team_id=offer_row.seller_team_id,
            offer_id=offer_id,
            round=round_no,
            hardening=engine.hardening_factor(round_no, cfg=config),
            contract_years=offer_row.contract_years,
            last_human_fee=demand,
            last_human_wage=offer_row.wage,
            last_ai_fee=response.counter_fee if response.counter_fee is not None else last_bid,
            last_ai_wage=offer_row.wage,
            created_at=session.created_at if session is not None else store.now(),
        )
        return _close_or_continue(
            repo,
            store,
            ctx,
            nid,
            round_no,
            offer_row,
            response,
            next_session,
            config,
            final_fee=min(demand, max(0, buyer.budget)),
        )
